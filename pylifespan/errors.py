from typing import Optional, Sequence


class LifespanError(Exception):
    """
    Base error for failures that abort an expiry run.
    """
    pass


class PolicyParseError(LifespanError, ValueError):
    """
    Error indicating that a generation argument does not match <number><H|D|W|M|Y>.
    """

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Failed to parse argument {token}")


class CatalogParseError(LifespanError, ValueError):
    """
    Error indicating that a row of the archive listing could not be parsed.
    """

    def __init__(self, row: str, reason: str = "Failed to parse row"):
        self.row = row
        self.reason = reason
        super().__init__(f"{reason}: {row}")


class CollaboratorError(LifespanError):
    """
    Error indicating that an external tarsnap command failed. Carries the
    command's stderr verbatim.
    """

    def __init__(self, stderr: str, cmd: Optional[Sequence[str]] = None):
        self.stderr = stderr
        self.cmd = list(cmd) if cmd is not None else None
        super().__init__(stderr)
