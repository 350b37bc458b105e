import shlex
import subprocess
from os import environ
from typing import Iterable, Optional, Self

from pydantic import BaseModel, ConfigDict, Field

from pylifespan import logging
from pylifespan.otel import trace, with_tracer
from pylifespan.errors import CollaboratorError
from pylifespan.interfaces import Snapshot

logger = logging.get_logger(__name__)
tracer = trace.get_tracer(__name__)

TARSNAP_BINARY = "tarsnap"


class TarsnapArchiveManager(BaseModel):
    """
    Lists and deletes tarsnap archives by running the tarsnap client.
    """

    model_config = ConfigDict(frozen=True)

    binary: str = Field(default=TARSNAP_BINARY, min_length=1)
    # passed before every command, e.g. ["--keyfile", "/root/tarsnap.key"]
    args: list[str] = []

    def __str__(self):
        return f"TarsnapArchiveManager(binary={self.binary})"

    @classmethod
    def from_env(cls) -> Self:
        """
        Build a manager from the TARSNAP_BINARY and TARSNAP_ARGS environment variables.
        """
        return cls(binary=environ.get('TARSNAP_BINARY', TARSNAP_BINARY),
                   args=shlex.split(environ.get('TARSNAP_ARGS', '')))

    def _run(self, args: list[str], env: Optional[dict[str, str]] = None) -> subprocess.CompletedProcess:
        cmd = [self.binary, *self.args, *args]
        lgr = logger.bind(cmd=cmd)
        lgr.debug("Running tarsnap")
        try:
            # undecodable bytes in archive names map to surrogates and are
            # encoded back unchanged when the names are passed to "-d -f"
            return subprocess.run(cmd,
                                  capture_output=True,
                                  text=True,
                                  errors='surrogateescape',
                                  check=True,
                                  env=env)
        except subprocess.CalledProcessError as e:
            lgr.exception("tarsnap command failed", returncode=e.returncode)
            raise CollaboratorError(e.stderr, cmd) from e
        except OSError as e:
            lgr.exception("Unable to run tarsnap")
            raise CollaboratorError(str(e), cmd) from e

    @with_tracer(tracer)
    def list_archives(self) -> str:
        """
        Run "tarsnap --list-archives -v" with timestamps printed in UTC.

        Returns:
            str: The raw listing, one "name<TAB>timestamp" row per archive.

        Raises:
            CollaboratorError: If tarsnap fails or cannot be started.
        """
        env = dict(environ, TZ="UTC")
        result = self._run(["--list-archives", "-v"], env=env)
        logger.debug(f"Archives list:\n{result.stdout}")
        return result.stdout

    @staticmethod
    def parse_archives(archives: str) -> list[Snapshot]:
        """
        Parse the archive names and creation times from a listing, keeping listing order.

        Raises:
            CatalogParseError: If any row cannot be parsed.
        """
        # only "\n" ends a row, other line breaks may be part of an archive name
        rows = archives.split('\n')
        if rows[-1] == '':
            rows.pop()
        return [Snapshot.from_listing_row(row) for row in rows]

    def query(self) -> list[Snapshot]:
        """
        List and parse every archive.

        Raises:
            CollaboratorError: If tarsnap fails.
            CatalogParseError: If the listing cannot be parsed.
        """
        snapshots = self.parse_archives(self.list_archives())
        logger.info(f"Found {len(snapshots)} archives")
        return snapshots

    @with_tracer(tracer)
    def destroy(self, names: Iterable[str], dryrun: bool = False) -> list[str]:
        """
        Delete the named archives with a single "tarsnap -d" call.

        Args:
            names (Iterable[str]): Archive names, passed in lexicographic order.
            dryrun (bool, optional): If True, only log what would be deleted. Defaults to False.

        Returns:
            list[str]: The sorted names selected for deletion.

        Raises:
            CollaboratorError: If tarsnap fails.
        """
        names = sorted(names)
        if not names:
            logger.info("Didn't find anything to expire")
            return names

        logger.info(f"snapshots selected for deletion: {', '.join(names)}", dryrun=dryrun)
        if not dryrun:
            args = ["-d"]
            for name in names:
                args.extend(["-f", name])
            self._run(args)
        return names
