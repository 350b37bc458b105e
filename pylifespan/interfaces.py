import re
from datetime import datetime, timedelta, timezone
from typing import Self, Iterable, Any

import humanize
from pydantic import BaseModel, Field, ConfigDict, field_validator, GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema

from pylifespan.errors import PolicyParseError, CatalogParseError

# format of the timestamp column of "tarsnap --list-archives -v"
DATETIME_FORMAT = r"%Y-%m-%d %H:%M:%S"

# generation unit => interval length in hours, months and years are fixed length
GENERATION_UNITS = {
    'H': 1,
    'D': 24,
    'W': 7 * 24,
    'M': 30 * 24,
    'Y': 365 * 24,
}
GENERATION_REGEX = r'([0-9]+)([{units}])'.format(units=''.join(GENERATION_UNITS))

_generation_pattern = re.compile(GENERATION_REGEX)


class Datetime(datetime):
    """
    Timezone aware UTC datetime used for archive timestamps.

    Naive values are taken to be UTC, aware values are converted to UTC.
    """

    def __new__(cls, *args, **kwargs):
        """
        Create a new Datetime from a listing string, a datetime, or components.

        Raises:
            ValueError: If the string does not match DATETIME_FORMAT.
        """
        if (len(args) == 1) and not kwargs:
            if isinstance(args[0], str):
                return cls(datetime.strptime(args[0].strip(), DATETIME_FORMAT))
            elif isinstance(args[0], datetime):
                dt = args[0]
                if dt.tzinfo is None:
                    dt = dt.replace(tzinfo=timezone.utc)
                else:
                    dt = dt.astimezone(timezone.utc)
                return datetime.__new__(cls,
                                        dt.year,
                                        dt.month,
                                        dt.day,
                                        dt.hour,
                                        dt.minute,
                                        dt.second,
                                        dt.microsecond,
                                        tzinfo=timezone.utc)
        if args and isinstance(args[0], int) and len(args) < 8 and 'tzinfo' not in kwargs:
            kwargs['tzinfo'] = timezone.utc
        return datetime.__new__(cls, *args, **kwargs)

    def __str__(self):
        """
        Return the string representation in listing format.
        """
        return self.strftime(DATETIME_FORMAT)

    @classmethod
    def __get_pydantic_core_schema__(cls, _: Any, handler: GetCoreSchemaHandler) -> CoreSchema:
        """
        Pydantic core schema for Datetime.
        """
        return core_schema.union_schema([
            core_schema.no_info_after_validator_function(cls, handler(str)),
            core_schema.no_info_after_validator_function(cls, handler(datetime)),
            core_schema.is_instance_schema(cls)
        ])


class ArchiveName(str):
    """
    String type for archive names with validation.
    """

    _pattern = re.compile(r"[^\t\r\n]+")

    def __new__(cls, name: str):
        """
        Validate and create a new ArchiveName.

        Raises:
            ValueError: If the name is empty or contains tabs or line breaks.
        """
        if not cls._pattern.fullmatch(name):
            raise ValueError(f"ArchiveName = {name!r} must be non-empty without tabs or line breaks")
        return str.__new__(cls, name)

    @classmethod
    def __get_pydantic_core_schema__(cls, _: Any, handler: GetCoreSchemaHandler) -> CoreSchema:
        """
        Pydantic core schema for ArchiveName. Instances pass through as they
        are, names decoded with surrogateescape are not valid UTF-8.
        """
        return core_schema.union_schema([
            core_schema.is_instance_schema(cls),
            core_schema.no_info_after_validator_function(cls, handler(str))
        ])


class Snapshot(BaseModel):
    """
    A named archive and its creation time.
    """

    model_config = ConfigDict(frozen=True)

    name: ArchiveName
    dt: Datetime

    def __str__(self):
        return f"{self.name} ({self.dt})"

    @classmethod
    def from_listing_row(cls, row: str) -> Self:
        """
        Create a Snapshot from one row of "tarsnap --list-archives -v" output,
        for example "archive-2018-07-16_11-01-03<TAB>2018-07-16 11:01:03".

        Raises:
            CatalogParseError: If the row has no timestamp column or it cannot be parsed.
        """
        name, sep, timestamp = row.partition('\t')
        if not sep:
            raise CatalogParseError(row, "Missing timestamp column")
        try:
            dt = Datetime(timestamp)
        except ValueError as e:
            raise CatalogParseError(row, "Failed to parse timestamp") from e
        try:
            return cls(name=name, dt=dt)
        except ValueError as e:
            raise CatalogParseError(row, "Invalid archive name") from e


class Generation(BaseModel):
    """
    One retention tier, keep up to count snapshots spaced interval apart.
    """

    model_config = ConfigDict(frozen=True)

    interval: timedelta
    count: int = Field(ge=0)

    @field_validator('interval')
    @classmethod
    def validate_interval(cls, interval: timedelta) -> timedelta:
        if interval <= timedelta(0):
            raise ValueError(f'Generation.interval must be positive, received {interval}')
        return interval

    def __str__(self):
        return f"{self.count} x {humanize.naturaldelta(self.interval)}"

    @classmethod
    def parse(cls, token: str) -> Self:
        """
        Create a Generation from a <number><H|D|W|M|Y> argument such as "6D".

        Raises:
            PolicyParseError: If the token does not match the grammar.
        """
        match = _generation_pattern.fullmatch(token)
        if match is None:
            raise PolicyParseError(token)
        count, unit = match.groups()
        return cls(interval=timedelta(hours=GENERATION_UNITS[unit]), count=int(count))


def parse_generations(tokens: Iterable[str]) -> list[Generation]:
    """
    Parse generation arguments in order, failing on the first invalid one.

    Raises:
        PolicyParseError: Naming the first token that does not match the grammar.
    """
    return [Generation.parse(token) for token in tokens]
