import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError

_MONTH_ISO = re.compile(r"^(\d{4})-(\d{2})$")


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


@dataclass(frozen=True, order=True)
class MonthPeriod:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Month out of range: {self.month}")
        if not 2 <= self.year <= 9998:
            raise ValidationError(f"Year out of range: {self.year}")

    @classmethod
    def parse(cls, value: str) -> "MonthPeriod":
        match = _MONTH_ISO.match((value or "").strip())
        if not match:
            raise ValidationError(f"Month must be formatted as YYYY-MM, got {value!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def coerce(cls, value: Union[str, "MonthPeriod"]) -> "MonthPeriod":
        if isinstance(value, MonthPeriod):
            return value
        if not isinstance(value, str):
            raise ValidationError("Month must be a YYYY-MM string")
        return cls.parse(value)

    @classmethod
    def containing(cls, day: date) -> "MonthPeriod":
        return cls(day.year, day.month)

    @classmethod
    def current(cls, today: Optional[date] = None) -> "MonthPeriod":
        return cls.containing(today or local_today())

    @property
    def iso(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return self.next().start - date.resolution

    def shift(self, months: int) -> "MonthPeriod":
        total = self.year * 12 + (self.month - 1) + months
        return MonthPeriod(total // 12, total % 12 + 1)

    def previous(self) -> "MonthPeriod":
        return self.shift(-1)

    def next(self) -> "MonthPeriod":
        return self.shift(1)

    def __str__(self) -> str:
        return self.iso


def months_between(target: date, month: MonthPeriod) -> int:
    """Calendar-month distance from ``month`` to the month containing ``target``."""
    return (target.year - month.year) * 12 + (target.month - month.month)
