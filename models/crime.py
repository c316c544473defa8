"""
Crime report models.

Reports are owned by the external crime store; the routing engine only ever
sees an immutable CrimeSnapshot taken at the start of a request.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterator, Tuple


class CrimeType(str, Enum):
    """Reported crime category."""

    MURDER = "murder"
    ROBBERY = "robbery"
    HARASSMENT = "harassment"
    ASSAULT = "assault"
    THEFT = "theft"
    VANDALISM = "vandalism"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "CrimeType":
        """Map a free-form type label onto a category, unknown labels -> OTHER."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class CrimeReport:
    id: str
    lat: float
    lng: float
    type: CrimeType
    timestamp: datetime
    severity: float = 1.0


@dataclass(frozen=True)
class CrimeSnapshot:
    """Point-in-time, read-only set of crime reports for one request."""

    reports: Tuple[CrimeReport, ...]
    as_of: datetime

    def __len__(self) -> int:
        return len(self.reports)

    def __iter__(self) -> Iterator[CrimeReport]:
        return iter(self.reports)

    def with_report(self, report: CrimeReport) -> "CrimeSnapshot":
        """Return a new snapshot with one more report (this one is untouched)."""
        return CrimeSnapshot(reports=self.reports + (report,), as_of=self.as_of)
