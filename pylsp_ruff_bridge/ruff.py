from dataclasses import dataclass
from typing import List, Optional


@dataclass
class Location:
    row: int
    column: int


@dataclass
class Edit:
    content: str
    location: Location
    end_location: Location


@dataclass
class Fix:
    # "safe", "unsafe", "display-only"; older ruff releases report
    # "Automatic", "Suggested", "Manual" or "Unspecified"
    applicability: str
    edits: List[Edit]
    message: Optional[str] = None


@dataclass
class Check:
    code: Optional[str]
    message: str
    filename: str
    location: Location
    end_location: Location
    fix: Optional[Fix] = None
    noqa_row: Optional[int] = None
    url: Optional[str] = None
