"""Core data models shared by the supervision pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Union

from scraper_host.errors import WorkerExitFailure

OUTPUT_FORMATS = ("csv", "json")


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """Parameters of one worker search, immutable once submitted."""

    keyword: str
    location: str
    max_results: int = 20
    output_format: str = "csv"
    output_directory: Optional[Path] = None
    enable_web_scraping: bool = True

    def __post_init__(self) -> None:
        if not self.keyword or not self.keyword.strip():
            raise ValueError("keyword must be provided")
        if not self.location or not self.location.strip():
            raise ValueError("location must be provided")
        if int(self.max_results) <= 0:
            raise ValueError("max_results must be positive")
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"output_format must be one of {', '.join(OUTPUT_FORMATS)}")


CONFIG_FILENAME = "config.ini"


@dataclass(frozen=True, slots=True)
class ConfigLocation:
    path: Path
    writable: bool

    @property
    def config_file(self) -> Path:
        return self.path / CONFIG_FILENAME


@dataclass(slots=True)
class ScrapingProgress:
    current: int = 0
    total: int = 0

    def reset(self, total: int = 0) -> None:
        self.current = 0
        self.total = total

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(100.0, self.current / self.total * 100)


# ---------- Status events ----------


@dataclass(frozen=True, slots=True)
class Idle:
    kind: ClassVar[str] = "idle"


@dataclass(frozen=True, slots=True)
class SearchingMaps:
    kind: ClassVar[str] = "searching_maps"


@dataclass(frozen=True, slots=True)
class MapsFound:
    count: int
    kind: ClassVar[str] = "maps_found"


@dataclass(frozen=True, slots=True)
class ScrapingStarted:
    total: int
    kind: ClassVar[str] = "scraping_started"


@dataclass(frozen=True, slots=True)
class ScrapingProgressEvent:
    current: int
    total: int
    label: Optional[str] = None
    kind: ClassVar[str] = "scraping_progress"

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(100.0, self.current / self.total * 100)


@dataclass(frozen=True, slots=True)
class ScrapingComplete:
    enhanced: int
    kind: ClassVar[str] = "scraping_complete"


@dataclass(frozen=True, slots=True)
class Completed:
    kind: ClassVar[str] = "completed"


@dataclass(frozen=True, slots=True)
class NoResults:
    kind: ClassVar[str] = "no_results"


@dataclass(frozen=True, slots=True)
class Error:
    message: str
    kind: ClassVar[str] = "error"


@dataclass(frozen=True, slots=True)
class Raw:
    message: str
    kind: ClassVar[str] = "raw"


StatusEvent = Union[
    Idle,
    SearchingMaps,
    MapsFound,
    ScrapingStarted,
    ScrapingProgressEvent,
    ScrapingComplete,
    Completed,
    NoResults,
    Error,
    Raw,
]


def event_to_dict(event: StatusEvent) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"kind": event.kind}
    payload.update(asdict(event))
    return payload


# ---------- Results ----------


@dataclass(slots=True)
class BusinessRecord:
    """One row of the result table; absent fields are empty strings."""

    name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    rating: str = ""
    reviews: str = ""
    additional_numbers: str = ""
    additional_emails: str = ""
    social_media_links: str = ""

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    """Terminal result of one worker run."""

    exit_code: int
    stdout_text: str
    stderr_text: str
    output_file_path: Path
    table: Optional[List[BusinessRecord]] = field(default=None, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def diagnostic(self) -> Optional[str]:
        if self.succeeded:
            return None
        return self.stderr_text.strip() or "Unknown error occurred"

    def raise_for_status(self) -> None:
        if not self.succeeded:
            raise WorkerExitFailure(self.exit_code, self.stderr_text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.succeeded,
            "exit_code": self.exit_code,
            "output_file": str(self.output_file_path),
            "output": self.stdout_text,
            "error": self.diagnostic,
            "table": [record.to_dict() for record in self.table] if self.table is not None else None,
        }
