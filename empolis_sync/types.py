"""
Data types for metadata synchronization.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar, Union

from .errors import ApiError


# Metadata keys used by the Empolis store
FILE_PATH_KEY = "FilePath"
TITLE_KEY = "Title"
KEYWORDS_KEY = "Keywords_txt"

# Separator between breadcrumb entries in the keywords field
KEYWORD_SEPARATOR = "; "

# Remote metadata is a plain mapping; values are strings or nested structures
RemoteMetadata = dict[str, Any]


@dataclass(frozen=True)
class Credentials:
    """OAuth2 client and resource-owner credentials."""
    client_id: str
    client_secret: str = field(repr=False)
    username: str = ""
    password: str = field(default="", repr=False)
    scope: str = ""

    @property
    def complete(self) -> bool:
        """True if every value needed for a password grant is present."""
        return all((self.client_id, self.client_secret, self.username, self.password))


@dataclass(frozen=True)
class TokenState:
    """
    Cached OAuth2 tokens with their expiry times.

    Expiry values are clock readings (seconds) from the token manager's
    clock. An empty state has no tokens and zero expiries. The state is
    always replaced as a whole, never updated field by field.
    """
    access_token: Optional[str] = None
    access_expiry: float = 0.0
    refresh_token: Optional[str] = None
    refresh_expiry: float = 0.0

    def access_valid(self, now: float) -> bool:
        return bool(self.access_token) and now < self.access_expiry

    def refresh_valid(self, now: float) -> bool:
        return bool(self.refresh_token) and now < self.refresh_expiry


@dataclass(frozen=True)
class FileRecord:
    """Title and breadcrumbs extracted from one local HTML file."""
    filename: str
    title: str
    breadcrumbs: Optional[tuple[str, ...]] = None

    @property
    def keywords(self) -> str:
        """Breadcrumbs as a keywords string, empty if there are none."""
        if not self.breadcrumbs:
            return ""
        return KEYWORD_SEPARATOR.join(self.breadcrumbs).strip()

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"filename": self.filename, "title": self.title}
        if self.breadcrumbs:
            d["breadcrumbs"] = list(self.breadcrumbs)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "FileRecord":
        if not isinstance(data, dict) or "filename" not in data:
            raise ValueError(f"Index entry must be an object with a filename: {data!r}")
        crumbs = data.get("breadcrumbs")
        if crumbs is not None and (
            not isinstance(crumbs, list) or not all(isinstance(c, str) for c in crumbs)
        ):
            raise ValueError(f"Index entry breadcrumbs must be a list of strings: {data!r}")
        return cls(
            filename=data["filename"],
            title=data.get("title", ""),
            breadcrumbs=tuple(crumbs) if crumbs else None,
        )


@dataclass(frozen=True)
class DataSourceSelection:
    """
    One document collection in the Empolis store.

    Attributes:
        name: Config key of the data source (e.g. "icube")
        root: Store namespace prefix of the collection's DownloadLinks
        help_dir: Local directory holding the collection's HTML files
        description: Human-readable label
    """
    name: str
    root: str
    help_dir: Path
    description: str = ""

    def download_link(self, filename: str) -> str:
        """Full store path of a file in this collection."""
        return f"{self.root.rstrip('/')}/{filename}"


@dataclass(frozen=True)
class ServiceHealth:
    """Operational status of each checked Empolis service."""
    statuses: dict[str, bool]

    @property
    def down(self) -> list[str]:
        return [name for name, ok in self.statuses.items() if not ok]

    @property
    def operational(self) -> bool:
        return not self.down


# -----------------------------------------------------------------------------
# Tagged API results
# -----------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: ApiError

    def unwrap(self):
        raise self.error


ApiResult = Union[Ok[T], Err]


# -----------------------------------------------------------------------------
# Reconciliation outcomes
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Skipped:
    """No write was needed or possible."""
    reason: str


@dataclass(frozen=True)
class Updated:
    """Metadata was written; holds the metadata that was sent."""
    metadata: RemoteMetadata = field(default_factory=dict)


@dataclass(frozen=True)
class Failed:
    """The record could not be reconciled."""
    error: Exception


Outcome = Union[Skipped, Updated, Failed]


@dataclass
class BatchSummary:
    """Aggregated outcome counts for a batch run."""
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.updated + self.skipped + self.failed

    def add(self, filename: str, outcome: Outcome) -> None:
        if isinstance(outcome, Updated):
            self.updated += 1
        elif isinstance(outcome, Skipped):
            self.skipped += 1
        else:
            self.failed += 1
            self.failures.append((filename, str(outcome.error)))

    def to_dict(self) -> dict:
        return {
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "failures": [{"filename": f, "error": e} for f, e in self.failures],
        }
