"""Domain models representing core business entities."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse


TimezoneHistogram = Dict[str, int]
HourHistogram = Dict[int, int]


@dataclass(frozen=True)
class RepositoryRecord:
    """Immutable domain entity representing a registered GitHub repository.

    The repo_id is the locally persisted identifier; owner and name identify
    the repository on GitHub, compared case-insensitively as GitHub does.
    display_name is an optional label shown instead of owner/name.
    """
    owner: str
    name: str
    repo_id: Optional[int] = None
    github_url: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Returns the full repository name (owner/name)."""
        return f"{self.owner}/{self.name}"

    @property
    def natural_key(self) -> Tuple[str, str]:
        return self.owner.lower(), self.name.lower()

    @property
    def label(self) -> str:
        return self.display_name or self.full_name

    def with_id(self, repo_id: int) -> 'RepositoryRecord':
        """Returns a new RepositoryRecord instance with the provided ID."""
        return replace(self, repo_id=repo_id)

    @classmethod
    def from_url(cls, url: str) -> Optional['RepositoryRecord']:
        """Parse a GitHub URL or ``owner/name`` string.

        Accepts https URLs, trailing slashes and ``.git`` suffixes. Returns None
        when no owner/name pair can be found.
        """
        if not url:
            return None
        text = url.strip()
        parsed = urlparse(text)
        if parsed.scheme and parsed.netloc:
            parts = [part for part in parsed.path.split("/") if part]
            if len(parts) < 2:
                return None
            owner, name = parts[0], parts[1]
        else:
            parts = [part for part in text.split("/") if part]
            if len(parts) < 2:
                return None
            owner, name = parts[-2], parts[-1]

        if name.endswith(".git"):
            name = name[:-4]
        if not owner or not name:
            return None
        github_url = text if parsed.scheme else f"https://github.com/{owner}/{name}"
        return cls(owner=owner, name=name, github_url=github_url)


def unique_repositories(repositories: Iterable[RepositoryRecord]) -> List[RepositoryRecord]:
    """Collapse records naming the same repository, ignoring case.

    The first spelling and position win; a later record only supplies a
    newer github_url or display_name.
    """
    merged: Dict[Tuple[str, str], RepositoryRecord] = {}
    for repo in repositories:
        existing = merged.get(repo.natural_key)
        if existing is None:
            merged[repo.natural_key] = repo
        else:
            merged[repo.natural_key] = replace(
                existing,
                github_url=repo.github_url or existing.github_url,
                display_name=repo.display_name or existing.display_name
            )
    return list(merged.values())


@dataclass(frozen=True)
class ContributorRef:
    """A contributor as it appears in a listing page."""
    github_id: int
    login: str
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class ContributionRecord:
    """One listing row: a contributor and the contributions it adds."""
    contributor: ContributorRef
    delta: int = 1


@dataclass(frozen=True)
class ContributorCount:
    """Aggregated contribution count for one contributor of one repository."""
    contributor: ContributorRef
    contributions: int


@dataclass(frozen=True)
class Profile:
    """Immutable GitHub user profile (the persisted identity).

    github_id is the stable platform identity; every other field is mutable
    profile data refreshed on each sighting.
    """
    github_id: int
    login: str
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    public_repos: Optional[int] = None
    followers: Optional[int] = None
    following: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def minimal(cls, contributor: ContributorRef) -> 'Profile':
        """Stand-in profile used when the profile lookup fails."""
        return cls(
            github_id=contributor.github_id,
            login=contributor.login,
            avatar_url=contributor.avatar_url
        )

    @property
    def author_identifier(self) -> str:
        """Value passed to ``git log --author`` for this identity."""
        return self.email or self.name or self.login


@dataclass(frozen=True)
class CommitTimestampSample:
    """A commit instant together with the literal offset label git printed."""
    instant: datetime
    offset_label: str

    @property
    def local_hour(self) -> int:
        """Wall-clock hour in the sample's own offset."""
        return self.instant.hour


@dataclass(frozen=True)
class OriginEstimate:
    """Result of the origin analysis for one contributor's sample set."""
    login: str
    total_samples: int
    timezone_histogram: TimezoneHistogram
    hour_histogram: HourHistogram
    dominant_offset: str
    probability: float
    likely_origin_match: bool


@dataclass(frozen=True)
class PageResult:
    """One page of a remote contributor listing."""
    records: List[ContributionRecord]
    has_next_page: bool
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset: Optional[datetime] = None


class FetchOutcome(Enum):
    """Terminal state of a paginated fetch."""
    DONE = "done"
    ABORTED = "aborted"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class FetchResult:
    """Aggregated output of the paginated contributor fetcher."""
    outcome: FetchOutcome
    contributors: List[ContributorCount]
    pages_fetched: int
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.outcome is FetchOutcome.DONE

    def totals(self) -> Dict[int, int]:
        """Contribution totals keyed by github_id."""
        return {c.contributor.github_id: c.contributions for c in self.contributors}


class TaskStatus(Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskReport:
    """Outcome of one repository ingestion task."""
    repository: str
    status: TaskStatus
    contributors_stored: int = 0
    estimates_stored: int = 0
    record_failures: int = 0
    fetch_outcome: Optional[FetchOutcome] = None
    used_persisted_contributors: bool = False
    rate_limit_retries: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class IngestionSummary:
    """Metrics for an ingestion pass."""
    repositories_processed: int
    repositories_skipped: int
    repositories_failed: int
    contributors_stored: int
    estimates_stored: int
    rate_limit_retries: int
    duration_seconds: float
    reports: List[TaskReport] = field(default_factory=list)


@dataclass(frozen=True)
class ContributorDetail:
    """Read model joining a stored identity with its contribution count."""
    github_id: int
    login: str
    name: Optional[str]
    contributions: int
    location: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.login


@dataclass(frozen=True)
class OriginStats:
    """Per-repository summary of stored origin estimates."""
    total_contributors: int
    matched_contributors: int
    matched_contributors_details: List[ContributorDetail] = field(default_factory=list)

    @property
    def matched_percentage(self) -> float:
        if self.total_contributors == 0:
            return 0.0
        return self.matched_contributors / self.total_contributors * 100.0
