"""Runtime configuration built from environment variables.

Entry scripts load ``.env`` with python-dotenv and then call
``IngestionConfig.from_env()``; the resulting object is handed to the
services and transports at construction.
"""
import os
import tempfile
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple
from contributor_origin.domain.origin_analysis import DEFAULT_TARGET_LABELS, OriginRules


def get_connection_string() -> str:
    """Build PostgreSQL connection string from environment variables."""
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    database = os.getenv("POSTGRES_DB", "contributor_origin")
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")

    return f"host={host} port={port} dbname={database} user={user} password={password}"


def _parse_tokens(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(token.strip() for token in raw.split(",") if token.strip())


def _parse_labels(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return DEFAULT_TARGET_LABELS
    return frozenset(label.strip() for label in raw.split(",") if label.strip())


def _parse_hours(raw: Optional[str]) -> Tuple[int, int]:
    """Parse a ``start-end`` hour window such as ``9-18``."""
    if not raw:
        return 9, 18
    start, _, end = raw.partition("-")
    start_hour, end_hour = int(start), int(end)
    if not (0 <= start_hour <= 23 and 0 <= end_hour <= 23 and start_hour <= end_hour):
        raise ValueError(f"Invalid WORKING_HOURS window: {raw}")
    return start_hour, end_hour


@dataclass(frozen=True)
class IngestionConfig:
    """Immutable configuration for an ingestion run.

    Attributes:
        github_tokens: Tokens rotated round-robin across requests
        max_concurrency: Repositories processed at the same time
        page_size: Records per listing page (GitHub max is 100)
        max_pages: Hard cap on pages fetched per repository
        request_delay: Seconds slept between successful API requests
        sufficient_contributors: Stored contributor count above which the
            remote fetch is skipped
        rate_limit_retries: Times a rate-limited task is retried after reset
        max_rate_limit_wait: Longest wait for a reset, in seconds, before
            giving up on a retry and keeping partial data
        workdir: Directory holding working copies as ``{owner}-{name}``
        listing_endpoint: ``commits`` or ``contributors``
        rules: Origin estimator parameters
    """
    github_tokens: Tuple[str, ...] = ()
    max_concurrency: int = 1
    page_size: int = 100
    max_pages: int = 100
    request_delay: float = 0.1
    sufficient_contributors: int = 100
    rate_limit_retries: int = 1
    max_rate_limit_wait: float = 900.0
    workdir: str = tempfile.gettempdir()
    listing_endpoint: str = "commits"
    rules: OriginRules = OriginRules()

    @classmethod
    def from_env(cls) -> 'IngestionConfig':
        tokens = _parse_tokens(os.getenv("GITHUB_TOKENS")) or _parse_tokens(os.getenv("GITHUB_TOKEN"))
        start, end = _parse_hours(os.getenv("WORKING_HOURS"))
        endpoint = os.getenv("LISTING_ENDPOINT", "commits")
        if endpoint not in ("commits", "contributors"):
            raise ValueError(f"Invalid LISTING_ENDPOINT: {endpoint}")

        return cls(
            github_tokens=tokens,
            max_concurrency=max(1, int(os.getenv("MAX_CONCURRENCY", "1"))),
            page_size=min(int(os.getenv("PAGE_SIZE", "100")), 100),
            max_pages=int(os.getenv("MAX_PAGES", "100")),
            request_delay=int(os.getenv("REQUEST_DELAY_MS", "100")) / 1000.0,
            sufficient_contributors=int(os.getenv("SUFFICIENT_CONTRIBUTORS", "100")),
            rate_limit_retries=int(os.getenv("RATE_LIMIT_RETRIES", "1")),
            max_rate_limit_wait=float(os.getenv("MAX_RATE_LIMIT_WAIT", "900")),
            workdir=os.getenv("WORKDIR") or tempfile.gettempdir(),
            listing_endpoint=endpoint,
            rules=OriginRules(
                target_labels=_parse_labels(os.getenv("TARGET_OFFSETS")),
                working_hours_start=start,
                working_hours_end=end
            )
        )

    def working_copy_path(self, owner: str, name: str) -> str:
        """Where the working copy of owner/name is expected on disk."""
        return os.path.join(self.workdir, f"{owner}-{name}")


SAMPLE_ENV = """\
# GitHub access tokens, comma-separated; rotated round-robin
GITHUB_TOKENS=

# PostgreSQL
POSTGRES_HOST=localhost
POSTGRES_PORT=5432
POSTGRES_DB=contributor_origin
POSTGRES_USER=postgres
POSTGRES_PASSWORD=postgres

# Ingestion
MAX_CONCURRENCY=1
PAGE_SIZE=100
MAX_PAGES=100
REQUEST_DELAY_MS=100
SUFFICIENT_CONTRIBUTORS=100
RATE_LIMIT_RETRIES=1
MAX_RATE_LIMIT_WAIT=900
LISTING_ENDPOINT=commits

# Working copies are read from WORKDIR/{owner}-{name}; system temp dir when empty
WORKDIR=

# Origin estimator
TARGET_OFFSETS=+0800,+08:00,CST,Asia/Shanghai
WORKING_HOURS=9-18

LOG_LEVEL=INFO
"""


def write_sample_config(path: str) -> None:
    """Write a template env file listing every supported setting."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(SAMPLE_ENV)
