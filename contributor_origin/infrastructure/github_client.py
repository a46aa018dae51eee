"""GitHub REST API client for paginated contributor listings."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Tuple
import aiohttp
from contributor_origin.domain.errors import (
    BadStatusError,
    MalformedResponseError,
    NetworkError,
    RateLimitedError,
)
from contributor_origin.domain.github_interface import IContributorListingClient
from contributor_origin.domain.models import ContributionRecord, ContributorRef, PageResult
from contributor_origin.infrastructure.token_rotation import TokenRotation


logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

# 204: empty contributors list, 409: repository has no commits yet
EMPTY_REPOSITORY_STATUSES = (204, 409)
RATE_LIMIT_STATUSES = (403, 429)


def parse_rate_limit(headers: Mapping[str, str]) -> Tuple[Optional[int], Optional[datetime]]:
    """Extract the remaining quota and reset instant from response headers."""
    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None

    raw_remaining = headers.get("X-RateLimit-Remaining")
    if raw_remaining is not None:
        try:
            remaining = int(raw_remaining)
        except ValueError:
            logger.warning(f"Ignoring malformed X-RateLimit-Remaining header: {raw_remaining}")

    raw_reset = headers.get("X-RateLimit-Reset")
    if raw_reset is not None:
        try:
            reset_at = datetime.fromtimestamp(int(raw_reset), tz=timezone.utc)
        except ValueError:
            logger.warning(f"Ignoring malformed X-RateLimit-Reset header: {raw_reset}")

    return remaining, reset_at


def _contributor_ref(node: Any) -> Optional[ContributorRef]:
    if not isinstance(node, dict):
        return None
    github_id = node.get("id")
    login = node.get("login")
    if github_id is None or not login:
        return None
    return ContributorRef(github_id=int(github_id), login=login, avatar_url=node.get("avatar_url"))


def records_from_commits(payload: Any) -> List[ContributionRecord]:
    """One record per commit whose author is linked to a GitHub account."""
    if not isinstance(payload, list):
        raise MalformedResponseError(f"Expected a list of commits, got {type(payload).__name__}")

    records = []
    for commit in payload:
        contributor = _contributor_ref(commit.get("author") if isinstance(commit, dict) else None)
        if contributor is not None:
            records.append(ContributionRecord(contributor=contributor, delta=1))
    return records


def records_from_contributors(payload: Any) -> List[ContributionRecord]:
    """One record per contributor, anonymous entries skipped."""
    if not isinstance(payload, list):
        raise MalformedResponseError(f"Expected a list of contributors, got {type(payload).__name__}")

    records = []
    for node in payload:
        contributor = _contributor_ref(node)
        if contributor is not None:
            records.append(ContributionRecord(
                contributor=contributor,
                delta=int(node.get("contributions", 0))
            ))
    return records


class GitHubRestClient(IContributorListingClient):
    """GitHub REST client implementing the contributor listing port.

    Every request asks the token rotation for its credentials. The client
    never retries: rate-limit rejections and failures surface as
    TransportError subclasses for the caller to handle.
    """

    def __init__(
        self,
        tokens: TokenRotation,
        endpoint: str = "commits",
        timeout: float = 30.0,
        api_url: str = GITHUB_API_URL
    ):
        """Initialize GitHub client.

        Args:
            tokens: Token rotation strategy queried per request
            endpoint: ``commits`` (one record per commit) or ``contributors``
            timeout: Total request timeout in seconds
            api_url: REST API root
        """
        if endpoint not in ("commits", "contributors"):
            raise ValueError(f"Unsupported listing endpoint: {endpoint}")
        self._tokens = tokens
        self._endpoint = endpoint
        self._api_url = api_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        self._rate_limit_remaining: Optional[int] = None
        self._rate_limit_reset_at: Optional[datetime] = None

    async def _init_session(self) -> None:
        """Initialize the HTTP session (lazy initialization)."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    def _parse_records(self, payload: Any) -> List[ContributionRecord]:
        if self._endpoint == "contributors":
            return records_from_contributors(payload)
        return records_from_commits(payload)

    async def list_page(self, owner: str, name: str, page: int, page_size: int) -> PageResult:
        """Fetch one page of the listing endpoint.

        Raises:
            RateLimitedError: When the quota is exhausted
            BadStatusError: On any other non-success status
            MalformedResponseError: When the body is not the expected JSON
            NetworkError: On connection problems and timeouts
        """
        await self._init_session()
        url = f"{self._api_url}/repos/{owner}/{name}/{self._endpoint}"
        params = {"page": page, "per_page": min(page_size, 100)}

        try:
            async with self._session.get(url, params=params, headers=self._tokens.auth_headers()) as response:
                remaining, reset_at = parse_rate_limit(response.headers)
                if remaining is not None:
                    self._rate_limit_remaining = remaining
                    self._rate_limit_reset_at = reset_at

                if response.status in RATE_LIMIT_STATUSES and remaining == 0:
                    logger.warning(
                        f"Rate limit exhausted for {owner}/{name} page {page}, "
                        f"resets at: {reset_at}"
                    )
                    raise RateLimitedError(remaining, reset_at)

                if response.status in EMPTY_REPOSITORY_STATUSES:
                    logger.info(f"{owner}/{name} has no {self._endpoint} (HTTP {response.status})")
                    return PageResult(
                        records=[],
                        has_next_page=False,
                        rate_limit_remaining=remaining,
                        rate_limit_reset=reset_at
                    )

                if response.status >= 400:
                    raise BadStatusError(response.status, url)

                try:
                    payload = await response.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise MalformedResponseError(f"Invalid JSON from {url}: {e}") from e

                records = self._parse_records(payload)
                has_next_page = "next" in response.links

                logger.debug(
                    f"{owner}/{name} page {page}: {len(records)} records, "
                    f"rate limit remaining: {remaining}"
                )

                return PageResult(
                    records=records,
                    has_next_page=has_next_page,
                    rate_limit_remaining=remaining,
                    rate_limit_reset=reset_at
                )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Network error fetching {url} page {page}: {e}")
            raise NetworkError(str(e)) from e

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
