"""Paginated contributor fetcher with rate-limit aware termination."""
import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional
from contributor_origin.domain.errors import RateLimitedError, TransportError
from contributor_origin.domain.github_interface import IContributorListingClient
from contributor_origin.domain.models import (
    ContributorCount,
    ContributorRef,
    FetchOutcome,
    FetchResult,
)


logger = logging.getLogger(__name__)


class ContributorFetcher:
    """Walks a listing endpoint page by page and sums contributions per identity.

    The walk ends when a page has no next-page link (DONE), when the page cap
    is reached (DONE, truncated), or on the first transport error (ABORTED,
    or RATE_LIMITED for quota rejections). Partial totals are always
    returned; the fetcher never raises for transport failures and never
    retries.
    """

    def __init__(
        self,
        client: IContributorListingClient,
        page_size: int = 100,
        max_pages: int = 100,
        request_delay: float = 0.1
    ):
        """Initialize the fetcher.

        Args:
            client: Listing transport
            page_size: Records per page (GitHub max is 100)
            max_pages: Hard cap on pages fetched for one repository
            request_delay: Seconds slept between successful page fetches
        """
        self._client = client
        self._page_size = min(page_size, 100)
        self._max_pages = max_pages
        self._request_delay = request_delay

    async def fetch(self, owner: str, name: str) -> FetchResult:
        """Fetch and aggregate the contributors of owner/name.

        Returns:
            FetchResult with contributors sorted by contributions descending
        """
        # Task-local state: lives for this call only
        totals: Dict[int, int] = {}
        refs: Dict[int, ContributorRef] = {}
        page = 1
        pages_fetched = 0
        outcome = FetchOutcome.DONE
        error: Optional[str] = None
        remaining: Optional[int] = None
        reset_at: Optional[datetime] = None

        logger.info(f"Fetching contributors of {owner}/{name}")

        while True:
            try:
                result = await self._client.list_page(owner, name, page, self._page_size)
            except RateLimitedError as e:
                outcome = FetchOutcome.RATE_LIMITED
                remaining, reset_at = e.remaining, e.reset_at
                error = str(e)
                logger.warning(
                    f"Rate limited on {owner}/{name} page {page}; keeping {len(totals)} "
                    f"contributors from {pages_fetched} pages. Resets at: {reset_at}"
                )
                break
            except TransportError as e:
                outcome = FetchOutcome.ABORTED
                error = str(e)
                logger.warning(
                    f"Aborted fetching {owner}/{name} at page {page}: {e}. "
                    f"Keeping partial data from {pages_fetched} pages"
                )
                break

            pages_fetched += 1
            if result.rate_limit_remaining is not None:
                remaining, reset_at = result.rate_limit_remaining, result.rate_limit_reset

            for record in result.records:
                github_id = record.contributor.github_id
                if github_id not in refs:
                    refs[github_id] = record.contributor
                totals[github_id] = totals.get(github_id, 0) + record.delta

            logger.info(
                f"Processed page {page} of {owner}/{name}, "
                f"contributors so far: {len(totals)}"
            )

            if not result.has_next_page:
                break

            if pages_fetched >= self._max_pages:
                logger.warning(
                    f"Stopped {owner}/{name} at the {self._max_pages}-page cap; "
                    f"older history is not counted"
                )
                break

            await asyncio.sleep(self._request_delay)
            page += 1

        contributors = self._sorted_counts(totals, refs)
        logger.info(
            f"Found {len(contributors)} contributors for {owner}/{name} "
            f"({outcome.value}, {pages_fetched} pages)"
        )

        return FetchResult(
            outcome=outcome,
            contributors=contributors,
            pages_fetched=pages_fetched,
            rate_limit_remaining=remaining,
            rate_limit_reset=reset_at,
            error=error
        )

    @staticmethod
    def _sorted_counts(totals: Dict[int, int], refs: Dict[int, ContributorRef]) -> List[ContributorCount]:
        # sorted() is stable, so ties keep first-encounter order
        counts = [ContributorCount(contributor=refs[gid], contributions=total) for gid, total in totals.items()]
        return sorted(counts, key=lambda c: c.contributions, reverse=True)
