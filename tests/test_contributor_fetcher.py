"""Tests for the paginated contributor fetcher."""
from datetime import datetime, timezone
from typing import Dict, List
import pytest
from contributor_origin.application.contributor_fetcher import ContributorFetcher
from contributor_origin.domain.errors import BadStatusError, NetworkError, RateLimitedError
from contributor_origin.domain.github_interface import IContributorListingClient
from contributor_origin.domain.models import (
    ContributionRecord,
    ContributorRef,
    FetchOutcome,
    PageResult,
)


RESET_AT = datetime(2030, 1, 1, tzinfo=timezone.utc)


def record(github_id: int, delta: int = 1) -> ContributionRecord:
    return ContributionRecord(ContributorRef(github_id, f"user{github_id}"), delta)


class FakeListingClient(IContributorListingClient):
    """Serves pre-built pages; an exception in place of a page is raised."""

    def __init__(self, pages: List[object]):
        self._pages = pages
        self.requested: List[int] = []

    async def list_page(self, owner: str, name: str, page: int, page_size: int) -> PageResult:
        self.requested.append(page)
        item = self._pages[page - 1]
        if isinstance(item, Exception):
            raise item
        return PageResult(records=item, has_next_page=page < len(self._pages),
                          rate_limit_remaining=4000, rate_limit_reset=RESET_AT)

    async def close(self) -> None:
        pass


def build_records(counts: Dict[int, int]) -> List[ContributionRecord]:
    """One delta-1 record per commit, interleaved across contributors."""
    records = []
    remaining = dict(counts)
    while any(remaining.values()):
        for github_id in counts:
            if remaining[github_id]:
                records.append(record(github_id))
                remaining[github_id] -= 1
    return records


@pytest.mark.asyncio
async def test_totals_do_not_depend_on_page_split():
    """Test that 150 records give the same totals in one page or two."""
    records = build_records({1: 90, 2: 40, 3: 20})

    single = await ContributorFetcher(FakeListingClient([records]), request_delay=0).fetch("o", "r")
    split = await ContributorFetcher(
        FakeListingClient([records[:100], records[100:]]), request_delay=0
    ).fetch("o", "r")

    assert single.totals() == split.totals() == {1: 90, 2: 40, 3: 20}
    assert single.outcome is split.outcome is FetchOutcome.DONE
    assert split.pages_fetched == 2


@pytest.mark.asyncio
async def test_rate_limit_keeps_earlier_pages():
    """Test that a rate limit on page 3 keeps pages 1 and 2."""
    pages: List[object] = [[record(1)] * 10, [record(2)] * 5]
    pages.append(RateLimitedError(0, RESET_AT))
    pages.extend([[record(3)]] * 7)
    client = FakeListingClient(pages)

    result = await ContributorFetcher(client, request_delay=0).fetch("o", "r")

    assert result.outcome is FetchOutcome.RATE_LIMITED
    assert result.totals() == {1: 10, 2: 5}
    assert result.pages_fetched == 2
    assert result.rate_limit_remaining == 0
    assert result.rate_limit_reset == RESET_AT
    assert client.requested == [1, 2, 3]


@pytest.mark.asyncio
async def test_bad_status_aborts_with_partial_data():
    """Test that a non-rate-limit failure ends the walk as ABORTED."""
    client = FakeListingClient([[record(1)], BadStatusError(502, "https://api.github.com/x")])

    result = await ContributorFetcher(client, request_delay=0).fetch("o", "r")

    assert result.outcome is FetchOutcome.ABORTED
    assert result.totals() == {1: 1}
    assert "502" in result.error


@pytest.mark.asyncio
async def test_network_error_on_first_page():
    """Test that a failure before any page gives an empty ABORTED result."""
    client = FakeListingClient([NetworkError("connection reset")])

    result = await ContributorFetcher(client, request_delay=0).fetch("o", "r")

    assert result.outcome is FetchOutcome.ABORTED
    assert result.contributors == []
    assert result.pages_fetched == 0


@pytest.mark.asyncio
async def test_page_cap_stops_walk():
    """Test that max_pages bounds the number of requests."""
    client = FakeListingClient([[record(1)]] * 10)

    result = await ContributorFetcher(client, max_pages=3, request_delay=0).fetch("o", "r")

    assert result.outcome is FetchOutcome.DONE
    assert client.requested == [1, 2, 3]
    assert result.totals() == {1: 3}


@pytest.mark.asyncio
async def test_sorted_descending_with_stable_ties():
    """Test ordering by contributions with first-seen order on ties."""
    records = [record(5), record(9), record(9), record(7), record(5), record(3, delta=4)]

    result = await ContributorFetcher(FakeListingClient([records]), request_delay=0).fetch("o", "r")

    assert [c.contributor.github_id for c in result.contributors] == [3, 5, 9, 7]
    assert [c.contributions for c in result.contributors] == [4, 2, 2, 1]


@pytest.mark.asyncio
async def test_empty_repository():
    """Test a listing with a single empty final page."""
    result = await ContributorFetcher(FakeListingClient([[]]), request_delay=0).fetch("o", "r")

    assert result.outcome is FetchOutcome.DONE
    assert result.contributors == []
    assert result.pages_fetched == 1
