"""Tests for domain models."""
from datetime import datetime, timedelta, timezone
import pytest
from contributor_origin.domain.models import (
    CommitTimestampSample,
    ContributorCount,
    ContributorRef,
    FetchOutcome,
    FetchResult,
    OriginStats,
    Profile,
    RepositoryRecord,
    unique_repositories,
)


def test_repository_creation():
    """Test creating an immutable RepositoryRecord entity."""
    repo = RepositoryRecord(owner="rust-lang", name="rust")

    assert repo.owner == "rust-lang"
    assert repo.name == "rust"
    assert repo.full_name == "rust-lang/rust"
    assert repo.repo_id is None


def test_repository_with_id():
    """Test adding ID to repository."""
    repo = RepositoryRecord(owner="rust-lang", name="rust")

    repo_with_id = repo.with_id(42)

    assert repo_with_id.repo_id == 42
    assert repo_with_id.owner == repo.owner
    assert repo.repo_id is None  # Original unchanged (immutability)


@pytest.mark.parametrize("url", [
    "https://github.com/rust-lang/rust",
    "https://github.com/rust-lang/rust/",
    "https://github.com/rust-lang/rust.git",
    "rust-lang/rust",
])
def test_repository_from_url(url):
    """Test parsing the accepted repository URL forms."""
    repo = RepositoryRecord.from_url(url)

    assert repo is not None
    assert repo.full_name == "rust-lang/rust"
    assert repo.github_url is not None


@pytest.mark.parametrize("url", ["", "https://github.com/rust-lang", "rust"])
def test_repository_from_url_invalid(url):
    """Test that URLs without an owner/name pair are rejected."""
    assert RepositoryRecord.from_url(url) is None


def test_minimal_profile_keeps_listing_identity():
    """Test the stand-in profile used when the profile lookup fails."""
    ref = ContributorRef(github_id=7, login="octocat", avatar_url="https://avatars/7")

    profile = Profile.minimal(ref)

    assert profile.github_id == 7
    assert profile.login == "octocat"
    assert profile.avatar_url == "https://avatars/7"
    assert profile.email is None
    assert profile.location is None


def test_author_identifier_preference():
    """Test that email wins over name, and name over login."""
    assert Profile(github_id=1, login="a", name="A", email="a@x.org").author_identifier == "a@x.org"
    assert Profile(github_id=1, login="a", name="A").author_identifier == "A"
    assert Profile(github_id=1, login="a").author_identifier == "a"


def test_sample_local_hour_uses_own_offset():
    """Test that the hour is read in the sample's offset, not UTC."""
    instant = datetime(2024, 3, 1, 10, 30, tzinfo=timezone(timedelta(hours=8)))
    sample = CommitTimestampSample(instant=instant, offset_label="+08:00")

    assert sample.local_hour == 10
    assert instant.astimezone(timezone.utc).hour == 2


def test_fetch_result_totals():
    """Test FetchResult completeness flag and totals mapping."""
    result = FetchResult(
        outcome=FetchOutcome.RATE_LIMITED,
        contributors=[
            ContributorCount(ContributorRef(1, "a"), 5),
            ContributorCount(ContributorRef(2, "b"), 3),
        ],
        pages_fetched=2
    )

    assert not result.is_complete
    assert result.totals() == {1: 5, 2: 3}


def test_origin_stats_percentage():
    """Test matched percentage, including the empty case."""
    assert OriginStats(total_contributors=4, matched_contributors=1).matched_percentage == 25.0
    assert OriginStats(total_contributors=0, matched_contributors=0).matched_percentage == 0.0


def test_unique_repositories_ignores_case():
    """Test collapsing repeated repositories, keeping the first spelling."""
    repos = unique_repositories([
        RepositoryRecord("Acme", "App"),
        RepositoryRecord("other", "lib"),
        RepositoryRecord("acme", "app", github_url="https://github.com/acme/app"),
    ])

    assert [repo.full_name for repo in repos] == ["Acme/App", "other/lib"]
    assert repos[0].github_url == "https://github.com/acme/app"
