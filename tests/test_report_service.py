"""Tests for contributor reports."""
import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List
import pytest
from contributor_origin.application.report_service import (
    ContributorAnalysis,
    ReportService,
    analyze_working_copy,
    build_contributors_report,
)
from contributor_origin.domain.commit_history_interface import ICommitHistorySource
from contributor_origin.domain.models import CommitTimestampSample, Profile, RepositoryRecord
from contributor_origin.domain.origin_analysis import analyze_samples
from contributor_origin.infrastructure.memory_storage import InMemoryContributorStorage


def samples(count: int, label: str, offset_hours: int, hour: int = 22) -> List[CommitTimestampSample]:
    tz = timezone(timedelta(hours=offset_hours))
    return [CommitTimestampSample(datetime(2024, 4, 1, hour, 0, tzinfo=tz), label)] * count


def analysis(login: str, count: int, label: str, offset_hours: int) -> ContributorAnalysis:
    return ContributorAnalysis(
        login=login,
        email=f"{login}@example.com",
        estimate=analyze_samples(login, samples(count, label, offset_hours))
    )


def test_build_contributors_report():
    """Test splitting analyses into matches and others."""
    report = build_contributors_report([
        analysis("li", 30, "+08:00", 8),
        analysis("ana", 50, "-03:00", -3),
        analysis("wei", 20, "+08:00", 8),
        analysis("tom", 10, "+01:00", 1),
    ])

    assert report.total_contributors == 4
    assert report.matched_count == 2
    assert report.matched_percentage == pytest.approx(50.0)
    assert report.total_commits == 110
    assert report.matched_commits == 50
    assert report.matched_commits_percentage == pytest.approx(50 / 110 * 100)
    assert [a.login for a in report.top_matched] == ["li", "wei"]
    assert [a.login for a in report.top_unmatched] == ["ana", "tom"]


def test_empty_report():
    """Test a report over no authors."""
    report = build_contributors_report([])

    assert report.total_contributors == 0
    assert report.matched_percentage == 0.0
    assert report.unmatched_percentage == 0.0
    assert report.matched_commits_percentage == 0.0


def test_report_to_json():
    """Test JSON serialization of a report."""
    report = build_contributors_report([analysis("li", 3, "+08:00", 8)])

    data = json.loads(report.to_json())

    assert data["matched_count"] == 1
    assert data["top_matched"][0]["email"] == "li@example.com"
    assert data["top_matched"][0]["estimate"]["timezone_histogram"] == {"+08:00": 3}


class FakeHistory(ICommitHistorySource):
    def __init__(self, by_email: Dict[str, List[CommitTimestampSample]]):
        self._by_email = by_email

    def has_working_copy(self, repo_path: str) -> bool:
        return True

    async def sample_commits(self, repo_path: str, author: str) -> List[CommitTimestampSample]:
        return self._by_email[author]

    async def list_author_emails(self, repo_path: str) -> List[str]:
        return list(self._by_email)


@pytest.mark.asyncio
async def test_analyze_working_copy():
    """Test analysing every author of a working copy."""
    history = FakeHistory({
        "li@example.cn": samples(4, "+08:00", 8),
        "ana@example.br": samples(2, "-03:00", -3),
        "empty@example.org": [],
    })

    report = await analyze_working_copy(history, "/repos/acme-app")

    assert report.total_contributors == 2
    assert [a.login for a in report.top_matched] == ["li"]
    assert [a.login for a in report.top_unmatched] == ["ana"]


def test_report_service_reads_storage():
    """Test that the report service delegates to the storage read models."""
    storage = InMemoryContributorStorage()
    storage.register_repositories([RepositoryRecord("acme", "app")])
    repo_id = storage.find_repo_id("acme", "app")
    user_id = storage.upsert_identity(Profile(github_id=1, login="dev", name="Dev"))
    storage.upsert_contribution(repo_id, user_id, 12)
    storage.upsert_origin_estimate(repo_id, user_id, analyze_samples("dev", samples(2, "+08:00", 8)))

    service = ReportService(storage)

    assert [d.display_name for d in service.top_contributors(repo_id)] == ["Dev"]
    assert service.origin_stats(repo_id).matched_percentage == 100.0
    service.log_repository_report(repo_id, "acme/app")
