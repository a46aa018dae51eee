"""Reporting over stored contributors and over local working copies."""
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional
from contributor_origin.domain.commit_history_interface import ICommitHistorySource
from contributor_origin.domain.errors import GitCommandError
from contributor_origin.domain.models import ContributorDetail, OriginEstimate, OriginStats
from contributor_origin.domain.origin_analysis import DEFAULT_RULES, OriginRules, analyze_samples
from contributor_origin.domain.repository_interface import IContributorStorage


logger = logging.getLogger(__name__)

TOP_N = 10


@dataclass(frozen=True)
class ContributorAnalysis:
    """Origin estimate of one author found in a working copy."""
    login: str
    email: Optional[str]
    estimate: OriginEstimate

    @property
    def commits_count(self) -> int:
        return self.estimate.total_samples

    @property
    def likely_origin_match(self) -> bool:
        return self.estimate.likely_origin_match


@dataclass(frozen=True)
class ContributorsReport:
    """Split of a repository's authors into likely matches and the rest."""
    total_contributors: int
    matched_count: int
    unmatched_count: int
    matched_percentage: float
    total_commits: int
    matched_commits: int
    unmatched_commits: int
    matched_commits_percentage: float
    top_matched: List[ContributorAnalysis] = field(default_factory=list)
    top_unmatched: List[ContributorAnalysis] = field(default_factory=list)

    @property
    def unmatched_percentage(self) -> float:
        return 100.0 - self.matched_percentage if self.total_contributors else 0.0

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, ensure_ascii=False)

    def log_summary(self) -> None:
        logger.info("Contributor origin report:")
        logger.info("-" * 50)
        logger.info(f"Total contributors: {self.total_contributors}")
        logger.info(f"Likely matches: {self.matched_count} ({self.matched_percentage:.1f}%)")
        logger.info(f"Others: {self.unmatched_count} ({self.unmatched_percentage:.1f}%)")
        logger.info("-" * 50)
        logger.info(f"Total commits: {self.total_commits}")
        logger.info(f"Commits by likely matches: {self.matched_commits} ({self.matched_commits_percentage:.1f}%)")
        logger.info(f"Commits by others: {self.unmatched_commits}")
        logger.info("-" * 50)

        for title, group in (("Top likely matches:", self.top_matched), ("Top others:", self.top_unmatched)):
            if not group:
                continue
            logger.info(title)
            for i, analysis in enumerate(group, start=1):
                logger.info(
                    f"  {i}. {analysis.login} - {analysis.commits_count} commits "
                    f"(dominant offset {analysis.estimate.dominant_offset}, "
                    f"probability {analysis.estimate.probability:.2f})"
                )
        logger.info("-" * 50)


def build_contributors_report(analyses: List[ContributorAnalysis]) -> ContributorsReport:
    """Summarize analyses; groups are ordered by commit count descending."""
    ordered = sorted(analyses, key=lambda a: a.commits_count, reverse=True)
    matched = [a for a in ordered if a.likely_origin_match]
    unmatched = [a for a in ordered if not a.likely_origin_match]

    matched_commits = sum(a.commits_count for a in matched)
    unmatched_commits = sum(a.commits_count for a in unmatched)
    total_commits = matched_commits + unmatched_commits

    return ContributorsReport(
        total_contributors=len(ordered),
        matched_count=len(matched),
        unmatched_count=len(unmatched),
        matched_percentage=len(matched) / len(ordered) * 100.0 if ordered else 0.0,
        total_commits=total_commits,
        matched_commits=matched_commits,
        unmatched_commits=unmatched_commits,
        matched_commits_percentage=matched_commits / total_commits * 100.0 if total_commits else 0.0,
        top_matched=matched[:TOP_N],
        top_unmatched=unmatched[:TOP_N]
    )


async def analyze_working_copy(
    history: ICommitHistorySource,
    repo_path: str,
    rules: OriginRules = DEFAULT_RULES
) -> ContributorsReport:
    """Estimate the origin of every author of a local working copy.

    Authors are discovered from ``git shortlog``; no API or database access.

    Raises:
        WorkingCopyUnavailable: When repo_path is not a working copy
    """
    logger.info(f"Generating contributor report for {repo_path}")
    emails = await history.list_author_emails(repo_path)

    analyses: List[ContributorAnalysis] = []
    for email in emails:
        try:
            samples = await history.sample_commits(repo_path, email)
        except GitCommandError as e:
            logger.warning(f"Could not read commits of {email}: {e}")
            continue

        login = email.split("@")[0] or email
        estimate = analyze_samples(login, samples, rules)
        if estimate is None:
            logger.warning(f"No commits found for {email}")
            continue
        analyses.append(ContributorAnalysis(login=login, email=email, estimate=estimate))

    return build_contributors_report(analyses)


class ReportService:
    """Read-side queries over stored contributors and origin estimates."""

    def __init__(self, storage: IContributorStorage):
        self._storage = storage

    def top_contributors(self, repo_id: int, limit: int = TOP_N) -> List[ContributorDetail]:
        return self._storage.query_top_contributors(repo_id, limit)

    def origin_stats(self, repo_id: int, limit: int = TOP_N) -> OriginStats:
        return self._storage.get_origin_stats(repo_id, limit)

    def log_repository_report(self, repo_id: int, full_name: str) -> None:
        """Log the top contributors and origin statistics of a repository."""
        top = self.top_contributors(repo_id)
        if not top:
            logger.info(f"No contributors stored for {full_name}")
        else:
            logger.info(f"Top contributors of {full_name}:")
            logger.info("-" * 50)
            for i, detail in enumerate(top, start=1):
                location = f" ({detail.location})" if detail.location else ""
                logger.info(f"{i:>4}. {detail.display_name}{location} - {detail.contributions} contributions")
            logger.info("-" * 50)

        stats = self.origin_stats(repo_id)
        logger.info(
            f"{full_name}: {stats.matched_contributors} of {stats.total_contributors} analyzed "
            f"contributors are likely matches ({stats.matched_percentage:.1f}%)"
        )
        for i, detail in enumerate(stats.matched_contributors_details[:5], start=1):
            logger.info(f"  {i}. {detail.display_name} - {detail.contributions} contributions")
