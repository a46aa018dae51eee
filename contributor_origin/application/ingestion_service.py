"""Ingestion service orchestrating fetch, classification and persistence."""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from contributor_origin.application.contributor_fetcher import ContributorFetcher
from contributor_origin.config import IngestionConfig
from contributor_origin.domain.commit_history_interface import ICommitHistorySource
from contributor_origin.domain.errors import (
    GitCommandError,
    PersistenceError,
    TransportError,
    WorkingCopyUnavailable,
)
from contributor_origin.domain.github_interface import IContributorListingClient, IProfileClient
from contributor_origin.domain.models import (
    CommitTimestampSample,
    ContributorCount,
    FetchOutcome,
    FetchResult,
    IngestionSummary,
    Profile,
    RepositoryRecord,
    TaskReport,
    TaskStatus,
)
from contributor_origin.domain.origin_analysis import analyze_samples
from contributor_origin.domain.repository_interface import IContributorStorage


logger = logging.getLogger(__name__)


class IngestionService:
    """Application service for ingesting repository contributors.

    Drives each repository through fetch -> profile -> persist -> classify
    -> persist. At most ``config.max_concurrency`` repositories are in
    flight at once. Tasks share nothing but the semaphore and the storage,
    and a failing task never takes its siblings down.
    """

    def __init__(
        self,
        listing_client: IContributorListingClient,
        profile_client: IProfileClient,
        storage: IContributorStorage,
        history: ICommitHistorySource,
        config: IngestionConfig,
        fetcher: Optional[ContributorFetcher] = None
    ):
        """Initialize ingestion service.

        Args:
            listing_client: Paginated contributor listing transport
            profile_client: User profile transport
            storage: Persistence gateway
            history: Commit history source over local working copies
            config: Run configuration
            fetcher: Fetcher override; built from listing_client when omitted
        """
        self._listing_client = listing_client
        self._profile_client = profile_client
        self._storage = storage
        self._history = history
        self._config = config
        self._fetcher = fetcher or ContributorFetcher(
            listing_client,
            page_size=config.page_size,
            max_pages=config.max_pages,
            request_delay=config.request_delay
        )
        self._shutdown_requested = False

    def request_shutdown(self) -> None:
        """Stop admitting new repositories; tasks already running finish normally."""
        if not self._shutdown_requested:
            logger.warning("Shutdown requested; waiting for in-flight repositories to finish")
        self._shutdown_requested = True

    async def ingest_repositories(self, repositories: Sequence[RepositoryRecord]) -> IngestionSummary:
        """Ingest every repository with bounded concurrency.

        Args:
            repositories: Repositories to process

        Returns:
            IngestionSummary with one TaskReport per repository
        """
        start_time = time.time()
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        logger.info(
            f"Starting ingestion of {len(repositories)} repositories "
            f"with concurrency {self._config.max_concurrency}"
        )

        async def run(record: RepositoryRecord) -> TaskReport:
            async with semaphore:
                if self._shutdown_requested:
                    return TaskReport(repository=record.full_name, status=TaskStatus.SKIPPED,
                                      error="shutdown requested")
                return await self.ingest_repository(record)

        results = await asyncio.gather(
            *(run(record) for record in repositories),
            return_exceptions=True
        )

        reports: List[TaskReport] = []
        for record, result in zip(repositories, results):
            if isinstance(result, Exception):
                logger.error(f"Task for {record.full_name} failed: {result!r}", exc_info=result)
                reports.append(TaskReport(
                    repository=record.full_name,
                    status=TaskStatus.FAILED,
                    error=repr(result)
                ))
            else:
                reports.append(result)

        duration = time.time() - start_time
        summary = IngestionSummary(
            repositories_processed=sum(1 for r in reports if r.status is TaskStatus.COMPLETED),
            repositories_skipped=sum(1 for r in reports if r.status is TaskStatus.SKIPPED),
            repositories_failed=sum(1 for r in reports if r.status is TaskStatus.FAILED),
            contributors_stored=sum(r.contributors_stored for r in reports),
            estimates_stored=sum(r.estimates_stored for r in reports),
            rate_limit_retries=sum(r.rate_limit_retries for r in reports),
            duration_seconds=duration,
            reports=reports
        )

        logger.info(
            f"Ingestion completed in {duration:.2f} seconds: "
            f"{summary.repositories_processed} processed, {summary.repositories_skipped} skipped, "
            f"{summary.repositories_failed} failed"
        )
        return summary

    async def ingest_repository(self, record: RepositoryRecord) -> TaskReport:
        """Run the full pipeline for one repository.

        Steps run strictly in order. Transport and persistence problems are
        logged and counted; only unexpected errors escape.
        """
        repo_id = record.repo_id
        if repo_id is None:
            repo_id = self._storage.find_repo_id(record.owner, record.name)
        if repo_id is None:
            logger.warning(f"Repository {record.full_name} is not registered; skipping")
            return TaskReport(repository=record.full_name, status=TaskStatus.SKIPPED,
                              error="repository not registered")

        logger.info(f"Processing {record.full_name} (ID: {repo_id})")

        existing = self._storage.count_existing_contributors(repo_id)
        if existing > self._config.sufficient_contributors:
            logger.info(
                f"{record.full_name} already has {existing} contributors stored; "
                f"skipping remote fetch"
            )
            identities = self._persisted_identities(repo_id)
            estimates, failures = await self._classify(record, repo_id, identities)
            return TaskReport(
                repository=record.full_name,
                status=TaskStatus.COMPLETED,
                estimates_stored=estimates,
                record_failures=failures,
                used_persisted_contributors=True
            )

        fetch_result, retries = await self._fetch_with_rate_limit_retry(record)
        if not fetch_result.is_complete:
            logger.warning(
                f"Contributor list for {record.full_name} is incomplete "
                f"({fetch_result.outcome.value}: {fetch_result.error}); storing what was fetched"
            )

        identities, failures = await self._store_contributors(repo_id, fetch_result.contributors)
        estimates, estimate_failures = await self._classify(record, repo_id, identities)

        return TaskReport(
            repository=record.full_name,
            status=TaskStatus.COMPLETED,
            contributors_stored=len(identities),
            estimates_stored=estimates,
            record_failures=failures + estimate_failures,
            fetch_outcome=fetch_result.outcome,
            rate_limit_retries=retries,
            error=fetch_result.error
        )

    async def _fetch_with_rate_limit_retry(self, record: RepositoryRecord) -> Tuple[FetchResult, int]:
        """Fetch contributors, waiting out a rate-limit reset when it is near enough."""
        retries = 0
        while True:
            result = await self._fetcher.fetch(record.owner, record.name)
            if result.outcome is not FetchOutcome.RATE_LIMITED or retries >= self._config.rate_limit_retries:
                return result, retries

            wait = self._seconds_until(result.rate_limit_reset)
            if wait is None or wait > self._config.max_rate_limit_wait:
                logger.warning(
                    f"Rate limit for {record.full_name} resets at {result.rate_limit_reset}; "
                    f"not waiting, keeping partial data"
                )
                return result, retries

            retries += 1
            logger.warning(
                f"Rate limit exhausted. Waiting {wait:.0f} seconds before retrying "
                f"{record.full_name} (retry {retries}/{self._config.rate_limit_retries})"
            )
            await asyncio.sleep(wait + 1)  # Add 1 second buffer

    @staticmethod
    def _seconds_until(reset_at: Optional[datetime]) -> Optional[float]:
        if reset_at is None:
            return None
        if reset_at.tzinfo is None:
            reset_at = reset_at.replace(tzinfo=timezone.utc)
        return max(0.0, (reset_at - datetime.now(timezone.utc)).total_seconds())

    async def _get_profile(self, contributor_count: ContributorCount) -> Profile:
        contributor = contributor_count.contributor
        try:
            return await self._profile_client.get_identity_profile(contributor.login)
        except TransportError as e:
            logger.warning(f"Failed to fetch profile of {contributor.login}: {e}; using minimal profile")
            return Profile.minimal(contributor)

    async def _store_contributors(
        self,
        repo_id: int,
        contributors: List[ContributorCount]
    ) -> Tuple[List[Tuple[int, Profile]], int]:
        """Fetch profiles and upsert identities and contribution counts.

        Returns:
            (stored (user_id, profile) pairs, number of failed records)
        """
        stored: List[Tuple[int, Profile]] = []
        failures = 0

        for contributor_count in contributors:
            profile = await self._get_profile(contributor_count)
            if profile.github_id != contributor_count.contributor.github_id:
                logger.warning(
                    f"Profile id {profile.github_id} of {profile.login} differs from listing id "
                    f"{contributor_count.contributor.github_id}; using minimal profile"
                )
                profile = Profile.minimal(contributor_count.contributor)

            try:
                user_id = self._storage.upsert_identity(profile)
                self._storage.upsert_contribution(repo_id, user_id, contributor_count.contributions)
                stored.append((user_id, profile))
                logger.debug(f"Stored contributor {profile.login} -> repository ID {repo_id}")
            except PersistenceError as e:
                failures += 1
                logger.warning(f"Failed to store contributor {profile.login}: {e}")

            await asyncio.sleep(self._config.request_delay)

        logger.info(f"Stored {len(stored)} contributors for repository ID {repo_id} ({failures} failures)")
        return stored, failures

    def _persisted_identities(self, repo_id: int) -> List[Tuple[int, Profile]]:
        identities = []
        for profile in self._storage.list_contributors(repo_id):
            user_id = self._storage.get_user_id(profile.github_id)
            if user_id is not None:
                identities.append((user_id, profile))
        return identities

    async def _classify(
        self,
        record: RepositoryRecord,
        repo_id: int,
        identities: List[Tuple[int, Profile]]
    ) -> Tuple[int, int]:
        """Estimate and store the origin of each identity.

        Skipped entirely when the working copy is not on disk.

        Returns:
            (estimates stored, number of failed records)
        """
        repo_path = self._config.working_copy_path(record.owner, record.name)
        if not self._history.has_working_copy(repo_path):
            logger.info(f"No working copy of {record.full_name} at {repo_path}; skipping origin analysis")
            return 0, 0

        # Samples are reused when several identities share an author identifier
        samples_by_author: Dict[str, List[CommitTimestampSample]] = {}
        stored = 0
        failures = 0

        for user_id, profile in identities:
            author = profile.author_identifier
            if author not in samples_by_author:
                try:
                    samples_by_author[author] = await self._history.sample_commits(repo_path, author)
                except WorkingCopyUnavailable as e:
                    logger.warning(f"Working copy of {record.full_name} disappeared: {e}")
                    return stored, failures
                except GitCommandError as e:
                    logger.warning(f"Could not read commits of {author}: {e}")
                    failures += 1
                    continue

            estimate = analyze_samples(profile.login, samples_by_author[author], self._config.rules)
            if estimate is None:
                logger.debug(f"No commits by {author} in {record.full_name}")
                continue

            try:
                self._storage.upsert_origin_estimate(repo_id, user_id, estimate)
                stored += 1
            except PersistenceError as e:
                failures += 1
                logger.warning(f"Failed to store origin estimate of {profile.login}: {e}")

        logger.info(f"Stored {stored} origin estimates for {record.full_name}")
        return stored, failures

    async def close(self) -> None:
        """Close connections."""
        await self._listing_client.close()
        await self._profile_client.close()
        self._storage.close()
