"""Main entry point for the contributor origin crawler.

Usage:
    python ingest_contributors.py register https://github.com/owner/repo
    python ingest_contributors.py run
    python ingest_contributors.py analyze OWNER REPO
    python ingest_contributors.py query OWNER REPO
    python ingest_contributors.py analyze-local PATH [--output report.json]
"""
import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import replace
from typing import List, Optional
from dotenv import load_dotenv
from contributor_origin.application.ingestion_service import IngestionService
from contributor_origin.application.report_service import ReportService, analyze_working_copy
from contributor_origin.config import IngestionConfig, get_connection_string, write_sample_config
from contributor_origin.domain.errors import PersistenceError, WorkingCopyUnavailable
from contributor_origin.domain.models import IngestionSummary, RepositoryRecord, TaskStatus
from contributor_origin.domain.repository_interface import IContributorStorage
from contributor_origin.infrastructure.git_history import GitCommitHistory
from contributor_origin.infrastructure.github_client import GitHubRestClient
from contributor_origin.infrastructure.github_profile_client import GitHubGraphQLProfileClient
from contributor_origin.infrastructure.memory_storage import InMemoryContributorStorage
from contributor_origin.infrastructure.postgres_repository import PostgresContributorStorage
from contributor_origin.infrastructure.token_rotation import TokenRotation

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ingest GitHub contributors and estimate their origin from commit timezones."
    )
    parser.add_argument("--dry-run", action="store_true",
                        help="Keep everything in memory instead of PostgreSQL")
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Repositories processed concurrently (overrides MAX_CONCURRENCY)")
    parser.add_argument("--sample-config", nargs="?", const=".env.example", metavar="PATH",
                        help="Write a template env file (default .env.example) and exit")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    subparsers.add_parser("run", help="Ingest every registered repository")

    p_analyze = subparsers.add_parser("analyze", help="Ingest and analyze one repository")
    p_analyze.add_argument("owner")
    p_analyze.add_argument("repo")

    p_query = subparsers.add_parser("query", help="Show stored statistics of one repository")
    p_query.add_argument("owner")
    p_query.add_argument("repo")

    p_register = subparsers.add_parser("register", help="Register repositories by URL")
    p_register.add_argument("urls", nargs="+")
    p_register.add_argument("-n", "--name", help="Display name (only with a single URL)")

    p_local = subparsers.add_parser("analyze-local", help="Analyze a local working copy only")
    p_local.add_argument("path")
    p_local.add_argument("--output", help="Write the report as JSON to this file")

    return parser


def build_storage(dry_run: bool) -> IContributorStorage:
    if dry_run:
        logger.info("Dry run: using in-memory storage")
        return InMemoryContributorStorage()
    return PostgresContributorStorage(get_connection_string())


def build_service(config: IngestionConfig, storage: IContributorStorage) -> IngestionService:
    tokens = TokenRotation(config.github_tokens)
    return IngestionService(
        listing_client=GitHubRestClient(tokens, endpoint=config.listing_endpoint),
        profile_client=GitHubGraphQLProfileClient(tokens),
        storage=storage,
        history=GitCommitHistory(),
        config=config
    )


def log_summary(summary: IngestionSummary) -> None:
    logger.info("=" * 50)
    logger.info("Ingestion Summary:")
    logger.info(f"  Repositories processed: {summary.repositories_processed}")
    logger.info(f"  Repositories skipped: {summary.repositories_skipped}")
    logger.info(f"  Repositories failed: {summary.repositories_failed}")
    logger.info(f"  Contributors stored: {summary.contributors_stored}")
    logger.info(f"  Origin estimates stored: {summary.estimates_stored}")
    logger.info(f"  Rate limit retries: {summary.rate_limit_retries}")
    logger.info(f"  Duration: {summary.duration_seconds:.2f} seconds")
    for report in summary.reports:
        if report.status is not TaskStatus.COMPLETED or report.record_failures:
            logger.info(
                f"  {report.repository}: {report.status.value}, "
                f"{report.record_failures} record failures, {report.error or 'no error'}"
            )
    logger.info("=" * 50)


async def ingest(service: IngestionService, records: List[RepositoryRecord]) -> IngestionSummary:
    """Run the ingestion, letting in-flight repositories finish on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_shutdown)
        except (NotImplementedError, RuntimeError):
            # Signal handlers are unavailable on some platforms
            pass
    return await service.ingest_repositories(records)


def register(storage: IContributorStorage, urls: List[str], name: Optional[str] = None) -> int:
    """Register repositories by URL; returns the process exit code."""
    records = [RepositoryRecord.from_url(url) for url in urls]
    invalid = [url for url, record in zip(urls, records) if record is None]
    for url in invalid:
        logger.error(f"Invalid repository URL: {url}")

    valid = [replace(record, display_name=name) for record in records if record is not None]
    try:
        storage.register_repositories(valid)
    except PersistenceError as e:
        logger.error(f"Failed to register repositories: {e}")
        return 1
    finally:
        storage.close()

    for record in valid:
        logger.info(f"Registered {record.label}")
    return 1 if invalid else 0


async def run_local_analysis(config: IngestionConfig, path: str, output: Optional[str]) -> int:
    try:
        report = await analyze_working_copy(GitCommitHistory(), path, config.rules)
    except WorkingCopyUnavailable as e:
        logger.error(str(e))
        return 1

    report.log_summary()
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(report.to_json())
        logger.info(f"Report written to {output}")
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    """Execute the requested command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.sample_config:
        write_sample_config(args.sample_config)
        logger.info(f"Sample configuration written to {args.sample_config}")
        return 0

    if args.command == "register" and args.name and len(args.urls) > 1:
        parser.error("--name can only be used with a single URL")

    if args.command is None:
        parser.print_help()
        return 1

    config = IngestionConfig.from_env()
    if args.concurrency is not None:
        config = replace(config, max_concurrency=max(1, args.concurrency))

    if args.command == "analyze-local":
        return await run_local_analysis(config, args.path, args.output)

    storage = build_storage(args.dry_run)

    if args.command == "register":
        return register(storage, args.urls, args.name)

    if args.command == "query":
        try:
            repo_id = storage.find_repo_id(args.owner, args.repo)
            if repo_id is None:
                logger.warning(f"Repository {args.owner}/{args.repo} is not registered")
                return 1
            ReportService(storage).log_repository_report(repo_id, f"{args.owner}/{args.repo}")
            return 0
        finally:
            storage.close()

    service = build_service(config, storage)
    try:
        if args.command == "run":
            records = storage.list_repositories()
            if not records:
                hint = " (--dry-run starts from an empty in-memory store)" if args.dry_run else ""
                logger.warning(f"No repositories registered; nothing to ingest{hint}")
                return 0
        else:
            record = RepositoryRecord(owner=args.owner, name=args.repo)
            if args.dry_run:
                storage.register_repositories([record])
            records = [record]

        summary = await ingest(service, records)
        log_summary(summary)

        report_service = ReportService(storage)
        for record in records:
            repo_id = record.repo_id or storage.find_repo_id(record.owner, record.name)
            if repo_id is not None:
                report_service.log_repository_report(repo_id, record.label)

        return 0 if summary.repositories_failed == 0 else 2

    except PersistenceError as e:
        logger.error(f"Ingestion failed: {e}", exc_info=True)
        return 1
    finally:
        await service.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
