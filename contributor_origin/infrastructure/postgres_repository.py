"""PostgreSQL storage implementation for contributor data persistence."""
import logging
from typing import Any, List, Optional, Sequence
import psycopg2
from psycopg2.extras import Json, execute_values
from contributor_origin.domain.errors import PersistenceError
from contributor_origin.domain.models import (
    ContributorDetail,
    OriginEstimate,
    OriginStats,
    Profile,
    RepositoryRecord,
    unique_repositories,
)
from contributor_origin.domain.repository_interface import IContributorStorage


logger = logging.getLogger(__name__)


class PostgresContributorStorage(IContributorStorage):
    """PostgreSQL implementation of contributor storage.

    Every write is a single ``INSERT ... ON CONFLICT`` statement committed on
    its own, keyed on the natural keys (github_id, (repository_id, user_id),
    (owner, name)). A failed statement is rolled back and reported as a
    PersistenceError without affecting other records.
    """

    def __init__(self, connection_string: str):
        """Initialize PostgreSQL connection.

        Args:
            connection_string: PostgreSQL connection string
        """
        self._connection_string = connection_string
        self._conn = psycopg2.connect(connection_string)
        self._conn.autocommit = False
        logger.info("Connected to PostgreSQL database")

    def _write(self, operation: str, key: object, query: str, params: Sequence[Any]) -> Optional[tuple]:
        """Run one write statement in its own transaction.

        Returns:
            The first row produced by a RETURNING clause, if any
        """
        cursor = self._conn.cursor()
        try:
            cursor.execute(query, params)
            row = cursor.fetchone() if cursor.description else None
            self._conn.commit()
            return row
        except psycopg2.Error as e:
            self._conn.rollback()
            logger.error(f"Error during {operation} for {key}: {e}")
            raise PersistenceError(operation, key, e) from e
        finally:
            cursor.close()

    def _read(self, query: str, params: Sequence[Any] = ()) -> List[tuple]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(query, params)
            return cursor.fetchall()
        except psycopg2.Error as e:
            self._conn.rollback()
            logger.error(f"Error running query: {e}")
            raise PersistenceError("query", query.split()[0], e) from e
        finally:
            cursor.close()

    def upsert_identity(self, profile: Profile) -> int:
        """Insert or refresh a GitHub user keyed on github_id.

        The github_id is never updated; profile fields are replaced with the
        latest sighting.

        Returns:
            Local user id
        """
        query = """
            INSERT INTO github_users
                (github_id, login, name, email, avatar_url, company, location, bio,
                 public_repos, followers, following, created_at, updated_at, updated_at_local)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, CURRENT_TIMESTAMP)
            ON CONFLICT (github_id)
            DO UPDATE SET
                login = EXCLUDED.login,
                name = COALESCE(EXCLUDED.name, github_users.name),
                email = COALESCE(EXCLUDED.email, github_users.email),
                avatar_url = COALESCE(EXCLUDED.avatar_url, github_users.avatar_url),
                company = COALESCE(EXCLUDED.company, github_users.company),
                location = COALESCE(EXCLUDED.location, github_users.location),
                bio = COALESCE(EXCLUDED.bio, github_users.bio),
                public_repos = COALESCE(EXCLUDED.public_repos, github_users.public_repos),
                followers = COALESCE(EXCLUDED.followers, github_users.followers),
                following = COALESCE(EXCLUDED.following, github_users.following),
                updated_at = COALESCE(EXCLUDED.updated_at, github_users.updated_at),
                updated_at_local = CURRENT_TIMESTAMP
            RETURNING id
        """
        row = self._write("upsert_identity", profile.login, query, (
            profile.github_id,
            profile.login,
            profile.name,
            profile.email,
            profile.avatar_url,
            profile.company,
            profile.location,
            profile.bio,
            profile.public_repos,
            profile.followers,
            profile.following,
            profile.created_at,
            profile.updated_at,
        ))
        return row[0]

    def upsert_contribution(self, repo_id: int, user_id: int, count: int) -> None:
        """Insert or replace a contribution count.

        Only touches the row when the count actually changed.
        """
        query = """
            INSERT INTO repository_contributors (repository_id, user_id, contributions, updated_at)
            VALUES (%s, %s, %s, CURRENT_TIMESTAMP)
            ON CONFLICT (repository_id, user_id)
            DO UPDATE SET
                contributions = EXCLUDED.contributions,
                updated_at = CURRENT_TIMESTAMP
            WHERE repository_contributors.contributions IS DISTINCT FROM EXCLUDED.contributions
        """
        self._write("upsert_contribution", (repo_id, user_id), query, (repo_id, user_id, count))

    def upsert_origin_estimate(self, repo_id: int, user_id: int, estimate: OriginEstimate) -> None:
        """Insert or replace the origin estimate of a contributor."""
        query = """
            INSERT INTO contributor_locations
                (repository_id, user_id, likely_origin_match, origin_probability, common_timezone,
                 timezone_stats, commit_hours, total_samples, analyzed_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, CURRENT_TIMESTAMP)
            ON CONFLICT (repository_id, user_id)
            DO UPDATE SET
                likely_origin_match = EXCLUDED.likely_origin_match,
                origin_probability = EXCLUDED.origin_probability,
                common_timezone = EXCLUDED.common_timezone,
                timezone_stats = EXCLUDED.timezone_stats,
                commit_hours = EXCLUDED.commit_hours,
                total_samples = EXCLUDED.total_samples,
                analyzed_at = CURRENT_TIMESTAMP
        """
        self._write("upsert_origin_estimate", (repo_id, user_id), query, (
            repo_id,
            user_id,
            estimate.likely_origin_match,
            estimate.probability,
            estimate.dominant_offset,
            Json(estimate.timezone_histogram),
            Json({str(hour): count for hour, count in sorted(estimate.hour_histogram.items())}),
            estimate.total_samples,
        ))

    def find_repo_id(self, owner: str, name: str) -> Optional[int]:
        """Find a registered repository by owner/name, then by GitHub URL."""
        rows = self._read(
            "SELECT id FROM repositories WHERE LOWER(owner) = LOWER(%s) AND LOWER(name) = LOWER(%s) "
            "ORDER BY id LIMIT 1",
            (owner, name)
        )
        if rows:
            return rows[0][0]

        patterns = [
            f"%github.com/{owner}/{name}",
            f"%github.com/{owner}/{name}/%",
            f"%github.com/{owner}/{name}.git",
        ]
        rows = self._read(
            """
            SELECT id, github_url FROM repositories
            WHERE github_url ILIKE %s OR github_url ILIKE %s OR github_url ILIKE %s
            ORDER BY id
            LIMIT 1
            """,
            patterns
        )
        if rows:
            logger.info(f"Matched {owner}/{name} by URL {rows[0][1]} (ID: {rows[0][0]})")
            return rows[0][0]

        logger.warning(f"Repository {owner}/{name} is not registered")
        return None

    def count_existing_contributors(self, repo_id: int) -> int:
        rows = self._read(
            "SELECT COUNT(*) FROM repository_contributors WHERE repository_id = %s",
            (repo_id,)
        )
        return rows[0][0]

    def register_repositories(self, repositories: List[RepositoryRecord]) -> None:
        """Save or update repositories using efficient UPSERT.

        Owner and name are matched case-insensitively, both within the batch
        and against stored rows.

        Args:
            repositories: RepositoryRecord entities to persist
        """
        repositories = unique_repositories(repositories)
        if not repositories:
            return

        cursor = self._conn.cursor()

        try:
            values = [
                (repo.owner, repo.name, repo.label, repo.github_url)
                for repo in repositories
            ]

            query = """
                INSERT INTO repositories (owner, name, full_name, github_url, updated_at)
                VALUES %s
                ON CONFLICT ((LOWER(owner)), (LOWER(name)))
                DO UPDATE SET
                    github_url = COALESCE(EXCLUDED.github_url, repositories.github_url),
                    full_name = CASE
                        WHEN EXCLUDED.full_name <> EXCLUDED.owner || '/' || EXCLUDED.name
                        THEN EXCLUDED.full_name
                        ELSE repositories.full_name
                    END,
                    updated_at = CURRENT_TIMESTAMP
                WHERE repositories.github_url IS DISTINCT FROM EXCLUDED.github_url
                   OR repositories.full_name IS DISTINCT FROM EXCLUDED.full_name
            """

            execute_values(
                cursor,
                query,
                values,
                template="(%s, %s, %s, %s, CURRENT_TIMESTAMP)"
            )

            self._conn.commit()
            logger.info(f"Registered {len(repositories)} repositories")

        except psycopg2.Error as e:
            self._conn.rollback()
            logger.error(f"Error registering repositories: {e}")
            raise PersistenceError("register_repositories", len(repositories), e) from e
        finally:
            cursor.close()

    def list_repositories(self) -> List[RepositoryRecord]:
        rows = self._read("SELECT id, owner, name, github_url, full_name FROM repositories ORDER BY id")
        return [
            RepositoryRecord(
                owner=owner,
                name=name,
                repo_id=repo_id,
                github_url=url,
                display_name=full_name if full_name != f"{owner}/{name}" else None
            )
            for repo_id, owner, name, url, full_name in rows
        ]

    def list_contributors(self, repo_id: int) -> List[Profile]:
        rows = self._read(
            """
            SELECT gu.github_id, gu.login, gu.name, gu.email, gu.avatar_url, gu.company, gu.location
            FROM repository_contributors rc
            JOIN github_users gu ON rc.user_id = gu.id
            WHERE rc.repository_id = %s
            ORDER BY rc.contributions DESC, gu.id
            """,
            (repo_id,)
        )
        return [
            Profile(
                github_id=github_id,
                login=login,
                name=name,
                email=email,
                avatar_url=avatar_url,
                company=company,
                location=location
            )
            for github_id, login, name, email, avatar_url, company, location in rows
        ]

    def get_user_id(self, github_id: int) -> Optional[int]:
        rows = self._read("SELECT id FROM github_users WHERE github_id = %s", (github_id,))
        return rows[0][0] if rows else None

    def query_top_contributors(self, repo_id: int, limit: int = 10) -> List[ContributorDetail]:
        rows = self._read(
            """
            SELECT gu.github_id, gu.login, gu.name, rc.contributions, gu.location
            FROM repository_contributors rc
            JOIN github_users gu ON rc.user_id = gu.id
            WHERE rc.repository_id = %s
            ORDER BY rc.contributions DESC
            LIMIT %s
            """,
            (repo_id, limit)
        )
        return [ContributorDetail(*row) for row in rows]

    def get_origin_stats(self, repo_id: int, limit: int = 10) -> OriginStats:
        rows = self._read(
            """
            SELECT
                COUNT(*) AS total_contributors,
                COALESCE(SUM(CASE WHEN likely_origin_match THEN 1 ELSE 0 END), 0) AS matched
            FROM contributor_locations
            WHERE repository_id = %s
            """,
            (repo_id,)
        )
        total, matched = rows[0] if rows else (0, 0)

        details = self._read(
            """
            SELECT gu.github_id, gu.login, gu.name, rc.contributions, gu.location
            FROM contributor_locations cl
            JOIN github_users gu ON cl.user_id = gu.id
            JOIN repository_contributors rc
              ON cl.user_id = rc.user_id AND cl.repository_id = rc.repository_id
            WHERE cl.repository_id = %s AND cl.likely_origin_match
            ORDER BY rc.contributions DESC
            LIMIT %s
            """,
            (repo_id, limit)
        )
        return OriginStats(
            total_contributors=int(total),
            matched_contributors=int(matched),
            matched_contributors_details=[ContributorDetail(*row) for row in details]
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            logger.info("Closed PostgreSQL connection")
