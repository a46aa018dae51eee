"""Database initialization script.

Creates the tables the crawler upserts into, each with the natural-key
unique constraint its upserts conflict on.
"""
import sys
import psycopg2
import logging
from dotenv import load_dotenv
from contributor_origin.config import get_connection_string

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS repositories (
        id SERIAL PRIMARY KEY,
        owner VARCHAR(255) NOT NULL,
        name VARCHAR(255) NOT NULL,
        full_name VARCHAR(511) NOT NULL,
        github_url TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS github_users (
        id SERIAL PRIMARY KEY,
        github_id BIGINT NOT NULL,
        login VARCHAR(255) NOT NULL,
        name VARCHAR(255),
        email VARCHAR(255),
        avatar_url TEXT,
        company VARCHAR(255),
        location VARCHAR(255),
        bio TEXT,
        public_repos INTEGER,
        followers INTEGER,
        following INTEGER,
        created_at TIMESTAMPTZ,
        updated_at TIMESTAMPTZ,
        inserted_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at_local TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT github_users_github_id_unique UNIQUE (github_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS repository_contributors (
        id SERIAL PRIMARY KEY,
        repository_id INTEGER NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
        user_id INTEGER NOT NULL REFERENCES github_users(id) ON DELETE CASCADE,
        contributions INTEGER NOT NULL DEFAULT 0,
        inserted_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT repository_contributors_repo_user_unique UNIQUE (repository_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contributor_locations (
        id SERIAL PRIMARY KEY,
        repository_id INTEGER NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
        user_id INTEGER NOT NULL REFERENCES github_users(id) ON DELETE CASCADE,
        likely_origin_match BOOLEAN NOT NULL,
        origin_probability DOUBLE PRECISION NOT NULL,
        common_timezone VARCHAR(64),
        timezone_stats JSONB NOT NULL,
        commit_hours JSONB NOT NULL,
        total_samples INTEGER NOT NULL DEFAULT 0,
        analyzed_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT contributor_locations_repo_user_unique UNIQUE (repository_id, user_id)
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_repositories_owner_name_lower
    ON repositories (LOWER(owner), LOWER(name))
    """,
    "CREATE INDEX IF NOT EXISTS idx_github_users_login ON github_users(login)",
    "CREATE INDEX IF NOT EXISTS idx_repositories_github_url ON repositories(github_url)",
    """
    CREATE INDEX IF NOT EXISTS idx_repository_contributors_contributions
    ON repository_contributors(repository_id, contributions DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_contributor_locations_match
    ON contributor_locations(repository_id, likely_origin_match)
    """,
]


def create_schema(conn) -> None:
    """Create database schema.

    Schema design considerations:
    - repositories are unique on (LOWER(owner), LOWER(name)), matching how
      GitHub resolves names; registration upserts conflict on that index
    - github_users is keyed on the platform github_id; the SERIAL id is local
    - repository_contributors and contributor_locations are unique per
      (repository_id, user_id), so re-ingestion replaces rather than appends
    - Histograms are JSONB: offset label -> count, local hour -> count
    """
    cursor = conn.cursor()

    try:
        for statement in SCHEMA_STATEMENTS:
            cursor.execute(statement)

        conn.commit()
        logger.info("Database schema created successfully")

    except Exception as e:
        conn.rollback()
        logger.error(f"Error creating schema: {e}")
        raise
    finally:
        cursor.close()


def main():
    """Initialize the database."""
    try:
        conn_string = get_connection_string()
        logger.info("Connecting to database...")

        conn = psycopg2.connect(conn_string)
        conn.autocommit = False

        create_schema(conn)

        conn.close()
        logger.info("Database initialization completed successfully")

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
