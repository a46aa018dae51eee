"""In-memory storage with the same natural-key upsert semantics as PostgreSQL.

Used for dry runs, where nothing should reach the database, and in tests.
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple
from contributor_origin.domain.models import (
    ContributorDetail,
    OriginEstimate,
    OriginStats,
    Profile,
    RepositoryRecord,
)
from contributor_origin.domain.repository_interface import IContributorStorage


logger = logging.getLogger(__name__)


def _merge_profile(existing: Profile, update: Profile) -> Profile:
    """Refresh mutable fields, keeping known values the update lacks."""
    changes = {
        field: getattr(update, field)
        for field in (
            "login", "name", "email", "avatar_url", "company", "location", "bio",
            "public_repos", "followers", "following", "updated_at"
        )
        if field == "login" or getattr(update, field) is not None
    }
    return replace(existing, **changes)


class InMemoryContributorStorage(IContributorStorage):
    """Dictionary-backed IContributorStorage."""

    def __init__(self) -> None:
        self._repositories: Dict[Tuple[str, str], RepositoryRecord] = {}
        self._users: Dict[int, Tuple[int, Profile]] = {}
        self._contributions: Dict[Tuple[int, int], int] = {}
        self._estimates: Dict[Tuple[int, int], OriginEstimate] = {}
        self._next_repo_id = 1
        self._next_user_id = 1

    def upsert_identity(self, profile: Profile) -> int:
        if profile.github_id in self._users:
            user_id, existing = self._users[profile.github_id]
            self._users[profile.github_id] = (user_id, _merge_profile(existing, profile))
            return user_id

        user_id = self._next_user_id
        self._next_user_id += 1
        self._users[profile.github_id] = (user_id, profile)
        return user_id

    def upsert_contribution(self, repo_id: int, user_id: int, count: int) -> None:
        self._contributions[(repo_id, user_id)] = count

    def upsert_origin_estimate(self, repo_id: int, user_id: int, estimate: OriginEstimate) -> None:
        self._estimates[(repo_id, user_id)] = estimate

    def find_repo_id(self, owner: str, name: str) -> Optional[int]:
        record = self._repositories.get((owner.lower(), name.lower()))
        return record.repo_id if record else None

    def count_existing_contributors(self, repo_id: int) -> int:
        return sum(1 for (stored_repo, _) in self._contributions if stored_repo == repo_id)

    def register_repositories(self, repositories: List[RepositoryRecord]) -> None:
        for repo in repositories:
            existing = self._repositories.get(repo.natural_key)
            if existing is not None:
                self._repositories[repo.natural_key] = replace(
                    existing,
                    github_url=repo.github_url or existing.github_url,
                    display_name=repo.display_name or existing.display_name
                )
                continue
            self._repositories[repo.natural_key] = repo.with_id(self._next_repo_id)
            self._next_repo_id += 1
        logger.info(f"Registered {len(repositories)} repositories in memory")

    def list_repositories(self) -> List[RepositoryRecord]:
        return sorted(self._repositories.values(), key=lambda repo: repo.repo_id)

    def _profiles_by_user_id(self) -> Dict[int, Profile]:
        return {user_id: profile for user_id, profile in self._users.values()}

    def _ranked(self, repo_id: int) -> List[Tuple[int, int]]:
        """(user_id, contributions) pairs of a repository, most contributions first."""
        rows = [
            (user_id, count) for (stored_repo, user_id), count in self._contributions.items()
            if stored_repo == repo_id
        ]
        return sorted(rows, key=lambda row: (-row[1], row[0]))

    def list_contributors(self, repo_id: int) -> List[Profile]:
        profiles = self._profiles_by_user_id()
        return [profiles[user_id] for user_id, _ in self._ranked(repo_id)]

    def get_user_id(self, github_id: int) -> Optional[int]:
        entry = self._users.get(github_id)
        return entry[0] if entry else None

    def get_contribution(self, repo_id: int, user_id: int) -> Optional[int]:
        return self._contributions.get((repo_id, user_id))

    def get_origin_estimate(self, repo_id: int, user_id: int) -> Optional[OriginEstimate]:
        return self._estimates.get((repo_id, user_id))

    def _detail(self, user_id: int, contributions: int) -> ContributorDetail:
        profile = self._profiles_by_user_id()[user_id]
        return ContributorDetail(
            github_id=profile.github_id,
            login=profile.login,
            name=profile.name,
            contributions=contributions,
            location=profile.location
        )

    def query_top_contributors(self, repo_id: int, limit: int = 10) -> List[ContributorDetail]:
        return [self._detail(user_id, count) for user_id, count in self._ranked(repo_id)[:limit]]

    def get_origin_stats(self, repo_id: int, limit: int = 10) -> OriginStats:
        estimates = {
            user_id: estimate for (stored_repo, user_id), estimate in self._estimates.items()
            if stored_repo == repo_id
        }
        matched = [
            self._detail(user_id, count) for user_id, count in self._ranked(repo_id)
            if user_id in estimates and estimates[user_id].likely_origin_match
        ]
        return OriginStats(
            total_contributors=len(estimates),
            matched_contributors=sum(1 for e in estimates.values() if e.likely_origin_match),
            matched_contributors_details=matched[:limit]
        )

    def close(self) -> None:
        pass
