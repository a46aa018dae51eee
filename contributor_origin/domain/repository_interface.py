"""Storage interface (port) for contributor data persistence.

This is the port in hexagonal architecture that the infrastructure layer implements.
Every write is an upsert keyed on a natural key, so repeated or concurrent
runs converge on the same state.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from contributor_origin.domain.models import (
    ContributorDetail,
    OriginEstimate,
    OriginStats,
    Profile,
    RepositoryRecord,
)


class IContributorStorage(ABC):
    """Abstract interface for contributor data storage."""

    @abstractmethod
    def upsert_identity(self, profile: Profile) -> int:
        """Insert or refresh a user keyed on github_id.

        Returns:
            Local user id
        """
        pass

    @abstractmethod
    def upsert_contribution(self, repo_id: int, user_id: int, count: int) -> None:
        """Insert or replace the contribution count of (repo_id, user_id)."""
        pass

    @abstractmethod
    def upsert_origin_estimate(self, repo_id: int, user_id: int, estimate: OriginEstimate) -> None:
        """Insert or replace the origin estimate of (repo_id, user_id)."""
        pass

    @abstractmethod
    def find_repo_id(self, owner: str, name: str) -> Optional[int]:
        """Look up the local id of a registered repository."""
        pass

    @abstractmethod
    def count_existing_contributors(self, repo_id: int) -> int:
        """Number of contribution rows stored for a repository."""
        pass

    @abstractmethod
    def register_repositories(self, repositories: List[RepositoryRecord]) -> None:
        """Save or update repositories keyed on (owner, name)."""
        pass

    @abstractmethod
    def list_repositories(self) -> List[RepositoryRecord]:
        """All registered repositories with their local ids."""
        pass

    @abstractmethod
    def list_contributors(self, repo_id: int) -> List[Profile]:
        """Stored identities contributing to a repository, by contributions desc."""
        pass

    @abstractmethod
    def get_user_id(self, github_id: int) -> Optional[int]:
        """Local id of a stored identity."""
        pass

    @abstractmethod
    def query_top_contributors(self, repo_id: int, limit: int = 10) -> List[ContributorDetail]:
        """Top contributors of a repository by contribution count."""
        pass

    @abstractmethod
    def get_origin_stats(self, repo_id: int, limit: int = 10) -> OriginStats:
        """Summary of stored origin estimates for a repository."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        pass
