"""GitHub API interfaces (ports) for fetching contributor data.

This is the anti-corruption layer that shields the domain from GitHub API specifics.
"""
from abc import ABC, abstractmethod
from contributor_origin.domain.models import PageResult, Profile


class IContributorListingClient(ABC):
    """Abstract interface for paginated contributor listings."""

    @abstractmethod
    async def list_page(self, owner: str, name: str, page: int, page_size: int) -> PageResult:
        """Fetch one page of contribution records for a repository.

        Args:
            owner: Repository owner login
            name: Repository name
            page: 1-based page number
            page_size: Number of records per page

        Returns:
            PageResult with the page records and pagination/rate-limit info

        Raises:
            TransportError: On network failure, rate-limit rejection or bad status
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass


class IProfileClient(ABC):
    """Abstract interface for looking up user profiles."""

    @abstractmethod
    async def get_identity_profile(self, login: str) -> Profile:
        """Fetch the extended profile of a GitHub user.

        Raises:
            TransportError: When the profile cannot be fetched
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
