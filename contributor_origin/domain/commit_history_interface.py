"""Commit history interface (port) over a local working copy."""
from abc import ABC, abstractmethod
from typing import List
from contributor_origin.domain.models import CommitTimestampSample


class ICommitHistorySource(ABC):
    """Abstract interface for reading commit timestamps of an author."""

    @abstractmethod
    def has_working_copy(self, repo_path: str) -> bool:
        """Whether a working copy is materialized at repo_path."""
        pass

    @abstractmethod
    async def sample_commits(self, repo_path: str, author: str) -> List[CommitTimestampSample]:
        """Return the commit timestamp samples of one author.

        Args:
            repo_path: Path of the local working copy
            author: Author identifier (email, name or login)

        Returns:
            Samples in history order; empty when the author has no commits

        Raises:
            WorkingCopyUnavailable: When repo_path is not a usable working copy
        """
        pass

    @abstractmethod
    async def list_author_emails(self, repo_path: str) -> List[str]:
        """Return the distinct author emails of the working copy."""
        pass
