"""Closed error hierarchy shared by ports and adapters.

Callers match on these types instead of inspecting error messages.
"""
from datetime import datetime
from typing import Optional


class TransportError(Exception):
    """Base class for failures talking to the GitHub API."""
    pass


class NetworkError(TransportError):
    """Connection failure, timeout or other transport-level problem."""
    pass


class RateLimitedError(TransportError):
    """Raised when GitHub rejects a request because the quota is exhausted."""

    def __init__(self, remaining: int, reset_at: Optional[datetime], message: str = "rate limit exceeded"):
        super().__init__(message)
        self.remaining = remaining
        self.reset_at = reset_at


class BadStatusError(TransportError):
    """Non-success HTTP status that is not a rate-limit rejection."""

    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status} for {url}")
        self.status = status
        self.url = url


class MalformedResponseError(TransportError):
    """Response body did not have the expected shape."""
    pass


class PersistenceError(Exception):
    """A storage operation failed and was rolled back."""

    def __init__(self, operation: str, key: object, cause: Optional[BaseException] = None):
        super().__init__(f"{operation} failed for {key}: {cause}")
        self.operation = operation
        self.key = key
        self.cause = cause


class CommitHistoryError(Exception):
    """Base class for commit history source failures."""
    pass


class WorkingCopyUnavailable(CommitHistoryError):
    """The repository working copy is absent or not a git work tree."""

    def __init__(self, path: str):
        super().__init__(f"working copy not available: {path}")
        self.path = path


class GitCommandError(CommitHistoryError):
    """A git invocation exited with a non-zero status."""

    def __init__(self, args, returncode: int, stderr: str = ""):
        super().__init__(f"git {' '.join(args)} exited with {returncode}: {stderr.strip()}")
        self.args_ = list(args)
        self.returncode = returncode
        self.stderr = stderr
