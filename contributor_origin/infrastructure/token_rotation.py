"""Round-robin access token strategy queried by the GitHub transports."""
import itertools
import logging
from typing import Dict, Iterable, Optional


logger = logging.getLogger(__name__)


class TokenRotation:
    """Hands out tokens in turn so the request load spreads over all of them.

    With no tokens configured requests go out unauthenticated, which GitHub
    limits to 60 requests per hour.
    """

    def __init__(self, tokens: Iterable[str]):
        self._tokens = [token for token in tokens if token]
        self._cycle = itertools.cycle(self._tokens) if self._tokens else None
        if not self._tokens:
            logger.warning("No GitHub token configured; using unauthenticated requests")

    def __len__(self) -> int:
        return len(self._tokens)

    def next_token(self) -> Optional[str]:
        if self._cycle is None:
            return None
        return next(self._cycle)

    def auth_headers(self) -> Dict[str, str]:
        """Headers for the next request, including Authorization when possible."""
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "contributor-origin-crawler"
        }
        token = self.next_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers
