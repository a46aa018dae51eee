"""GitHub GraphQL client for user profile lookups with retry logic."""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional
import aiohttp
from gql import gql, Client
from gql.transport.aiohttp import AIOHTTPTransport
from gql.transport.exceptions import (
    TransportError as GraphQLTransportError,
    TransportProtocolError,
    TransportQueryError,
    TransportServerError,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)
from contributor_origin.domain.errors import (
    BadStatusError,
    MalformedResponseError,
    NetworkError,
    RateLimitedError,
)
from contributor_origin.domain.github_interface import IProfileClient
from contributor_origin.domain.models import Profile
from contributor_origin.infrastructure.token_rotation import TokenRotation


logger = logging.getLogger(__name__)

GRAPHQL_URL = "https://api.github.com/graphql"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _total_count(node: Any) -> Optional[int]:
    if isinstance(node, dict):
        return node.get("totalCount")
    return None


def profile_from_user_node(user: Dict[str, Any]) -> Profile:
    """Map a GraphQL ``User`` node onto the Profile entity."""
    if not isinstance(user, dict) or user.get("databaseId") is None or not user.get("login"):
        raise MalformedResponseError(f"Unexpected user payload: {user!r}")

    return Profile(
        github_id=int(user["databaseId"]),
        login=user["login"],
        name=user.get("name") or None,
        # GraphQL returns "" rather than null for a hidden email
        email=user.get("email") or None,
        avatar_url=user.get("avatarUrl"),
        company=user.get("company"),
        location=user.get("location"),
        bio=user.get("bio"),
        public_repos=_total_count(user.get("repositories")),
        followers=_total_count(user.get("followers")),
        following=_total_count(user.get("following")),
        created_at=_parse_datetime(user.get("createdAt")),
        updated_at=_parse_datetime(user.get("updatedAt"))
    )


class GitHubGraphQLProfileClient(IProfileClient):
    """GitHub GraphQL API client for extended user profiles.

    Implements the IProfileClient port. Network failures are retried with
    exponential backoff; rate-limit and not-found errors are raised at once.
    """

    PROFILE_QUERY = gql("""
        query UserProfile($login: String!) {
            user(login: $login) {
                databaseId
                login
                name
                email
                avatarUrl
                company
                location
                bio
                repositories(privacy: PUBLIC) {
                    totalCount
                }
                followers {
                    totalCount
                }
                following {
                    totalCount
                }
                createdAt
                updatedAt
            }
            rateLimit {
                remaining
                resetAt
            }
        }
    """)

    def __init__(self, tokens: TokenRotation, url: str = GRAPHQL_URL):
        """Initialize GitHub client.

        Args:
            tokens: Token rotation strategy queried per request
            url: GraphQL endpoint
        """
        self._tokens = tokens
        self._url = url
        self._rate_limit_remaining: Optional[int] = None
        self._rate_limit_reset_at: Optional[datetime] = None

    def _new_client(self) -> Client:
        """Build a GraphQL client for the next token.

        A client holds one connected session at a time, so concurrent
        tasks each get their own.
        """
        token = self._tokens.next_token()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        transport = AIOHTTPTransport(url=self._url, headers=headers)
        return Client(
            transport=transport,
            fetch_schema_from_transport=False
        )

    @retry(
        retry=retry_if_exception_type(NetworkError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True
    )
    async def get_identity_profile(self, login: str) -> Profile:
        """Fetch the profile of a GitHub user.

        Args:
            login: GitHub login

        Returns:
            Profile entity

        Raises:
            RateLimitedError: When the GraphQL quota is exhausted
            BadStatusError: When the user does not exist or the server refuses
            NetworkError: When the request keeps failing at the network level
            MalformedResponseError: When the answer is not a GraphQL result
        """
        client = self._new_client()

        try:
            async with client as session:
                result = await session.execute(
                    self.PROFILE_QUERY,
                    variable_values={"login": login}
                )
        except TransportQueryError as e:
            error_types = {err.get("type") for err in (e.errors or []) if isinstance(err, dict)}
            if "RATE_LIMITED" in error_types:
                raise RateLimitedError(0, self._rate_limit_reset_at, str(e)) from e
            raise BadStatusError(404 if "NOT_FOUND" in error_types else 400, f"user/{login}") from e
        except TransportServerError as e:
            if e.code in (403, 429):
                raise RateLimitedError(0, self._rate_limit_reset_at, str(e)) from e
            raise BadStatusError(e.code or 500, f"user/{login}") from e
        except TransportProtocolError as e:
            raise MalformedResponseError(f"Invalid GraphQL answer for user/{login}: {e}") from e
        except GraphQLTransportError as e:
            # Closed or reused transports and any other gql transport failure
            raise MalformedResponseError(f"GraphQL transport failed for user/{login}: {e!r}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Network error fetching profile {login}: {e}")
            raise NetworkError(str(e)) from e

        rate_limit = result.get("rateLimit") or {}
        self._rate_limit_remaining = rate_limit.get("remaining")
        self._rate_limit_reset_at = _parse_datetime(rate_limit.get("resetAt"))
        logger.debug(
            f"Profile {login} fetched. Rate limit remaining: {self._rate_limit_remaining}, "
            f"resets at: {self._rate_limit_reset_at}"
        )

        user = result.get("user")
        if user is None:
            raise BadStatusError(404, f"user/{login}")
        return profile_from_user_node(user)

    async def close(self) -> None:
        """Nothing to release: each request closes its own session."""
        pass
