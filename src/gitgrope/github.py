"""
Async GitHub Client for gitgrope

This module provides the asynchronous GitHub API operations the release
engine needs, using aiohttp with lazy session management and rate-limit
tracking:
- Looking up the latest release of a repository
- Streaming the binary content of a release asset
"""

import asyncio
import importlib.metadata
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from aiohttp import ClientResponse, ClientSession, ClientTimeout, TCPConnector

from gitgrope.constants import (
    DEFAULT_HTTP_TIMEOUT,
    GITHUB_API_BASE,
    GITHUB_API_VERSION,
    GITHUB_ASSET_MEDIA_TYPE,
    GITHUB_JSON_MEDIA_TYPE,
    RATE_LIMIT_WARNING_THRESHOLD,
)
from gitgrope.exceptions import APIError, RateLimitError, ResourceNotFoundError
from gitgrope.log_utils import logger

from .models import Release, parse_release

_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `gitgrope/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version("gitgrope")
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"gitgrope/{app_version}"

    return _USER_AGENT_CACHE


class AsyncGitHubClient:
    """
    Asynchronous GitHub API client using aiohttp.

    One client exists per access token; every repository configured with the
    same token shares it. The underlying session is created on first use so
    clients can be built before the event loop starts.

    Example:
        async with AsyncGitHubClient(token="ghp_...") as client:
            release = await client.get_latest_release("acme", "tool")
    """

    def __init__(
        self,
        token: Optional[str] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        api_base: str = GITHUB_API_BASE,
    ) -> None:
        """
        Initialize the async GitHub client.

        Parameters:
            token (Optional[str]): GitHub access token; requests are unauthenticated when omitted.
            timeout (float): Total timeout in seconds for each HTTP request, including streamed downloads.
            api_base (str): Base URL of the GitHub REST API.
        """
        self.token = token or None
        self.timeout = ClientTimeout(total=timeout)
        self.api_base = api_base.rstrip("/")
        self._session: Optional[ClientSession] = None
        self._rate_limit_remaining: Optional[int] = None
        self._rate_limit_reset: Optional[datetime] = None

    async def __aenter__(self) -> "AsyncGitHubClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> ClientSession:
        """
        Ensure a session exists, creating one if needed.

        Returns:
            ClientSession: The active aiohttp session.
        """
        if self._session is None or self._session.closed:
            self._session = ClientSession(
                connector=TCPConnector(enable_cleanup_closed=True),
                timeout=self.timeout,
                headers=self._get_default_headers(),
            )
        return self._session

    def _get_default_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": GITHUB_JSON_MEDIA_TYPE,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": get_user_agent(),
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    async def close(self) -> None:
        """Close the client session and release resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _update_rate_limits(self, response: ClientResponse) -> None:
        """
        Record the rate-limit headers of a response and warn when the budget runs low.

        Parameters:
            response (ClientResponse): HTTP response carrying `X-RateLimit-Remaining` and `X-RateLimit-Reset` headers.
        """
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset = response.headers.get("X-RateLimit-Reset")

        if reset:
            try:
                self._rate_limit_reset = datetime.fromtimestamp(
                    int(reset), tz=timezone.utc
                )
            except (ValueError, TypeError, OSError):
                logger.debug(f"Invalid rate-limit reset header value: {reset}")

        if remaining:
            try:
                self._rate_limit_remaining = int(remaining)
            except (ValueError, TypeError):
                logger.debug(f"Invalid rate-limit header value: {remaining}")
            else:
                logger.debug(
                    f"GitHub API rate-limit remaining: {self._rate_limit_remaining}"
                )
                if self._rate_limit_remaining <= RATE_LIMIT_WARNING_THRESHOLD:
                    message = (
                        "GitHub API rate limit running low: "
                        f"{self._rate_limit_remaining} requests remaining"
                    )
                    if self._rate_limit_reset is not None:
                        resets_at = self._rate_limit_reset.strftime("%H:%M:%S UTC")
                        message += f" (resets at {resets_at})"
                    logger.warning(message)

    def _raise_for_status(self, response: ClientResponse, url: str) -> None:
        """
        Translate an unsuccessful response into the matching APIError.

        Raises:
            RateLimitError: For a 403 with an exhausted rate limit.
            ResourceNotFoundError: For a 404.
            APIError: For any other status >= 400.
        """
        if response.status < 400:
            return

        if response.status == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                reset = response.headers.get("X-RateLimit-Reset")
                raise RateLimitError(
                    reset_time=int(reset) if reset and reset.isdigit() else None,
                    endpoint=url,
                )
            raise APIError(
                "GitHub API access forbidden", endpoint=url, status_code=403
            )
        if response.status == 404:
            raise ResourceNotFoundError(
                "GitHub resource not found", endpoint=url, status_code=404
            )
        raise APIError(
            f"HTTP error {response.status}",
            endpoint=url,
            status_code=response.status,
            details=response.reason,
        )

    async def get_latest_release(self, owner: str, repo: str) -> Release:
        """
        Fetch the latest published release of a repository.

        Parameters:
            owner (str): Repository owner (user or organisation).
            repo (str): Repository name.

        Returns:
            Release: The parsed release snapshot.

        Raises:
            APIError: If the request fails, the status is not successful, or the payload is malformed.
        """
        session = await self._ensure_session()
        url = f"{self.api_base}/repos/{owner}/{repo}/releases/latest"

        try:
            logger.debug(f"Making GitHub API request: {url}")
            async with session.get(url) as response:
                self._update_rate_limits(response)
                self._raise_for_status(response, url)
                data = await response.json()
        except aiohttp.ContentTypeError as e:
            raise APIError(
                "Invalid JSON in release response", endpoint=url, details=str(e)
            ) from e
        except aiohttp.ClientError as e:
            raise APIError(f"Network error: {e}", endpoint=url) from e
        except asyncio.TimeoutError as e:
            raise APIError("Request timed out", endpoint=url) from e
        except ValueError as e:
            raise APIError(
                "Invalid JSON in release response", endpoint=url, details=str(e)
            ) from e

        try:
            return parse_release(data)
        except ValueError as e:
            raise APIError(
                "Malformed release payload", endpoint=url, details=str(e)
            ) from e

    @asynccontextmanager
    async def open_asset(
        self, owner: str, repo: str, asset_id: int
    ) -> AsyncIterator[ClientResponse]:
        """
        Open a streaming download of a release asset's binary content.

        The API redirects to the storage host; aiohttp follows the redirect and
        drops the Authorization header when the host changes.

        Parameters:
            owner (str): Repository owner.
            repo (str): Repository name.
            asset_id (int): Remote identifier of the asset.

        Yields:
            ClientResponse: Successful response whose `content` streams the asset bytes.

        Raises:
            APIError: If the request fails or returns an unsuccessful status.
        """
        session = await self._ensure_session()
        url = f"{self.api_base}/repos/{owner}/{repo}/releases/assets/{asset_id}"

        try:
            response = await session.get(
                url, headers={"Accept": GITHUB_ASSET_MEDIA_TYPE}
            )
        except aiohttp.ClientError as e:
            raise APIError(f"Network error: {e}", endpoint=url) from e
        except asyncio.TimeoutError as e:
            raise APIError("Request timed out", endpoint=url) from e

        try:
            self._update_rate_limits(response)
            self._raise_for_status(response, url)
            yield response
        finally:
            response.release()
