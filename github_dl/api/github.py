import logging
import time
from collections.abc import Callable
from urllib.parse import quote

import requests

from github_dl.constants import (
    API_URL,
    DEFAULT_TIMEOUT,
    MAX_RATE_LIMIT_WAIT,
    USER_AGENT,
)
from github_dl.coordinate import RepoCoordinate
from github_dl.types import BlobRef, RawEntry

from .base import ApiError, BaseApiClient, RateLimitError

logger = logging.getLogger(__name__)


class GitHubApiClient(BaseApiClient):
    """
    Talks to the GitHub REST API (or a GitHub Enterprise instance at a
    different base URL) over a single requests session.

    Rate limiting is handled per request: if the server says we are limited
    and tells us when the limit resets, we sleep until then and retry exactly
    once. Anything else that is not a 2xx becomes an ApiError.
    """

    type_aliases = ["github"]

    def __init__(
        self,
        token: str | None = None,
        base_url: str = API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_rate_limit_wait: float | None = MAX_RATE_LIMIT_WAIT,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_rate_limit_wait = max_rate_limit_wait
        self.authenticated = bool(token)
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "User-Agent": USER_AGENT,
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def __str__(self):
        auth = "authenticated" if self.authenticated else "anonymous"
        return f"GitHub ({self.base_url}, {auth})"

    def _repo_url(self, owner: str, repo: str) -> str:
        return f"{self.base_url}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    def list_directory(self, coordinate: RepoCoordinate) -> list[RawEntry]:
        url = f"{self._repo_url(coordinate.owner, coordinate.repo)}/contents"
        if coordinate.path:
            url = f"{url}/{quote(coordinate.path)}"
        params: dict[str, str] | None = {"ref": coordinate.ref}
        entries: list[RawEntry] = []
        next_url: str | None = url
        while next_url:
            response = self._get(next_url, params=params)
            payload = response.json()
            # A file path answers with the single entry rather than a list
            if isinstance(payload, dict):
                entries.append(payload)
            elif isinstance(payload, list):
                entries.extend(payload)
            else:
                raise ApiError(
                    response.status_code,
                    f"Unexpected listing payload for {coordinate}",
                )
            next_url = response.links.get("next", {}).get("url")
            # Continuation links already carry the query string
            params = None
        logger.debug(f"Listed {len(entries)} entries in {coordinate}")
        return entries

    def fetch_blob(self, ref: BlobRef) -> bytes:
        url = f"{self._repo_url(ref.owner, ref.repo)}/git/blobs/{ref.sha}"
        response = self._get(url, headers={"Accept": "application/vnd.github.raw"})
        return response.content

    def default_branch(self, owner: str, repo: str) -> str:
        response = self._get(self._repo_url(owner, repo))
        try:
            return response.json()["default_branch"]
        except (ValueError, KeyError, TypeError) as e:
            raise ApiError(
                response.status_code, f"No default branch reported for {owner}/{repo}"
            ) from e

    def close(self):
        self.session.close()

    def _get(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        GETs the URL, retrying once if we are rate limited.
        """
        for attempt in range(2):
            try:
                response = self.session.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )
            except requests.RequestException as e:
                raise ApiError(None, f"Request to {url} failed: {e}") from e
            if response.ok:
                return response
            if response.status_code in (403, 429):
                wait = self.rate_limit_wait(response)
                if wait is not None:
                    if attempt > 0:
                        raise RateLimitError(
                            response.status_code,
                            "Still rate limited after waiting for the reset",
                            wait,
                        )
                    if (
                        self.max_rate_limit_wait is not None
                        and wait > self.max_rate_limit_wait
                    ):
                        raise RateLimitError(
                            response.status_code,
                            f"Rate limited for {wait:.0f}s, longer than the "
                            f"{self.max_rate_limit_wait:.0f}s we are willing to wait",
                            wait,
                        )
                    logger.warning(f"Rate limited; retrying in {wait:.0f}s")
                    self.sleep(wait)
                    continue
            raise self._error_for(response)
        raise AssertionError("unreachable")

    @staticmethod
    def rate_limit_wait(response: requests.Response) -> float | None:
        """
        Works out how long to wait from the rate-limit headers, or None if the
        response is not a rate-limit response.
        """
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                pass
        if response.headers.get("X-RateLimit-Remaining") == "0":
            reset = response.headers.get("X-RateLimit-Reset")
            if reset is not None:
                try:
                    return max(0.0, float(reset) - time.time())
                except ValueError:
                    pass
        return None

    def _error_for(self, response: requests.Response) -> ApiError:
        try:
            message = response.json().get("message") or response.reason
        except (ValueError, AttributeError):
            message = response.reason or "request failed"
        if response.status_code == 403 and not self.authenticated:
            message = (
                f"{message}. Are you hitting the GitHub API rate limit? "
                "Try setting the GITHUB_TOKEN environment variable."
            )
        return ApiError(response.status_code, f"{message} ({response.url})")
