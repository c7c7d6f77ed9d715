from typing import ClassVar

from github_dl.coordinate import RepoCoordinate
from github_dl.types import BlobRef, RawEntry


class ApiError(Exception):
    """
    The remote API answered with something other than success, or could not
    be reached at all (status_code is None then).
    """

    def __init__(self, status_code: int | None, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __str__(self):
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


class RateLimitError(ApiError):
    """
    Still rate limited after the single permitted retry, or the reset is too
    far away to wait for.
    """

    def __init__(self, status_code: int | None, message: str, wait: float | None):
        super().__init__(status_code, message)
        self.wait = wait


class BaseApiClient:
    """
    Root API client class that defines the main interfaces.

    A client knows how to list one directory of a repository, how to fetch the
    raw bytes of one blob, and how to look up a repository's default branch.
    Recursion, scheduling and disk writes all live elsewhere.

    Implementations must be thread-safe; the tree lister and the download
    scheduler call them from worker pools.
    """

    type_aliases: list[str] = []

    implementation_registry: ClassVar[dict[str, type["BaseApiClient"]]] = {}

    def __init_subclass__(cls) -> None:
        if not cls.type_aliases:
            raise RuntimeError(
                "You must define at least one type alias per API client implementation"
            )
        for alias in cls.type_aliases:
            BaseApiClient.implementation_registry[alias] = cls

    @classmethod
    def implementation_get(cls, alias: str) -> type["BaseApiClient"]:
        try:
            return cls.implementation_registry[alias]
        except KeyError:
            raise ValueError(f"Unknown API client type {alias!r}") from None

    def list_directory(self, coordinate: RepoCoordinate) -> list[RawEntry]:
        """
        Returns every entry directly inside coordinate.path, following
        pagination if the server splits the listing.
        """
        raise NotImplementedError()

    def fetch_blob(self, ref: BlobRef) -> bytes:
        """
        Returns the raw content of a single file.
        """
        raise NotImplementedError()

    def default_branch(self, owner: str, repo: str) -> str:
        """
        Returns the name of the repository's default branch.
        """
        raise NotImplementedError()

    def close(self):
        pass
