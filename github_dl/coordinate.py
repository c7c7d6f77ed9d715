from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlsplit

from github_dl.constants import WEB_HOSTS

if TYPE_CHECKING:
    from github_dl.api.base import BaseApiClient


class InvalidUrlError(ValueError):
    """
    The URL is not a repository or folder link we know how to handle.
    """


@dataclass(frozen=True)
class RepoCoordinate:
    """
    Identifies one subtree of one repository at one ref.

    An empty path means the repository root.
    """

    owner: str
    repo: str
    ref: str
    path: str = ""

    def __str__(self):
        location = f"{self.owner}/{self.repo}@{self.ref}"
        if self.path:
            return f"{location}:{self.path}"
        return location

    def child(self, name: str) -> "RepoCoordinate":
        """
        Returns the coordinate of the named entry inside this one.
        """
        path = f"{self.path}/{name}" if self.path else name
        return RepoCoordinate(self.owner, self.repo, self.ref, path)


@dataclass(frozen=True)
class ParsedUrl:
    owner: str
    repo: str
    ref: str | None
    path: str


def parse_url(url: str) -> ParsedUrl:
    """
    Splits a browsing URL into its parts without touching the network.

    Accepts https://github.com/<owner>/<repo> and
    https://github.com/<owner>/<repo>/tree/<ref>[/<path>]; the ref is
    None for the first form.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError as e:
        raise InvalidUrlError(f"Cannot parse URL {url!r}: {e}") from e
    if parts.scheme not in ("http", "https"):
        raise InvalidUrlError(f"URL {url!r} is not an http(s) link")
    if (parts.hostname or "").lower() not in WEB_HOSTS:
        raise InvalidUrlError(f"URL {url!r} is not a github.com link")
    segments = [unquote(s) for s in parts.path.split("/") if s]
    if len(segments) < 2:
        raise InvalidUrlError(
            "URL must be in the format https://github.com/owner/repo/tree/ref[/path]"
        )
    owner, repo = segments[0], segments[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo:
        raise InvalidUrlError(f"URL {url!r} has an empty repository name")
    if len(segments) == 2:
        return ParsedUrl(owner=owner, repo=repo, ref=None, path="")
    if segments[2] != "tree" or len(segments) < 4:
        raise InvalidUrlError(
            "URL must be in the format https://github.com/owner/repo/tree/ref[/path]"
        )
    return ParsedUrl(
        owner=owner,
        repo=repo,
        ref=segments[3],
        path="/".join(segments[4:]),
    )


def resolve_url(url: str, client: "BaseApiClient") -> RepoCoordinate:
    """
    Parses the URL and fills in the default branch if it names no ref.
    """
    parsed = parse_url(url)
    ref = parsed.ref
    if ref is None:
        ref = client.default_branch(parsed.owner, parsed.repo)
    return RepoCoordinate(
        owner=parsed.owner, repo=parsed.repo, ref=ref, path=parsed.path
    )
