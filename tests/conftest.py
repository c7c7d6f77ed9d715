import hashlib
import threading
import time

import pytest

from github_dl.api.base import ApiError, BaseApiClient
from github_dl.coordinate import RepoCoordinate
from github_dl.mirror import Mirror
from github_dl.types import BlobRef


def blob_sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class FakeApiClient(BaseApiClient):
    """
    In-memory API client serving a repository described as {path: bytes},
    where directories are implied by the file paths (or given as None for
    empty ones).

    Records how many listings and fetches were in flight at once, and can be
    told to fail particular listings or blobs.
    """

    type_aliases = ["fake"]

    def __init__(
        self,
        files: dict[str, bytes | None] | None = None,
        default_ref: str = "main",
        fetch_delay: float = 0,
        listing_delay: float = 0,
        **kwargs,
    ):
        self.files = dict(files or {})
        self.default_ref = default_ref
        self.fetch_delay = fetch_delay
        self.listing_delay = listing_delay
        self.failing_blobs: set[str] = set()
        self.failing_listings: dict[str, ApiError] = {}
        self.listing_overrides: dict[str, list[dict]] = {}
        self.listed: list[str] = []
        self.fetched: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.listings_in_flight = 0
        self.max_listings_in_flight = 0
        self.lock = threading.Lock()
        self.closed = False

    def _blobs(self) -> dict[str, str]:
        return {
            blob_sha(content): path
            for path, content in self.files.items()
            if content is not None
        }

    def _directories(self) -> set[str]:
        result = {""}
        for path, content in self.files.items():
            parts = path.split("/")
            stop = len(parts) if content is None else len(parts) - 1
            for i in range(1, stop + 1):
                result.add("/".join(parts[:i]))
        return result

    def list_directory(self, coordinate: RepoCoordinate) -> list[dict]:
        with self.lock:
            self.listed.append(coordinate.path)
            self.listings_in_flight += 1
            self.max_listings_in_flight = max(
                self.max_listings_in_flight, self.listings_in_flight
            )
        try:
            if self.listing_delay:
                time.sleep(self.listing_delay)
            return self._list(coordinate)
        finally:
            with self.lock:
                self.listings_in_flight -= 1

    def _list(self, coordinate: RepoCoordinate) -> list[dict]:
        if coordinate.path in self.failing_listings:
            raise self.failing_listings[coordinate.path]
        if coordinate.path in self.listing_overrides:
            return self.listing_overrides[coordinate.path]
        directories = self._directories()
        if coordinate.path in self.files and self.files[coordinate.path] is not None:
            content = self.files[coordinate.path]
            return [self._file_entry(coordinate.path, content)]
        if coordinate.path not in directories:
            raise ApiError(404, "Not Found")
        prefix = f"{coordinate.path}/" if coordinate.path else ""
        entries = []
        for directory in sorted(directories):
            if directory.startswith(prefix) and directory != coordinate.path:
                if "/" not in directory[len(prefix) :]:
                    entries.append(
                        {
                            "name": directory.rsplit("/", 1)[-1],
                            "path": directory,
                            "type": "dir",
                            "sha": blob_sha(directory.encode()),
                        }
                    )
        for path, content in sorted(self.files.items()):
            if content is None or not path.startswith(prefix):
                continue
            if "/" not in path[len(prefix) :]:
                entries.append(self._file_entry(path, content))
        return entries

    @staticmethod
    def _file_entry(path: str, content: bytes) -> dict:
        return {
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "type": "file",
            "sha": blob_sha(content),
            "size": len(content),
            "download_url": f"https://raw.example.com/{path}",
        }

    def fetch_blob(self, ref: BlobRef) -> bytes:
        with self.lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.fetch_delay:
                time.sleep(self.fetch_delay)
            path = self._blobs().get(ref.sha)
            with self.lock:
                self.fetched.append(path)
            if path is None:
                raise ApiError(404, f"No blob {ref.sha}")
            if path in self.failing_blobs:
                raise ApiError(502, f"Simulated failure for {path}")
            return self.files[path]
        finally:
            with self.lock:
                self.in_flight -= 1

    def default_branch(self, owner: str, repo: str) -> str:
        return self.default_ref

    def close(self):
        self.closed = True


@pytest.fixture
def repo_files():
    """
    A small repository with a nested docs folder, an empty directory and an
    unrelated src folder.
    """
    return {
        "docs/README.md": b"# Docs\n",
        "docs/guide/intro.md": b"Intro\n",
        "docs/guide/setup.md": b"Setup\n",
        "docs/guide/images/logo.png": b"\x89PNG\r\n\x1a\n\x00\x01",
        "docs/empty": None,
        "src/main.py": b"print('hello')\n",
    }


@pytest.fixture
def fake_client(repo_files):
    """
    Fake API client serving repo_files.
    """
    return FakeApiClient(repo_files)


@pytest.fixture
def docs_coordinate():
    """
    Points at the docs folder of repo_files.
    """
    return RepoCoordinate(owner="octo", repo="project", ref="main", path="docs")


@pytest.fixture
def mirror(fake_client):
    """
    Pipeline over the fake client.
    """
    return Mirror(fake_client, concurrency=3)


def disk_files(root) -> dict[str, bytes]:
    """
    Returns {relative posix path: content} for every regular file under root.
    """
    result = {}
    for directory, _, filenames in root.walk():
        for filename in filenames:
            path = directory / filename
            result[path.relative_to(root).as_posix()] = path.read_bytes()
    return result
