import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace

from github_dl.api.base import ApiError, BaseApiClient
from github_dl.constants import DEFAULT_CONCURRENCY
from github_dl.coordinate import RepoCoordinate
from github_dl.types import BlobRef, EntryKind, Manifest, RawEntry, TreeEntry

logger = logging.getLogger(__name__)


class CycleError(Exception):
    """
    The API described a tree that revisits a path; real trees never do.
    """


class TreeLister:
    """
    Recursively enumerates everything under a coordinate into a flat manifest.

    Uses an explicit queue of pending directories rather than recursion, and
    fans the directory listings out over a small thread pool. The whole tree
    is listed before anything is returned.
    """

    def __init__(self, client: BaseApiClient, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency <= 0:
            raise ValueError("Listing concurrency must be positive")
        self.client = client
        self.concurrency = concurrency

    def list_tree(self, coordinate: RepoCoordinate) -> Manifest:
        manifest: Manifest = {}
        visited: set[str] = {coordinate.path}
        # Pending listings, with the directory each lists and its relative path
        pending: dict[Future[list[RawEntry]], tuple[RepoCoordinate, str]] = {}
        with ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="lister"
        ) as executor:
            pending[executor.submit(self.client.list_directory, coordinate)] = (
                coordinate,
                "",
            )
            try:
                while pending:
                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        directory, relative = pending.pop(future)
                        for child, child_relative in self._add_entries(
                            manifest, visited, directory, relative, future.result()
                        ):
                            pending[
                                executor.submit(self.client.list_directory, child)
                            ] = (child, child_relative)
            except BaseException:
                for future in pending:
                    future.cancel()
                raise
        logger.debug(f"Listed {len(manifest)} entries under {coordinate}")
        return manifest

    def _add_entries(
        self,
        manifest: Manifest,
        visited: set[str],
        directory: RepoCoordinate,
        relative: str,
        raw_entries: list[RawEntry],
    ) -> list[tuple[RepoCoordinate, str]]:
        """
        Records one directory's entries and returns the subdirectories that
        still need listing.
        """
        subdirectories = []
        for raw in raw_entries:
            name = raw.get("name", "")
            entry_type = raw.get("type")
            if not name or "/" in name or name in (".", ".."):
                raise CycleError(f"Invalid entry name {name!r} in {directory}")
            child = directory.child(name)
            # Follow the path the server reports so anomalies surface as revisits
            if raw.get("path"):
                child = replace(child, path=raw["path"].strip("/"))
            child_relative = f"{relative}/{name}" if relative else name
            if child_relative in manifest:
                raise CycleError(f"Entry {child_relative} was listed twice")
            if entry_type == "file":
                if not raw.get("sha"):
                    raise ApiError(None, f"Entry {child} has no blob identifier")
                manifest[child_relative] = TreeEntry(
                    relative_path=child_relative,
                    kind=EntryKind.FILE,
                    content_ref=BlobRef(
                        owner=directory.owner,
                        repo=directory.repo,
                        sha=raw["sha"],
                        download_url=raw.get("download_url"),
                    ),
                )
            elif entry_type == "dir":
                if child.path in visited:
                    raise CycleError(f"Directory {child} was visited twice")
                visited.add(child.path)
                manifest[child_relative] = TreeEntry(
                    relative_path=child_relative, kind=EntryKind.DIRECTORY
                )
                subdirectories.append((child, child_relative))
            else:
                logger.debug(f"Skipping {child} of type {entry_type}")
        return subdirectories
