import enum
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from github_dl.api.base import ApiError, BaseApiClient
from github_dl.constants import DEFAULT_CONCURRENCY
from github_dl.coordinate import InvalidUrlError, RepoCoordinate, resolve_url
from github_dl.metadata import MetadataCorruptError, MetadataStore
from github_dl.scheduler import DownloadScheduler, TaskFailure
from github_dl.tree import CycleError, TreeLister
from github_dl.types import EntryKind, Manifest

logger = logging.getLogger(__name__)


class OutputNotEmptyError(Exception):
    """
    Refusing to download into a directory that holds something else.
    """


class FolderStatus(enum.Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class FolderReport:
    """
    What happened to one managed folder during a download or refresh.
    """

    directory: Path
    status: FolderStatus
    coordinate: RepoCoordinate | None = None
    total_files: int = 0
    failures: list[TaskFailure] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (FolderStatus.SUCCEEDED, FolderStatus.SKIPPED)

    def summary(self) -> str:
        if self.status is FolderStatus.SUCCEEDED:
            return "fully succeeded"
        if self.status is FolderStatus.PARTIAL:
            return (
                f"partially succeeded ({len(self.failures)} of "
                f"{self.total_files} files failed)"
            )
        if self.status is FolderStatus.SKIPPED:
            return f"skipped ({self.error})"
        return f"failed to start ({self.error})"


class Mirror:
    """
    Runs the fetch pipeline for one folder: list the remote tree, write it to
    disk, prune what upstream no longer has, and stamp the sidecar.
    """

    def __init__(
        self,
        client: BaseApiClient,
        concurrency: int = DEFAULT_CONCURRENCY,
        listing_concurrency: int | None = None,
        store: MetadataStore | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        if concurrency <= 0:
            raise ValueError("Concurrency must be positive")
        self.client = client
        self.concurrency = concurrency
        self.lister = TreeLister(client, listing_concurrency or concurrency)
        self.scheduler = DownloadScheduler(client)
        self.store = store or MetadataStore()
        self.clock = clock

    def download(self, url: str, output: Path, force: bool = False) -> FolderReport:
        """
        Downloads the folder behind a browsing URL into output.
        """
        output = Path(output)
        try:
            coordinate = resolve_url(url, self.client)
            prune = self.check_output(output, coordinate, force)
        except (InvalidUrlError, ApiError, MetadataCorruptError, OutputNotEmptyError) as e:
            logger.error(f"Cannot download {url}: {e}")
            return FolderReport(directory=output, status=FolderStatus.FAILED, error=str(e))
        logger.info(f"Downloading {coordinate} to {output}")
        # A forced download into a foreign directory keeps whatever else was
        # there, and records that so refresh keeps it too
        report = self.fetch(coordinate, output, url=url, prune=prune)
        # A missing folder is only skippable during refresh
        if report.status is FolderStatus.SKIPPED:
            report.status = FolderStatus.FAILED
        return report

    def refresh_folder(self, directory: Path) -> FolderReport:
        """
        Re-fetches a managed folder from the coordinate in its sidecar.
        """
        directory = Path(directory)
        try:
            metadata = self.store.read(directory)
        except MetadataCorruptError as e:
            logger.error(str(e))
            return FolderReport(
                directory=directory, status=FolderStatus.FAILED, error=str(e)
            )
        if metadata is None:
            return FolderReport(
                directory=directory,
                status=FolderStatus.SKIPPED,
                error="no metadata found",
            )
        label = metadata.url or str(metadata.coordinate)
        logger.info(f"Refreshing '{label}'")
        report = self.fetch(
            metadata.coordinate, directory, url=metadata.url, prune=metadata.prune
        )
        if report.status is FolderStatus.SUCCEEDED:
            logger.info(f"Refreshed '{label}'")
        return report

    def fetch(
        self,
        coordinate: RepoCoordinate,
        destination: Path,
        url: str | None = None,
        prune: bool = True,
    ) -> FolderReport:
        destination = Path(destination)
        try:
            manifest = self.lister.list_tree(coordinate)
        except ApiError as e:
            if e.status_code == 404:
                logger.warning(f"Remote folder {coordinate} does not exist, skipping")
                return FolderReport(
                    directory=destination,
                    status=FolderStatus.SKIPPED,
                    coordinate=coordinate,
                    error="remote folder does not exist",
                )
            logger.error(f"Cannot list {coordinate}: {e}")
            return FolderReport(
                directory=destination,
                status=FolderStatus.FAILED,
                coordinate=coordinate,
                error=str(e),
            )
        except CycleError as e:
            logger.error(f"Cannot list {coordinate}: {e}")
            return FolderReport(
                directory=destination,
                status=FolderStatus.FAILED,
                coordinate=coordinate,
                error=str(e),
            )

        try:
            result = self.scheduler.materialize(
                manifest.values(), destination, self.concurrency
            )
        except OSError as e:
            logger.error(f"Cannot write to {destination}: {e}")
            return FolderReport(
                directory=destination,
                status=FolderStatus.FAILED,
                coordinate=coordinate,
                error=str(e),
            )
        if not result.ok:
            logger.warning(
                f"{result.failed_count} of {result.total} files failed for {coordinate}"
            )
            return FolderReport(
                directory=destination,
                status=FolderStatus.PARTIAL,
                coordinate=coordinate,
                total_files=result.total,
                failures=result.failures,
            )

        try:
            removed = self.prune(destination, manifest) if prune else 0
            self.store.write(
                destination, coordinate, self.clock(), url=url, prune=prune
            )
        except OSError as e:
            logger.error(f"Cannot finish {destination}: {e}")
            return FolderReport(
                directory=destination,
                status=FolderStatus.FAILED,
                coordinate=coordinate,
                total_files=result.total,
                error=str(e),
            )
        if removed:
            logger.info(f"Removed {removed} stale entries from {destination}")
        logger.info(f"{result.total} files written to {destination}")
        return FolderReport(
            directory=destination,
            status=FolderStatus.SUCCEEDED,
            coordinate=coordinate,
            total_files=result.total,
        )

    def check_output(
        self, output: Path, coordinate: RepoCoordinate, force: bool
    ) -> bool:
        """
        Only download into an empty directory, or one this coordinate already
        manages. Returns whether stale files may be pruned from output, now
        and on every later refresh.
        """
        if not output.exists():
            return True
        if not output.is_dir():
            raise OutputNotEmptyError(f"Output path '{output}' is not a directory")
        metadata = self.store.read(output)
        if metadata is not None:
            if metadata.coordinate == coordinate:
                return metadata.prune
            if force:
                return False
            raise OutputNotEmptyError(
                f"Output directory '{output}' already mirrors {metadata.coordinate}"
            )
        if next(output.iterdir(), None) is None:
            return True
        if not force:
            raise OutputNotEmptyError(f"Output directory '{output}' is not empty")
        return False

    def prune(self, destination: Path, manifest: Manifest) -> int:
        """
        Deletes files and directories under destination that the manifest
        does not mention. Sidecars, and directories that are managed in their
        own right, are left alone.
        """
        files = {p for p, e in manifest.items() if e.kind is EntryKind.FILE}
        directories = {p for p, e in manifest.items() if e.kind is EntryKind.DIRECTORY}
        removed = 0
        for directory, subdirs, filenames in destination.walk():
            relative_dir = directory.relative_to(destination).as_posix()
            prefix = "" if relative_dir == "." else f"{relative_dir}/"
            for subdir in list(subdirs):
                subdir_path = directory / subdir
                if self.store.is_managed(subdir_path):
                    subdirs.remove(subdir)
                    continue
                if prefix + subdir in directories:
                    continue
                subdirs.remove(subdir)
                shutil.rmtree(subdir_path)
                logger.debug(f"Pruned directory {subdir_path}")
                removed += 1
            for filename in filenames:
                if prefix + filename in files:
                    continue
                if directory == destination and filename == self.store.filename:
                    continue
                (directory / filename).unlink()
                logger.debug(f"Pruned file {directory / filename}")
                removed += 1
        return removed
