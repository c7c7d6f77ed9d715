import logging
import os
import secrets
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from github_dl.api.base import BaseApiClient
from github_dl.constants import DEFAULT_CONCURRENCY, TEMP_PREFIX
from github_dl.types import EntryKind, TreeEntry

logger = logging.getLogger(__name__)


@dataclass
class DownloadTask:
    entry: TreeEntry
    destination: Path


@dataclass
class TaskFailure:
    relative_path: str
    error: BaseException

    def __str__(self):
        return f"{self.relative_path}: {self.error}"


@dataclass
class MaterializeResult:
    """
    Outcome of one materialize call; total counts file entries only.
    """

    total: int
    failures: list[TaskFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_count(self) -> int:
        return len(self.failures)


def write_atomic(destination: Path, content: bytes):
    """
    Writes content to a temporary file next to destination and renames it
    into place, so destination is never seen half-written.
    """
    # Plain open() so the file mode follows the umask
    temporary_destination = destination.with_name(
        f"{TEMP_PREFIX}{secrets.token_hex(8)}"
    )
    try:
        with open(temporary_destination, "xb") as fh:
            fh.write(content)
        os.replace(temporary_destination, destination)
    except BaseException:
        temporary_destination.unlink(missing_ok=True)
        raise


class DownloadScheduler:
    """
    Writes a manifest to disk with a bounded pool of download workers.

    All directories are created up front on the calling thread, so every
    worker only ever writes one file into a directory that already exists.
    Individual failures are collected rather than stopping the run; whatever
    was written stays on disk.
    """

    def __init__(self, client: BaseApiClient):
        self.client = client

    def materialize(
        self,
        entries: Iterable[TreeEntry],
        destination_root: Path,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> MaterializeResult:
        if concurrency <= 0:
            raise ValueError("Download concurrency must be positive")
        destination_root = Path(destination_root)
        destination_root.mkdir(parents=True, exist_ok=True)
        root = destination_root.resolve()

        tasks: list[DownloadTask] = []
        directories: dict[str, Path] = {}
        failures: list[TaskFailure] = []
        for entry in entries:
            try:
                destination = self.destination_for(root, entry.relative_path)
            except ValueError as e:
                if entry.kind is EntryKind.FILE:
                    failures.append(TaskFailure(entry.relative_path, e))
                else:
                    logger.warning(f"Skipping directory {entry.relative_path}: {e}")
                continue
            if entry.kind is EntryKind.DIRECTORY:
                directories[entry.relative_path] = destination
            else:
                tasks.append(DownloadTask(entry=entry, destination=destination))
                parent = str(PurePosixPath(entry.relative_path).parent)
                if parent != ".":
                    directories.setdefault(parent, destination.parent)

        # Directories first, shallowest first; a file is only scheduled once
        # its parent exists
        broken: dict[Path, OSError] = {}
        for relative in sorted(directories, key=lambda p: p.count("/")):
            path = directories[relative]
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"Cannot create directory {path}: {e}")
                broken[path] = e

        runnable = []
        for task in tasks:
            error = broken.get(task.destination.parent)
            if error is not None:
                failures.append(TaskFailure(task.entry.relative_path, error))
            else:
                runnable.append(task)

        result = MaterializeResult(total=len(tasks), failures=failures)
        if not runnable:
            return result

        executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="download"
        )
        try:
            futures: dict[Future[None], DownloadTask] = {
                executor.submit(self._run_task, task): task for task in runnable
            }
            for future in as_completed(futures):
                task = futures[future]
                try:
                    future.result()
                except Exception as e:
                    logger.warning(f"Failed to download {task.entry.relative_path}: {e}")
                    result.failures.append(TaskFailure(task.entry.relative_path, e))
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return result

    def _run_task(self, task: DownloadTask):
        content_ref = task.entry.content_ref
        if content_ref is None:
            raise ValueError(f"File entry {task.entry.relative_path} has no content")
        content = self.client.fetch_blob(content_ref)
        write_atomic(task.destination, content)
        logger.debug(f"Wrote {task.destination} ({len(content)} bytes)")

    @staticmethod
    def destination_for(root: Path, relative_path: str) -> Path:
        """
        Maps a manifest path onto disk, refusing anything that would land
        outside root.
        """
        relative = PurePosixPath(relative_path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ValueError(f"Refusing unsafe path {relative_path!r}")
        return root.joinpath(*relative.parts)
