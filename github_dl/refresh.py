import logging
from pathlib import Path

from github_dl.metadata import MetadataStore
from github_dl.mirror import FolderReport, FolderStatus, Mirror

logger = logging.getLogger(__name__)


def find_managed(base_dir: Path, store: MetadataStore) -> list[Path]:
    """
    Walks base_dir and returns, sorted, every directory holding a sidecar.
    """
    base_dir = Path(base_dir)
    if not base_dir.is_dir():
        raise NotADirectoryError(f"Base directory {base_dir} does not exist")
    result = []
    for directory, _, filenames in base_dir.walk():
        if store.filename in filenames:
            result.append(directory)
    result.sort()
    logger.debug(f"Found {len(result)} managed folders under {base_dir}")
    return result


class RefreshScanner:
    """
    Finds every managed folder under a base directory and refreshes each one
    independently; one broken folder never stops the others.
    """

    def __init__(self, mirror: Mirror):
        self.mirror = mirror
        self.store = mirror.store

    def scan(self, base_dir: Path) -> list[Path]:
        """
        Returns every directory under base_dir (inclusive) holding a sidecar.
        """
        return find_managed(base_dir, self.store)

    def run(self, base_dir: Path) -> list[FolderReport]:
        reports = []
        for directory in self.scan(base_dir):
            try:
                report = self.mirror.refresh_folder(directory)
            except Exception as e:
                logger.exception(f"Refresh of {directory} failed: {e}")
                report = FolderReport(
                    directory=directory, status=FolderStatus.FAILED, error=str(e)
                )
            reports.append(report)
        return reports
