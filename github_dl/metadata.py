import logging
from datetime import datetime
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from github_dl.constants import SIDECAR_NAME, SIDECAR_VERSION
from github_dl.coordinate import RepoCoordinate
from github_dl.scheduler import write_atomic

logger = logging.getLogger(__name__)


class MetadataCorruptError(Exception):
    """
    A sidecar file exists but is not something we can read.
    """

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Corrupt metadata in {path}: {reason}")
        self.path = path


class FolderMetadata(BaseModel):
    """
    Contents of the sidecar that marks a directory as managed.

    Unknown keys are ignored so newer writers stay readable. "reference" is
    what the first releases called the ref.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: int = SIDECAR_VERSION
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    ref: str = Field(
        min_length=1,
        validation_alias=AliasChoices("ref", "reference"),
    )
    path: str = ""
    url: str | None = None
    # False when the folder was forced into a directory holding other files
    prune: bool = True
    last_refreshed: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("lastRefreshed", "last_refreshed"),
        serialization_alias="lastRefreshed",
    )

    @property
    def coordinate(self) -> RepoCoordinate:
        return RepoCoordinate(
            owner=self.owner, repo=self.repo, ref=self.ref, path=self.path.strip("/")
        )


class MetadataStore:
    """
    Reads and writes the per-folder sidecar file.
    """

    filename = SIDECAR_NAME

    def sidecar_path(self, directory: Path) -> Path:
        return Path(directory) / self.filename

    def is_managed(self, directory: Path) -> bool:
        return self.sidecar_path(directory).is_file()

    def write(
        self,
        directory: Path,
        coordinate: RepoCoordinate,
        timestamp: datetime,
        url: str | None = None,
        prune: bool = True,
    ) -> FolderMetadata:
        metadata = FolderMetadata(
            owner=coordinate.owner,
            repo=coordinate.repo,
            ref=coordinate.ref,
            path=coordinate.path,
            url=url,
            prune=prune,
            last_refreshed=timestamp,
        )
        content = metadata.model_dump_json(by_alias=True, indent=2) + "\n"
        write_atomic(self.sidecar_path(directory), content.encode("utf-8"))
        logger.debug(f"Wrote metadata for {coordinate} to {directory}")
        return metadata

    def read(self, directory: Path) -> FolderMetadata | None:
        path = self.sidecar_path(directory)
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            return FolderMetadata.model_validate_json(content)
        except ValidationError as e:
            raise MetadataCorruptError(path, str(e)) from e
