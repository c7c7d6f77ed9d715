import enum
from dataclasses import dataclass
from typing import TypedDict


class EntryKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "dir"


class RawEntry(TypedDict, total=False):
    """
    One item of a contents-API directory listing, as returned by the server.
    """

    name: str
    path: str
    type: str
    sha: str
    size: int
    download_url: str | None


@dataclass(frozen=True)
class BlobRef:
    """
    Opaque pointer to the content of a single remote file.
    """

    owner: str
    repo: str
    sha: str
    download_url: str | None = None


@dataclass(frozen=True)
class TreeEntry:
    relative_path: str
    kind: EntryKind
    content_ref: BlobRef | None = None


Manifest = dict[str, TreeEntry]
