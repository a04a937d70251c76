"""
Untracked-space detection: files on a storage location that no backup
metadata references.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from src.common.storage_access import METADATA_EXTENSION, FileEntry
from src.tenant_usage.metadata_reader import BackupJob


@dataclass(frozen=True)
class UntrackedFiles:
    files: Tuple[FileEntry, ...]
    total_bytes: int


def detect_untracked(listing: Iterable[FileEntry], jobs: List[BackupJob],
                     case_sensitive: bool = True) -> Optional[UntrackedFiles]:
    """
    untracked = files on storage - files referenced by metadata - metadata files.

    Returns None when no jobs were found: without metadata there is nothing
    to compare against, which is not the same as "nothing untracked".
    """
    if not jobs:
        return None

    def key(path: str) -> str:
        path = path.replace('\\', '/')
        return path if case_sensitive else path.lower()

    referenced = {key(s.file_path) for job in jobs for s in job.storages}

    untracked = [
        entry for entry in listing
        if not entry.is_dir
        and not entry.path.lower().endswith(METADATA_EXTENSION)
        and key(entry.path) not in referenced
    ]
    untracked.sort(key=lambda e: e.path)
    return UntrackedFiles(files=tuple(untracked), total_bytes=sum(e.size for e in untracked))
