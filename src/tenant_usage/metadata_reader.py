"""
Backup metadata (.vbm) reader.
Turns one job's metadata file into a BackupJob with one StorageFile per
backup chain link.
"""

import logging
import posixpath
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from xml.parsers.expat import ExpatError

import xmltodict

from src.common.errors import MetadataParseError

logger = logging.getLogger(__name__)

PERFORMANCE_TIER = 0
CAPACITY_TIER = 1

FULL_EXTENSIONS = ('.vbk',)
INCREMENTAL_EXTENSIONS = ('.vib', '.vrb')


@dataclass(frozen=True)
class StorageFile:
    id: str
    file_path: str
    content_tier: int
    creation_time: Optional[str]
    creation_time_utc: Optional[str]
    modification_time: Optional[str]
    backup_size: int
    data_size: int
    dedup_ratio: float
    compress_ratio: float
    is_full: bool
    is_incremental: bool
    is_gfs: bool


@dataclass(frozen=True)
class BackupJob:
    id: str
    name: str
    metadata_path: str
    storages: Tuple[StorageFile, ...]


def _as_list(node) -> List:
    if node is None:
        return []
    return node if isinstance(node, list) else [node]


def _number(stats: Dict, key: str, cast=int):
    value = stats.get(key)
    if value in (None, ''):
        return cast(0)
    try:
        return cast(float(value))
    except (TypeError, ValueError):
        return cast(0)


def _parse_stats(raw: Optional[str], metadata_path: str) -> Dict:
    """The Stats attribute holds its own XML document (CBackupStats)."""
    if not raw:
        return {}
    try:
        parsed = xmltodict.parse(raw)
    except ExpatError as e:
        raise MetadataParseError(metadata_path, f"storage statistics: {e}")
    return parsed.get('CBackupStats') or {}


def _relative_storage_path(job_directory: str, declared: str) -> str:
    """Declared paths are relative to the job folder; absolute ones keep only the file name."""
    declared = (declared or '').replace('\\', '/')
    if declared.startswith('/') or (len(declared) > 1 and declared[1] == ':'):
        declared = posixpath.basename(declared)
    return posixpath.normpath(posixpath.join(job_directory, declared))


def _is_true(value) -> bool:
    return str(value).strip().lower() == 'true'


def read_backup_job(blob: str, metadata_path: str, location) -> BackupJob:
    """
    Parse a metadata blob read from metadata_path (relative to the location
    root). A storage whose declared BackupSize is 0 is sized from the
    physical file on the location instead.
    """
    try:
        document = xmltodict.parse(blob)
    except ExpatError as e:
        raise MetadataParseError(metadata_path, str(e))

    meta = document.get('BackupMeta')
    if not isinstance(meta, dict):
        raise MetadataParseError(metadata_path, "missing BackupMeta root element")

    job_directory = posixpath.dirname(metadata_path)
    backup = meta.get('Backup') or {}
    stem = posixpath.splitext(posixpath.basename(metadata_path))[0]
    job_id = backup.get('@Id') or meta.get('@JobId') or stem
    job_name = backup.get('@JobName') or meta.get('@JobName') or stem

    info = meta.get('BackupMetaInfo') or {}
    storages_node = info.get('Storages') or {}
    storages = []
    for node in _as_list(storages_node.get('Storage')):
        declared_path = node.get('@FilePath', '')
        file_path = _relative_storage_path(job_directory, declared_path)
        stats = _parse_stats(node.get('@Stats'), metadata_path)

        backup_size = _number(stats, 'BackupSize')
        if backup_size == 0:
            try:
                backup_size = location.file_size(file_path)
                logger.debug(f"{file_path}: metadata size 0, using physical size {backup_size}")
            except OSError:
                logger.warning(f"{file_path}: metadata size 0 and file not found on storage")

        extension = posixpath.splitext(file_path)[1].lower()
        gfs = node.get('@GfsPeriod', 'None') or 'None'
        storages.append(StorageFile(
            id=node.get('@Id', file_path),
            file_path=file_path,
            content_tier=CAPACITY_TIER if _is_true(node.get('@IsContentExternal')) else PERFORMANCE_TIER,
            creation_time=node.get('@CreationTime'),
            creation_time_utc=node.get('@CreationTimeUtc'),
            modification_time=node.get('@ModificationTime'),
            backup_size=backup_size,
            data_size=_number(stats, 'DataSize'),
            dedup_ratio=_number(stats, 'DedupRatio', float),
            compress_ratio=_number(stats, 'CompressRatio', float),
            is_full=extension in FULL_EXTENSIONS,
            is_incremental=extension in INCREMENTAL_EXTENSIONS,
            is_gfs=gfs.strip().lower() not in ('', 'none')
        ))

    return BackupJob(id=job_id, name=job_name, metadata_path=metadata_path, storages=tuple(storages))
