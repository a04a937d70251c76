"""
Tier classification for tenant resources.

Simple repositories and scale-out repositories without a capacity tier are
accounted from the used space the platform reports. With a capacity tier the
reported figure misses offloaded data, so every extent is scanned and the
backup metadata summed per content tier.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from src.common.errors import (
    FolderNotFoundError, MetadataParseError, StorageAccessError, UnknownRepositoryType, UnsupportedExtentType,
)
from src.common.storage_access import METADATA_EXTENSION, join_location_path, open_location
from src.common.vbr_models import (
    Extent, ExtentType, Repository, ScaleOutRepository, SimpleRepository, TenantResource,
)
from src.tenant_usage.metadata_reader import CAPACITY_TIER, PERFORMANCE_TIER, BackupJob, read_backup_job
from src.tenant_usage.untracked_space import UntrackedFiles, detect_untracked

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024

# Host name VBR gives to the backup server itself
SELF_HOST_NAMES = ("this server", "localhost")

STRATEGY_REPORTED = "reported"
STRATEGY_SCANNED = "scanned"


def bytes_to_mb(size: int) -> int:
    return int(round(size / BYTES_PER_MB))


@dataclass
class ExtentUsage:
    extent_id: str
    extent_name: str
    address: str
    location: str
    jobs_found: int
    performance_mb: int
    capacity_mb: int
    untracked: Optional[UntrackedFiles]
    skipped_metadata: List[str] = field(default_factory=list)

    @property
    def untracked_mb(self) -> Optional[int]:
        return None if self.untracked is None else bytes_to_mb(self.untracked.total_bytes)


@dataclass
class ResourceUsage:
    resource_id: str
    resource_name: str
    repository_id: str
    repository_name: str
    strategy: str
    quota_mb: int
    performance_mb: int
    capacity_mb: int
    untracked_mb: Optional[int]
    extents: List[ExtentUsage] = field(default_factory=list)


def resolve_extent_address(extent: Extent, server_address: str) -> str:
    """The backup server itself resolves to the address we connected to."""
    host = (extent.host_name or '').strip()
    if not host or host.lower() in SELF_HOST_NAMES:
        return server_address
    return host


def capacity_tier_applies(repository: Repository) -> bool:
    return isinstance(repository, ScaleOutRepository) and repository.capacity_tier_enabled


class TierClassifier:
    """Decides the accounting strategy per resource and scans extents when needed"""

    def __init__(self, server_address: str, storage_config: Dict,
                 location_factory: Callable = open_location, strict_metadata: bool = False):
        self.server_address = server_address
        self.storage_config = storage_config
        self.location_factory = location_factory
        self.strict_metadata = strict_metadata

    def classify(self, repository: Repository, resource: TenantResource) -> ResourceUsage:
        if not isinstance(repository, (SimpleRepository, ScaleOutRepository)):
            raise UnknownRepositoryType(resource.name, getattr(repository, 'id', str(repository)))

        if not capacity_tier_applies(repository):
            return ResourceUsage(
                resource_id=resource.id,
                resource_name=resource.name,
                repository_id=repository.id,
                repository_name=repository.name,
                strategy=STRATEGY_REPORTED,
                quota_mb=resource.quota_mb,
                performance_mb=resource.used_space_mb,
                capacity_mb=0,
                untracked_mb=None
            )

        # Fail before touching storage if any extent is of a type we cannot read
        for extent in repository.extents:
            if extent.type == ExtentType.UNSUPPORTED:
                raise UnsupportedExtentType(extent.name, extent.raw_type)

        extents = [self.scan_extent(extent, resource.folder) for extent in repository.extents]

        untracked_values = [e.untracked_mb for e in extents if e.untracked_mb is not None]
        untracked_mb = sum(untracked_values) if untracked_values else None
        return ResourceUsage(
            resource_id=resource.id,
            resource_name=resource.name,
            repository_id=repository.id,
            repository_name=repository.name,
            strategy=STRATEGY_SCANNED,
            quota_mb=resource.quota_mb,
            performance_mb=sum(e.performance_mb + (e.untracked_mb or 0) for e in extents),
            capacity_mb=sum(e.capacity_mb for e in extents),
            untracked_mb=untracked_mb,
            extents=extents
        )

    def scan_extent(self, extent: Extent, folder: str) -> ExtentUsage:
        """Read every metadata file under the resource folder of one extent."""
        address = resolve_extent_address(extent, self.server_address)
        path = join_location_path(extent.type, extent.path, folder)
        logger.info(f"  Scanning extent {extent.name} ({extent.type.value}) at {address}: {path}")

        try:
            with self.location_factory(extent.type, address, path, self.storage_config) as location:
                jobs, skipped = self._read_jobs(location)
                untracked = detect_untracked(location.list_files(), jobs, location.case_sensitive)
                display = location.display
        except FolderNotFoundError:
            # Tenant has no backup chains on this extent
            logger.info(f"  {extent.name}: no folder {path}, no jobs on this extent")
            jobs, skipped, untracked, display = [], [], None, path

        performance_bytes = sum(s.backup_size for job in jobs for s in job.storages
                                if s.content_tier == PERFORMANCE_TIER)
        capacity_bytes = sum(s.backup_size for job in jobs for s in job.storages
                             if s.content_tier == CAPACITY_TIER)

        usage = ExtentUsage(
            extent_id=extent.id,
            extent_name=extent.name,
            address=address,
            location=display,
            jobs_found=len(jobs),
            performance_mb=bytes_to_mb(performance_bytes),
            capacity_mb=bytes_to_mb(capacity_bytes),
            untracked=untracked,
            skipped_metadata=skipped
        )
        logger.info(
            f"  {extent.name}: {usage.jobs_found} jobs, performance {usage.performance_mb} MB, "
            f"capacity {usage.capacity_mb} MB, untracked "
            f"{'n/a' if usage.untracked_mb is None else str(usage.untracked_mb) + ' MB'}"
        )
        return usage

    def _read_jobs(self, location) -> Tuple[List[BackupJob], List[str]]:
        jobs = []
        skipped = []
        for entry in location.list_files():
            if entry.is_dir or not entry.path.lower().endswith(METADATA_EXTENSION):
                continue
            try:
                blob = location.read_text(entry.path)
            except OSError as e:
                raise StorageAccessError(location.display, f"cannot read {entry.path}: {e}")
            try:
                jobs.append(read_backup_job(blob, entry.path, location))
            except MetadataParseError as e:
                if self.strict_metadata:
                    raise
                logger.warning(f"  Skipping job metadata: {e.message}")
                skipped.append(entry.path)
        return jobs, skipped
