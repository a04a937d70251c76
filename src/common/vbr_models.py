"""
Catalog records read from the VBR REST API.
Validated on construction so unknown shapes are rejected before any report
logic runs.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, validator

# =============================================================================
# EXTENTS & REPOSITORIES
# =============================================================================

class ExtentType(Enum):
    WINDOWS_LOCAL = "WinLocal"
    LINUX_LOCAL = "LinuxLocal"
    NETWORK_SHARE = "CifsShare"
    UNSUPPORTED = "Unsupported"


# REST and PowerShell spell the share type differently
RAW_TYPE_MAP = {
    "winlocal": ExtentType.WINDOWS_LOCAL,
    "linuxlocal": ExtentType.LINUX_LOCAL,
    "cifsshare": ExtentType.NETWORK_SHARE,
    "smb": ExtentType.NETWORK_SHARE,
}


def classify_raw_type(raw_type: Optional[str]) -> ExtentType:
    return RAW_TYPE_MAP.get((raw_type or "").lower(), ExtentType.UNSUPPORTED)


class Extent(BaseModel):
    id: str
    name: str
    status: str = "Unknown"
    host_id: Optional[str] = None
    host_name: Optional[str] = None
    path: str = ""
    raw_type: str
    type: ExtentType = ExtentType.UNSUPPORTED

    @validator('id', 'name')
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v

    @validator('type', pre=True, always=True)
    def type_from_raw_type(cls, v, values):
        return classify_raw_type(values.get('raw_type'))


class SimpleRepository(BaseModel):
    kind: Literal["simple"] = "simple"
    id: str
    name: str
    raw_type: str = ""
    path: str = ""
    host_id: Optional[str] = None


class ScaleOutRepository(BaseModel):
    kind: Literal["scaleout"] = "scaleout"
    id: str
    name: str
    extents: List[Extent] = Field(default_factory=list)
    capacity_tier_enabled: bool = False


Repository = Union[SimpleRepository, ScaleOutRepository]

# =============================================================================
# TENANTS
# =============================================================================

class TenantResource(BaseModel):
    """One quota a tenant holds on a repository. Sizes are MB as reported."""
    id: str
    name: str
    quota_mb: int = Field(default=0, ge=0)
    used_space_mb: int = Field(default=0, ge=0)
    repository_id: str
    folder: str = ""


class Tenant(BaseModel):
    id: str
    name: str
    enabled: bool = True
    resources: List[TenantResource] = Field(default_factory=list)

# =============================================================================
# BACKUPS
# =============================================================================

class BackupPoint(BaseModel):
    """One backup file (restore point) of a backup chain."""
    id: str
    name: str = ""
    creation_time: datetime
    size_bytes: int = Field(default=0, ge=0)
    is_full: bool


class BackupRecord(BaseModel):
    id: str
    name: str
    job_id: Optional[str] = None
    platform: str = "Unknown"
    repository_id: Optional[str] = None
    creation_time: Optional[datetime] = None
