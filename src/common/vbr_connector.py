"""
VBR Connector (Shared Library)
Provides the platform session (OAuth2 password grant against the VBR REST API)
and the catalog reads used by every report. Credentials loaded from .env.
"""

import functools
import logging
import os
from typing import Dict, List

import requests
import urllib3
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from src.common.errors import CatalogError, ConnectivityError
from src.common.vbr_models import (
    BackupPoint, BackupRecord, Extent, Repository, ScaleOutRepository,
    SimpleRepository, Tenant, TenantResource,
)

# Self-signed certificates are the norm on backup servers
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)


def catalog_read(what: str):
    """Records of an unexpected shape surface as CatalogError, not a traceback."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (KeyError, TypeError, AttributeError, ValidationError) as e:
                detail = f"missing field {e}" if isinstance(e, KeyError) else str(e)
                raise CatalogError(f"Unexpected {what} record from the backup server: {detail}")
        return wrapper
    return decorator


DEFAULT_CONFIG = {
    'veeam': {
        'server': '',
        'port': 9419,
        'username': '',
        'password': '',
        'api_version': '1.1-rev2',
        'verify_ssl': False,
        'timeout': 60,
        'page_size': 200,
    },
    'storage': {
        'share_access': 'local',
        'powershell': 'pwsh',
        'username': '',
        'password': '',
        'ssh_username': '',
        'ssh_password': '',
        'ssh_key_file': '',
        'ssh_port': 22,
        'timeout': 300,
    },
    'report': {
        'format': 'json',
        'output': '',
    },
}


class ConfigLoader:
    @staticmethod
    def load_config(path: str = None) -> dict:
        """
        Load a report's YAML config and overlay secrets from .env.
        Missing sections and keys fall back to DEFAULT_CONFIG.
        """
        config = {}
        if path and os.path.exists(path):
            with open(path, 'r') as f:
                config = yaml.safe_load(f) or {}
        elif path:
            logger.warning(f"Config file {path} not found, using defaults")

        for section, defaults in DEFAULT_CONFIG.items():
            merged = dict(defaults)
            merged.update(config.get(section) or {})
            config[section] = merged

        # Env takes precedence for connection details and secrets
        load_dotenv()
        veeam = config['veeam']
        storage = config['storage']
        veeam['server'] = os.getenv('VEEAM_SERVER', veeam['server'])
        veeam['port'] = int(os.getenv('VEEAM_PORT', veeam['port']))
        veeam['username'] = os.getenv('VEEAM_USERNAME', veeam['username'])
        veeam['password'] = os.getenv('VEEAM_PASSWORD', veeam['password'])
        storage['username'] = os.getenv('VEEAM_STORAGE_USERNAME', storage['username'])
        storage['password'] = os.getenv('VEEAM_STORAGE_PASSWORD', storage['password'])
        storage['ssh_username'] = os.getenv('VEEAM_SSH_USERNAME', storage['ssh_username'])
        storage['ssh_password'] = os.getenv('VEEAM_SSH_PASSWORD', storage['ssh_password'])
        storage['ssh_key_file'] = os.getenv('VEEAM_SSH_KEY_FILE', storage['ssh_key_file'])

        return config


class VbrConnector:
    """Session and catalog access for one VBR server"""

    def __init__(self, config: dict):
        self.config = config
        veeam = config['veeam']
        self.server = veeam['server']
        self.api_url = f"https://{self.server}:{veeam['port']}"
        self.username = veeam['username']
        self.password = veeam['password']
        self.api_version = veeam.get('api_version', '1.1-rev2')
        self.verify_ssl = veeam.get('verify_ssl', False)
        self.timeout = veeam.get('timeout', 60)
        self.page_size = veeam.get('page_size', 200)
        self.token = None

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def connect(self):
        """Obtain an OAuth token. Raises ConnectivityError on any failure."""
        if not self.server:
            raise ConnectivityError("No backup server configured (set VEEAM_SERVER)")

        payload = {
            "grant_type": "password",
            "username": self.username,
            "password": self.password
        }
        try:
            response = requests.post(
                f"{self.api_url}/api/oauth2/token",
                data=payload,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "x-api-version": self.api_version
                },
                verify=self.verify_ssl,
                timeout=self.timeout
            )
            response.raise_for_status()
            self.token = response.json()['access_token']
        except (requests.RequestException, KeyError, ValueError) as e:
            raise ConnectivityError(f"Authentication with {self.server} failed: {e}")

        logger.info(f"Authenticated with VBR server {self.server}")

    def disconnect(self):
        """Release the session. Safe to call repeatedly or when never connected."""
        if not self.token:
            return
        try:
            requests.post(
                f"{self.api_url}/api/oauth2/logout",
                headers=self._headers(),
                verify=self.verify_ssl,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Logout from {self.server} failed: {e}")
        finally:
            self.token = None
        logger.info(f"Disconnected from VBR server {self.server}")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "x-api-version": self.api_version
        }

    def _get_all(self, path: str, params: Dict = None) -> List[Dict]:
        """GET a collection endpoint, following skip/limit paging."""
        if not self.token:
            raise ConnectivityError("Not connected to the backup server")

        items = []
        skip = 0
        while True:
            query = dict(params or {})
            query.update({'skip': skip, 'limit': self.page_size})
            try:
                response = requests.get(
                    f"{self.api_url}{path}",
                    headers=self._headers(),
                    params=query,
                    verify=self.verify_ssl,
                    timeout=self.timeout
                )
                response.raise_for_status()
                body = response.json()
            except (requests.RequestException, ValueError) as e:
                raise ConnectivityError(f"Request {path} failed: {e}")

            batch = body.get('data', [])
            items.extend(batch)
            total = body.get('pagination', {}).get('total', len(items))
            if not batch or len(items) >= total or len(batch) < self.page_size:
                break
            skip += len(batch)
        return items

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    @catalog_read("managed server")
    def list_managed_servers(self) -> Dict[str, str]:
        """Map managed server id -> registered name"""
        servers = self._get_all("/api/v1/backupInfrastructure/managedServers")
        return {s['id']: s.get('name', '') for s in servers if 'id' in s}

    @catalog_read("repository")
    def list_repositories(self) -> Dict[str, Repository]:
        """
        All repositories keyed by id. Scale-out repositories carry their
        performance extents, joined with the member repository records for
        type, host and path.
        """
        servers = self.list_managed_servers()
        simple_records = self._get_all("/api/v1/backupInfrastructure/repositories")
        sobr_records = self._get_all("/api/v1/backupInfrastructure/scaleOutRepositories")

        repositories: Dict[str, Repository] = {}
        by_id = {}
        for rec in simple_records:
            by_id[rec['id']] = rec
            repositories[rec['id']] = SimpleRepository(
                id=rec['id'],
                name=rec.get('name', rec['id']),
                raw_type=rec.get('type', ''),
                path=_repository_path(rec),
                host_id=rec.get('hostId')
            )

        for rec in sobr_records:
            extents = []
            performance = rec.get('performanceTier') or {}
            for ext in performance.get('performanceExtents', []):
                member = by_id.get(ext['id'], {})
                raw_type = member.get('type', ext.get('type', ''))
                host_id = member.get('hostId')
                extents.append(Extent(
                    id=ext['id'],
                    name=ext.get('name') or member.get('name', ext['id']),
                    status=ext.get('status', 'Unknown'),
                    host_id=host_id,
                    host_name=servers.get(host_id) if host_id else None,
                    path=_repository_path(member),
                    raw_type=raw_type
                ))
            capacity = rec.get('capacityTier') or {}
            repositories[rec['id']] = ScaleOutRepository(
                id=rec['id'],
                name=rec.get('name', rec['id']),
                extents=extents,
                capacity_tier_enabled=bool(capacity.get('isEnabled', False))
            )

        logger.info(f"Retrieved {len(simple_records)} repositories and {len(sobr_records)} scale-out repositories")
        return repositories

    @catalog_read("tenant")
    def list_tenants(self) -> List[Tenant]:
        """Cloud Connect tenants with their repository quotas"""
        records = self._get_all("/api/v1/cloudConnect/tenants")
        tenants = []
        for rec in records:
            resources = []
            for res in rec.get('resources', []):
                resources.append(TenantResource(
                    id=res.get('id') or res['repositoryId'],
                    name=res.get('friendlyName') or res.get('name', ''),
                    quota_mb=res.get('quota', 0) or 0,
                    used_space_mb=res.get('usedSpace', 0) or 0,
                    repository_id=res['repositoryId'],
                    folder=res.get('folderName', '') or ''
                ))
            tenants.append(Tenant(
                id=rec['id'],
                name=rec.get('name', rec['id']),
                enabled=rec.get('isEnabled', True),
                resources=resources
            ))
        logger.info(f"Retrieved {len(tenants)} tenants")
        return tenants

    @catalog_read("backup")
    def list_backups(self) -> List[BackupRecord]:
        records = self._get_all("/api/v1/backups")
        return [
            BackupRecord(
                id=rec['id'],
                name=rec.get('name', rec['id']),
                job_id=rec.get('jobId'),
                platform=rec.get('platformName') or 'Unknown',
                repository_id=rec.get('repositoryId'),
                creation_time=rec.get('creationTime')
            )
            for rec in records
        ]

    def list_backup_objects(self, backup_id: str) -> List[Dict]:
        return self._get_all(f"/api/v1/backups/{backup_id}/objects")

    @catalog_read("backup file")
    def list_backup_files(self, backup_id: str) -> List[BackupPoint]:
        """Restore point files of one backup chain, in API order"""
        records = self._get_all(f"/api/v1/backups/{backup_id}/backupFiles")
        points = []
        for rec in records:
            if not rec.get('creationTime'):
                logger.warning(f"Backup file {rec.get('name', rec.get('id'))} has no creation time, skipping")
                continue
            points.append(BackupPoint(
                id=rec['id'],
                name=rec.get('name', ''),
                creation_time=rec['creationTime'],
                size_bytes=rec.get('backupSize', 0) or 0,
                is_full=str(rec.get('type', '')).lower() == 'full'
            ))
        return points


def _repository_path(rec: Dict) -> str:
    """Folder of a repository record: share path for SMB, local path otherwise."""
    share = rec.get('share') or {}
    if share.get('sharePath'):
        return share['sharePath']
    repository = rec.get('repository') or {}
    return repository.get('path') or rec.get('path', '') or ''
