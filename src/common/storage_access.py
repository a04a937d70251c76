"""
Storage-location access for repository extents.
Each location is a context manager: entering mounts/connects, leaving releases.
Paths handed out and accepted are relative to the location root, '/'-separated.
"""

import json
import logging
import os
import posixpath
import stat
import subprocess
from dataclasses import dataclass
from typing import Dict, List

import paramiko

from src.common.errors import FolderNotFoundError, StorageAccessError, UnsupportedConfigurationError
from src.common.vbr_models import ExtentType

logger = logging.getLogger(__name__)

INVENTORY_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "Get-ShareInventory.ps1")
METADATA_EXTENSION = ".vbm"
# Get-ShareInventory.ps1 exit code for "parent reachable, folder missing"
FOLDER_MISSING_EXIT_CODE = 3


@dataclass(frozen=True)
class FileEntry:
    path: str
    size: int
    is_dir: bool = False


class StorageLocation:
    """Base class: mount on enter, unmount on exit."""
    case_sensitive = True

    def __init__(self, display: str):
        self.display = display

    def __enter__(self):
        logger.info(f"Opening storage location {self.display}")
        self.mount()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unmount()
        logger.info(f"Released storage location {self.display}")
        return False

    def mount(self):
        pass

    def unmount(self):
        pass

    def list_files(self) -> List[FileEntry]:
        raise NotImplementedError

    def file_size(self, path: str) -> int:
        raise NotImplementedError

    def read_text(self, path: str) -> str:
        raise NotImplementedError


# =============================================================================
# LOCAL / UNC FILESYSTEM
# =============================================================================

class LocalLocation(StorageLocation):
    """
    A folder the current process can already read (local disk or UNC path).
    Nothing to mount and nothing to release, so unmount stays the base no-op.
    """
    case_sensitive = os.name != 'nt'

    def __init__(self, root: str):
        super().__init__(root)
        self.root = root

    def _full(self, path: str) -> str:
        return os.path.join(self.root, *path.split('/'))

    def mount(self):
        if os.path.isdir(self.root):
            return
        parent = os.path.dirname(os.path.normpath(self.root))
        if parent and parent != self.root and os.path.isdir(parent):
            raise FolderNotFoundError(self.root)
        raise StorageAccessError(self.root, "folder does not exist or is not reachable")

    def list_files(self) -> List[FileEntry]:
        entries = []
        try:
            for dirpath, dirnames, filenames in os.walk(self.root):
                rel_dir = os.path.relpath(dirpath, self.root)
                rel_dir = '' if rel_dir == '.' else rel_dir.replace(os.sep, '/')
                for d in dirnames:
                    entries.append(FileEntry(path=f"{rel_dir}/{d}".lstrip('/'), size=0, is_dir=True))
                for name in filenames:
                    rel = f"{rel_dir}/{name}".lstrip('/')
                    entries.append(FileEntry(path=rel, size=os.path.getsize(os.path.join(dirpath, name))))
        except OSError as e:
            raise StorageAccessError(self.root, str(e))
        return entries

    def file_size(self, path: str) -> int:
        return os.path.getsize(self._full(path))

    def read_text(self, path: str) -> str:
        with open(self._full(path), 'r', encoding='utf-8-sig') as f:
            return f.read()


# =============================================================================
# SMB SHARE VIA POWERSHELL (HYBRID MODE)
# =============================================================================

class PowerShellShareLocation(StorageLocation):
    """
    SMB share mounted with explicit credentials by the bundled PowerShell
    collector. One collector run takes the whole inventory (file listing plus
    metadata contents); the drive is removed before the script exits.
    """
    case_sensitive = False

    def __init__(self, root: str, username: str = '', password: str = '',
                 shell: str = 'pwsh', timeout: int = 300, script_path: str = INVENTORY_SCRIPT):
        super().__init__(root)
        self.root = root
        self.username = username
        self.password = password
        self.shell = shell
        self.timeout = timeout
        self.script_path = script_path
        self.sizes: Dict[str, int] = {}
        self.metadata: Dict[str, str] = {}
        self.entries: List[FileEntry] = []

    def mount(self):
        if not os.path.isfile(self.script_path):
            raise StorageAccessError(self.root, f"PowerShell collector not found: {self.script_path}")

        cmd = [
            self.shell, '-NoProfile', '-ExecutionPolicy', 'Bypass',
            '-File', self.script_path,
            '-Root', self.root,
            '-MetadataExtension', METADATA_EXTENSION
        ]
        # Credentials travel in the child environment, never on the command line
        env = dict(os.environ)
        env['VBR_SHARE_USERNAME'] = self.username or ''
        env['VBR_SHARE_PASSWORD'] = self.password or ''

        logger.info(f"Hybrid Mode: collecting share inventory of {self.root} via PowerShell")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, env=env)
        except FileNotFoundError:
            raise StorageAccessError(self.root, f"PowerShell executable '{self.shell}' not found")
        except subprocess.TimeoutExpired:
            raise StorageAccessError(self.root, f"inventory timed out after {self.timeout} seconds")

        if result.returncode == FOLDER_MISSING_EXIT_CODE:
            raise FolderNotFoundError(self.root)
        if result.returncode != 0:
            raise StorageAccessError(self.root, (result.stderr or '').strip() or f"exit code {result.returncode}")

        try:
            inventory = json.loads(result.stdout or '{}')
        except ValueError as e:
            raise StorageAccessError(self.root, f"unreadable inventory output: {e}")

        files = inventory.get('files') or []
        # ConvertTo-Json collapses a single-item array into an object
        if isinstance(files, dict):
            files = [files]
        self.entries = [
            FileEntry(path=f['path'], size=int(f.get('length', 0) or 0), is_dir=bool(f.get('isDirectory', False)))
            for f in files
        ]
        self.sizes = {e.path.lower(): e.size for e in self.entries if not e.is_dir}
        self.metadata = {k.lower(): v for k, v in (inventory.get('metadata') or {}).items()}
        logger.info(f"Hybrid Mode: {len(self.entries)} entries, {len(self.metadata)} metadata files")

    def unmount(self):
        self.entries = []
        self.sizes = {}
        self.metadata = {}

    def list_files(self) -> List[FileEntry]:
        return list(self.entries)

    def file_size(self, path: str) -> int:
        try:
            return self.sizes[path.lower()]
        except KeyError:
            raise FileNotFoundError(path)

    def read_text(self, path: str) -> str:
        try:
            return self.metadata[path.lower()]
        except KeyError:
            raise FileNotFoundError(path)


# =============================================================================
# LINUX EXTENT VIA SFTP
# =============================================================================

class SftpLocation(StorageLocation):
    """Folder on a Linux repository host, read over SSH/SFTP."""

    def __init__(self, host: str, root: str, username: str, password: str = '',
                 key_file: str = '', port: int = 22, timeout: int = 30):
        super().__init__(f"{host}:{root}")
        self.host = host
        self.root = root.rstrip('/') or '/'
        self.username = username
        self.password = password
        self.key_file = key_file
        self.port = port
        self.timeout = timeout
        self.client = None
        self.sftp = None

    def _full(self, path: str) -> str:
        return f"{self.root}/{path}" if path else self.root

    def mount(self):
        self.client = paramiko.SSHClient()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            self.client.connect(
                self.host,
                port=self.port,
                username=self.username,
                password=self.password or None,
                key_filename=self.key_file or None,
                timeout=self.timeout
            )
            self.sftp = self.client.open_sftp()
            self.sftp.stat(self.root)
        except FileNotFoundError as e:
            missing_folder = self._parent_exists()
            self.unmount()
            if missing_folder:
                raise FolderNotFoundError(self.display)
            raise StorageAccessError(self.display, str(e))
        except (paramiko.SSHException, OSError) as e:
            self.unmount()
            raise StorageAccessError(self.display, str(e))

    def _parent_exists(self) -> bool:
        parent = posixpath.dirname(self.root)
        if self.sftp is None or not parent or parent == self.root:
            return False
        try:
            self.sftp.stat(parent)
        except (paramiko.SSHException, OSError):
            return False
        return True

    def unmount(self):
        if self.sftp is not None:
            self.sftp.close()
            self.sftp = None
        if self.client is not None:
            self.client.close()
            self.client = None

    def list_files(self) -> List[FileEntry]:
        entries = []
        pending = ['']
        try:
            while pending:
                rel_dir = pending.pop()
                for attr in self.sftp.listdir_attr(self._full(rel_dir)):
                    rel = f"{rel_dir}/{attr.filename}".lstrip('/')
                    if stat.S_ISDIR(attr.st_mode):
                        entries.append(FileEntry(path=rel, size=0, is_dir=True))
                        pending.append(rel)
                    else:
                        entries.append(FileEntry(path=rel, size=attr.st_size or 0))
        except (paramiko.SSHException, OSError) as e:
            raise StorageAccessError(self.display, str(e))
        return entries

    def file_size(self, path: str) -> int:
        return self.sftp.stat(self._full(path)).st_size

    def read_text(self, path: str) -> str:
        with self.sftp.open(self._full(path), 'r') as f:
            return f.read().decode('utf-8-sig')


# =============================================================================
# FACTORY
# =============================================================================

def admin_share_path(address: str, local_path: str) -> str:
    """D:\\Backups on host -> \\\\host\\D$\\Backups"""
    if local_path.startswith('\\\\'):
        return local_path
    if len(local_path) < 2 or local_path[1] != ':':
        raise UnsupportedConfigurationError(f"Cannot build admin share for path '{local_path}' on {address}")
    rest = local_path[2:].strip('\\')
    share = f"\\\\{address}\\{local_path[0].upper()}$"
    return f"{share}\\{rest}" if rest else share


def join_location_path(extent_type: ExtentType, base: str, folder: str) -> str:
    if not folder:
        return base
    if extent_type == ExtentType.LINUX_LOCAL:
        return base.rstrip('/') + '/' + folder.strip('/')
    return base.rstrip('\\') + '\\' + folder.strip('\\')


def open_location(extent_type: ExtentType, address: str, path: str, storage_config: Dict) -> StorageLocation:
    """Pick the location implementation for an extent's storage type."""
    if extent_type == ExtentType.LINUX_LOCAL:
        return SftpLocation(
            address, path,
            username=storage_config.get('ssh_username', ''),
            password=storage_config.get('ssh_password', ''),
            key_file=storage_config.get('ssh_key_file', ''),
            port=int(storage_config.get('ssh_port', 22))
        )

    if extent_type == ExtentType.WINDOWS_LOCAL:
        root = admin_share_path(address, path)
    elif extent_type == ExtentType.NETWORK_SHARE:
        root = path
    else:
        raise UnsupportedConfigurationError(f"No storage access for extent type {extent_type.value}")

    if storage_config.get('share_access', 'local') == 'powershell':
        return PowerShellShareLocation(
            root,
            username=storage_config.get('username', ''),
            password=storage_config.get('password', ''),
            shell=storage_config.get('powershell', 'pwsh'),
            timeout=int(storage_config.get('timeout', 300))
        )
    return LocalLocation(root)
