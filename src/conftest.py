"""
Shared fixtures: an in-memory storage location and a .vbm builder.
"""

from xml.sax.saxutils import quoteattr

import pytest

from src.common.errors import FolderNotFoundError
from src.common.storage_access import FileEntry, StorageLocation


class FakeLocation(StorageLocation):
    """files: path -> size, texts: path -> metadata contents. missing: root folder absent."""

    def __init__(self, files=None, texts=None, display="fake://extent", case_sensitive=True, missing=False):
        super().__init__(display)
        self.missing = missing
        self.files = dict(files or {})
        self.texts = dict(texts or {})
        self.case_sensitive = case_sensitive
        self.mounted = False
        self.mount_count = 0

    def mount(self):
        if self.missing:
            raise FolderNotFoundError(self.display)
        self.mounted = True
        self.mount_count += 1

    def unmount(self):
        self.mounted = False

    def list_files(self):
        entries = [FileEntry(path=p, size=len(t)) for p, t in self.texts.items()]
        entries += [FileEntry(path=p, size=s) for p, s in self.files.items() if p not in self.texts]
        return entries

    def file_size(self, path):
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def read_text(self, path):
        if path not in self.texts:
            raise FileNotFoundError(path)
        return self.texts[path]


def build_vbm(storages, job_name="Tenant Job", job_id="5a4b3c2d-0000-4000-8000-000000000001"):
    nodes = []
    for s in storages:
        stats = (
            f"<CBackupStats><BackupSize>{s.get('size', 0)}</BackupSize>"
            f"<DataSize>{s.get('data_size', 0)}</DataSize>"
            f"<DedupRatio>{s.get('dedup', 100)}</DedupRatio>"
            f"<CompressRatio>{s.get('compress', 50)}</CompressRatio></CBackupStats>"
        )
        nodes.append(
            f'<Storage Id="{s.get("id", s["path"])}" FilePath="{s["path"]}" Stats={quoteattr(stats)} '
            f'CreationTime="2024-05-01 22:00:00" CreationTimeUtc="2024-05-01 20:00:00" '
            f'ModificationTime="2024-05-01 22:30:00" '
            f'IsContentExternal="{s.get("external", False)}" GfsPeriod="{s.get("gfs", "None")}" />'
        )
    return (
        f'<BackupMeta Version="13"><Backup Id="{job_id}" JobName="{job_name}" />'
        f'<BackupMetaInfo><Storages>{"".join(nodes)}</Storages></BackupMetaInfo></BackupMeta>'
    )


@pytest.fixture
def fake_location():
    return FakeLocation


@pytest.fixture
def make_vbm():
    return build_vbm
