import json
from datetime import datetime
from unittest.mock import MagicMock

from src.agent_backups.agent_backups import generate_report, summarize_backup
from src.common.vbr_models import BackupPoint, BackupRecord

GB = 1024 ** 3


def _points():
    return [
        BackupPoint(id="p1", creation_time=datetime(2024, 5, 1, 22, 0), size_bytes=40 * GB, is_full=True),
        BackupPoint(id="p2", creation_time=datetime(2024, 5, 3, 22, 0), size_bytes=2 * GB, is_full=False),
        BackupPoint(id="p3", creation_time=datetime(2024, 5, 2, 22, 0), size_bytes=GB, is_full=False),
    ]


def test_summary_counts_restore_points():
    backup = BackupRecord(id="b1", name="Laptops", job_id="j1", platform="WindowsPhysical")
    objects = [{'name': 'LAPTOP-02'}, {'name': 'LAPTOP-01'}]

    row = summarize_backup(backup, objects, _points())

    assert row['objects'] == 2
    assert row['object_names'] == "LAPTOP-01, LAPTOP-02"
    assert row['restore_points'] == 3
    assert row['fulls'] == 1
    assert row['incrementals'] == 2
    assert row['last_restore_point'] == "2024-05-03T22:00:00"
    assert row['total_size_gb'] == 43.0


def test_backup_without_points():
    row = summarize_backup(BackupRecord(id="b1", name="New", platform="LinuxPhysical"), [], [])

    assert row['restore_points'] == 0
    assert row['last_restore_point'] is None
    assert row['total_size_gb'] == 0.0


def test_only_agent_platforms_are_reported(tmp_path):
    connector = MagicMock()
    connector.list_backups.return_value = [
        BackupRecord(id="b1", name="Laptops", platform="WindowsPhysical"),
        BackupRecord(id="b2", name="VMware Daily", platform="VMware"),
    ]
    connector.list_backup_objects.return_value = [{'name': 'LAPTOP-01'}]
    connector.list_backup_files.return_value = _points()
    output = tmp_path / "agents.json"
    config = {'report': {'format': 'json', 'output': str(output)}}

    generate_report(connector, config)

    rows = json.loads(output.read_text(encoding='utf-8'))
    assert [r['backup_id'] for r in rows] == ["b1"]
    connector.list_backup_objects.assert_called_once_with("b1")
