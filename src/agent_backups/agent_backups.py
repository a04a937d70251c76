#!/usr/bin/env python3
"""
Agent Backup Report
Backups produced by physical-machine agents: protected objects, restore
points and chain size per backup.
"""

import logging
import os
import sys
from typing import Dict, List

from src.common.cli import build_parser, load_script_config, run_report
from src.common.report_writer import write_report
from src.common.vbr_connector import VbrConnector
from src.common.vbr_models import BackupPoint, BackupRecord

logger = logging.getLogger(__name__)

CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'config.yaml')
REPORT_TITLE = "Agent Backups"

BYTES_PER_GB = 1024 ** 3
DEFAULT_AGENT_PLATFORMS = ("WindowsPhysical", "LinuxPhysical", "MacPhysical")


def summarize_backup(backup: BackupRecord, objects: List[Dict], points: List[BackupPoint]) -> Dict:
    fulls = sum(1 for p in points if p.is_full)
    last_point = max((p.creation_time for p in points), default=None)
    return {
        'backup': backup.name,
        'backup_id': backup.id,
        'job_id': backup.job_id,
        'platform': backup.platform,
        'objects': len(objects),
        'object_names': ", ".join(sorted(o.get('name', '') for o in objects)),
        'restore_points': len(points),
        'fulls': fulls,
        'incrementals': len(points) - fulls,
        'last_restore_point': last_point.isoformat() if last_point else None,
        'total_size_gb': round(sum(p.size_bytes for p in points) / BYTES_PER_GB, 2),
    }


def generate_report(connector: VbrConnector, config: dict) -> str:
    settings = config.get('agent_backups', {})
    platforms = {p.lower() for p in settings.get('agent_platforms', DEFAULT_AGENT_PLATFORMS)}

    logger.info("=" * 80)
    logger.info("AGENT BACKUP REPORT")
    logger.info("=" * 80)

    backups = [b for b in connector.list_backups() if b.platform.lower() in platforms]
    logger.info(f"Found {len(backups)} agent backups")

    rows = []
    for backup in backups:
        objects = connector.list_backup_objects(backup.id)
        points = connector.list_backup_files(backup.id)
        row = summarize_backup(backup, objects, points)
        logger.info(f"  {backup.name}: {row['objects']} objects, {row['restore_points']} restore points")
        rows.append(row)

    content = write_report(rows, rows, config['report']['format'], REPORT_TITLE, config['report']['output'])
    if not config['report']['output']:
        print(content)

    logger.info("=" * 80)
    logger.info(f"Agent backup report complete: {len(rows)} backups")
    logger.info("=" * 80)
    return content


def main(argv=None) -> int:
    parser = build_parser("Physical agent backups with restore point summary")
    config = load_script_config(parser, argv, CONFIG_PATH)
    connector = VbrConnector(config)
    return run_report(connector, lambda: generate_report(connector, config))


if __name__ == "__main__":
    sys.exit(main())
