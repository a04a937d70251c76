#!/usr/bin/env python3
"""
Storage Estimate Report
Change rate per backup and the storage a retention policy of N restore points
would need at that rate.
"""

import logging
import os
import sys
from typing import Dict, List

from src.common.cli import build_parser, load_script_config, run_report
from src.common.report_writer import write_report
from src.common.vbr_connector import VbrConnector
from src.common.vbr_models import BackupRecord
from src.storage_estimate.change_rate import MAX_INCREMENTALS, ChangeRateSample, estimate_change_rate

logger = logging.getLogger(__name__)

CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'config.yaml')
REPORT_TITLE = "Backup Storage Estimate"

BYTES_PER_GB = 1024 ** 3
DEFAULT_RETENTION_POINTS = 14


def to_gb(size_bytes: float) -> float:
    return round(size_bytes / BYTES_PER_GB, 2)


def projected_storage_bytes(sample: ChangeRateSample, retention_points: int) -> int:
    """One full plus (retention_points - 1) incrementals at the estimated change rate."""
    if retention_points < 1:
        return 0
    increments = (retention_points - 1) * sample.full_size * sample.change_rate_pct / 100
    return int(round(sample.full_size + increments))


def build_row(backup: BackupRecord, sample: ChangeRateSample, restore_points: int,
              retention_points: int, is_appliance: bool) -> Dict:
    return {
        'backup': backup.name,
        'backup_id': backup.id,
        'job_id': backup.job_id,
        'platform': backup.platform,
        'virtual_appliance': is_appliance,
        'restore_points': restore_points,
        'incrementals_sampled': len(sample.incremental_sizes),
        'full_size_gb': to_gb(sample.full_size),
        'change_rate_pct': sample.change_rate_pct,
        'daily_change_gb': to_gb(sample.daily_change_bytes),
        'retention_points': retention_points,
        'projected_storage_gb': to_gb(projected_storage_bytes(sample, retention_points)),
    }


def generate_report(connector: VbrConnector, config: dict) -> str:
    settings = config.get('storage_estimate', {})
    retention_points = int(settings.get('retention_points', DEFAULT_RETENTION_POINTS))
    max_incrementals = int(settings.get('max_incrementals', MAX_INCREMENTALS))
    appliance_platforms = {p.lower() for p in settings.get('appliance_platforms', [])}

    logger.info("=" * 80)
    logger.info("STORAGE ESTIMATE REPORT")
    logger.info("=" * 80)

    backups = connector.list_backups()
    logger.info(f"Found {len(backups)} backups")

    rows: List[Dict] = []
    for backup in backups:
        points = connector.list_backup_files(backup.id)
        is_appliance = backup.platform.lower() in appliance_platforms
        sample = estimate_change_rate(backup.id, points, is_appliance, max_incrementals)
        logger.info(f"  {backup.name}: {len(points)} restore points, change rate {sample.change_rate_pct}%")
        rows.append(build_row(backup, sample, len(points), retention_points, is_appliance))

    content = write_report(rows, rows, config['report']['format'], REPORT_TITLE, config['report']['output'])
    if not config['report']['output']:
        print(content)

    logger.info("=" * 80)
    logger.info(f"Storage estimate complete: {len(rows)} backups")
    logger.info("=" * 80)
    return content


def main(argv=None) -> int:
    parser = build_parser("Change rate and projected storage per backup")
    config = load_script_config(parser, argv, CONFIG_PATH)
    connector = VbrConnector(config)
    return run_report(connector, lambda: generate_report(connector, config))


if __name__ == "__main__":
    sys.exit(main())
