#!/usr/bin/env python3
"""
Tenant Usage Report
Per-tenant storage consumption split into performance tier, capacity tier and
untracked space, for Cloud Connect tenants on simple and scale-out repositories.
"""

import logging
import os
import sys
from dataclasses import asdict
from typing import Dict, List

from src.common.cli import build_parser, load_script_config, run_report
from src.common.report_writer import write_report
from src.common.vbr_connector import VbrConnector
from src.tenant_usage.tier_classifier import TierClassifier
from src.tenant_usage.usage_aggregator import TenantUsage, aggregate_tenants

logger = logging.getLogger(__name__)

CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'config.yaml')
REPORT_TITLE = "Tenant Storage Usage"


def utilisation_pct(used_mb: int, quota_mb: int):
    if not quota_mb:
        return None
    return round(used_mb / quota_mb * 100, 2)


def build_rows(usages: List[TenantUsage]) -> List[Dict]:
    """One flat row per tenant resource, carrying the tenant totals alongside."""
    rows = []
    for usage in usages:
        tenant_columns = {
            'tenant': usage.name,
            'tenant_enabled': usage.enabled,
            'tenant_performance_mb': usage.performance_mb,
            'tenant_capacity_mb': usage.capacity_mb,
            'tenant_untracked_mb': usage.untracked_mb,
        }
        if not usage.resources:
            rows.append(dict(tenant_columns, resource=None))
            continue
        for resource in usage.resources:
            used_mb = resource.performance_mb + resource.capacity_mb
            rows.append(dict(
                tenant_columns,
                resource=resource.resource_name,
                repository=resource.repository_name,
                strategy=resource.strategy,
                quota_mb=resource.quota_mb,
                performance_mb=resource.performance_mb,
                capacity_mb=resource.capacity_mb,
                untracked_mb=resource.untracked_mb,
                used_mb=used_mb,
                utilisation_pct=utilisation_pct(used_mb, resource.quota_mb),
            ))
    return rows


def build_records(usages: List[TenantUsage]) -> List[Dict]:
    records = []
    for usage in usages:
        record = asdict(usage)
        record['total_mb'] = usage.total_mb
        records.append(record)
    return records


def generate_report(connector: VbrConnector, config: dict) -> str:
    logger.info("=" * 80)
    logger.info("TENANT USAGE REPORT")
    logger.info("=" * 80)

    repositories = connector.list_repositories()
    tenants = connector.list_tenants()
    logger.info(f"Found {len(tenants)} tenants and {len(repositories)} repositories")

    classifier = TierClassifier(
        server_address=connector.server,
        storage_config=config['storage'],
        strict_metadata=config.get('tenant_usage', {}).get('strict_metadata', False)
    )
    usages = aggregate_tenants(tenants, repositories, classifier)

    content = write_report(
        build_records(usages),
        build_rows(usages),
        config['report']['format'],
        REPORT_TITLE,
        config['report']['output']
    )
    if not config['report']['output']:
        print(content)

    logger.info("=" * 80)
    logger.info(f"Tenant usage report complete: {len(usages)} tenants")
    logger.info("=" * 80)
    return content


def main(argv=None) -> int:
    parser = build_parser("Per-tenant performance, capacity and untracked storage usage")
    config = load_script_config(parser, argv, CONFIG_PATH)
    connector = VbrConnector(config)
    return run_report(connector, lambda: generate_report(connector, config))


if __name__ == "__main__":
    sys.exit(main())
