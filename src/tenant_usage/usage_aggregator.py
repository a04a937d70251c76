"""
Tenant usage aggregation: tenant -> resources -> repositories -> tier figures.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from src.common.errors import UnknownRepositoryType
from src.common.vbr_models import Repository, Tenant
from src.tenant_usage.tier_classifier import ResourceUsage, TierClassifier

logger = logging.getLogger(__name__)


@dataclass
class TenantUsage:
    id: str
    name: str
    enabled: bool
    performance_mb: int = 0
    capacity_mb: int = 0
    untracked_mb: Optional[int] = None
    resources: List[ResourceUsage] = field(default_factory=list)

    @property
    def total_mb(self) -> int:
        return self.performance_mb + self.capacity_mb


def aggregate_tenant(tenant: Tenant, repositories: Dict[str, Repository],
                     classifier: TierClassifier) -> TenantUsage:
    logger.info(f"Tenant {tenant.name}: {len(tenant.resources)} resource(s)")
    usage = TenantUsage(id=tenant.id, name=tenant.name, enabled=tenant.enabled)

    for resource in tenant.resources:
        repository = repositories.get(resource.repository_id)
        if repository is None:
            raise UnknownRepositoryType(resource.name, resource.repository_id)

        resource_usage = classifier.classify(repository, resource)
        usage.resources.append(resource_usage)
        usage.performance_mb += resource_usage.performance_mb
        usage.capacity_mb += resource_usage.capacity_mb
        if resource_usage.untracked_mb is not None:
            usage.untracked_mb = (usage.untracked_mb or 0) + resource_usage.untracked_mb

    logger.info(
        f"Tenant {tenant.name}: performance {usage.performance_mb} MB, capacity {usage.capacity_mb} MB"
    )
    return usage


def aggregate_tenants(tenants: Iterable[Tenant], repositories: Dict[str, Repository],
                      classifier: TierClassifier) -> List[TenantUsage]:
    return [aggregate_tenant(tenant, repositories, classifier) for tenant in tenants]
