"""
FastAPI dependencies

The filtering service is a process-wide singleton built from settings on
first use. Tests replace it via app.dependency_overrides.
"""
from typing import Optional

from apps.api.tasks import CeleryAuditSink
from packages.common.catalog_repository import SqlCatalogStore
from packages.common.config import get_settings
from packages.common.rules_repository import SqlRulesStore
from packages.domain.eligibility import BasketFilteringService, build_basket_filtering_service

_service: Optional[BasketFilteringService] = None


def get_basket_filtering_service() -> BasketFilteringService:
    """Get (or build) the basket filtering service"""
    global _service
    if _service is None:
        settings = get_settings()
        _service = build_basket_filtering_service(
            settings,
            catalog_store=SqlCatalogStore(),
            rules_store=SqlRulesStore(),
            audit_sink=CeleryAuditSink() if settings.audit_enabled else None,
        )
    return _service


async def shutdown_basket_filtering_service() -> None:
    global _service
    if _service is not None:
        await _service.shutdown()
        _service = None
