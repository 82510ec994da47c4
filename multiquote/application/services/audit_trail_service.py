from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ...domain.filters import AUDIT_LOG_FILTERS, FilterCriteria, Page, PageResult
from ...domain.models import AuditLog, AuditLogEntry
from ...domain.ports.persistence import AuditLogRepository

logger = logging.getLogger(__name__)


class AuditTrailService:
    """Persists and queries the per-request audit trail."""

    def __init__(self, repository: AuditLogRepository) -> None:
        self._repository = repository

    def record(self, entry: AuditLogEntry) -> Optional[AuditLog]:
        """Persist one audit row. Failures are logged and never raised."""
        try:
            return self._repository.record_audit_log(entry)
        except Exception:
            logger.exception("Failed to persist audit log for %s %s", entry.method, entry.action)
            return None

    def list_logs(self, filters: Mapping[str, Any], page: Page) -> PageResult:
        return self._repository.list_audit_logs(FilterCriteria.build(AUDIT_LOG_FILTERS, filters), page)
