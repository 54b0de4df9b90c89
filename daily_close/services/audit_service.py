from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from daily_close.auth import Principal
from daily_close.models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    db: Session,
    *,
    principal: Principal,
    action: str,
    branch_id: int | None,
    ip: str | None,
    metadata: dict | None = None,
) -> AuditLog:
    """Queue an audit row. The caller's commit makes it durable with the change it describes."""
    entry = AuditLog(
        actor_principal_id=principal.id,
        actor_name=principal.identity,
        action=action,
        branch_id=branch_id,
        ip=ip,
        meta=metadata or {},
    )
    db.add(entry)
    logger.info('%s by %s on branch %s', action, principal.identity, branch_id)
    return entry
