"""
Audit Service - append-only audit trail.

Rows are added to the caller's session. The caller owns the commit, so an
audit entry lands in the same transaction as the change it describes.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog


def generate_partition_key(when: Optional[datetime] = None) -> str:
    """Monthly partition key, e.g. '2026-03'."""
    when = when or datetime.utcnow()
    return f"{when.year:04d}-{when.month:02d}"


def log_audit_event(
    db: Session,
    entity_type: str,
    entity_id: str,
    action: str,
    user_id: Optional[str] = None,
    changes: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    now = datetime.utcnow()
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        changes=changes,
        audit_metadata=metadata,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
        partition_key=generate_partition_key(now),
        created_at=now,
    )
    db.add(entry)
    logger.debug(f"[Audit] {entity_type}/{action} {entity_id}")
    return entry
