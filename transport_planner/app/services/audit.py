"""
Audit recording service.

Captures before/after snapshots of mutations to tracked entities. Recording
is best-effort: it runs after the primary commit and a failure here is
logged, never propagated.
"""

import enum
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy import inspect, select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from transport_planner.app.models.audit_log import AuditLog, AuditOperation

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    return value


def snapshot(instance) -> Dict[str, Any]:
    """Column values of an ORM instance as a JSON-ready dict."""
    mapper = inspect(instance).mapper
    return {
        attr.key: _json_safe(getattr(instance, attr.key))
        for attr in mapper.column_attrs
    }


def changed_fields(before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
    """Names of fields whose values differ between the two snapshots."""
    keys = set(before) | set(after)
    return sorted(k for k in keys if before.get(k) != after.get(k))


async def _write_audit_row(db: AsyncSession, audit_log: AuditLog) -> None:
    # Own session: a failed audit write must not touch the caller's transaction
    async with AsyncSession(db.bind, expire_on_commit=False) as audit_db:
        audit_db.add(audit_log)
        await audit_db.commit()
        await audit_db.refresh(audit_log)


async def record_audit(
    db: AsyncSession,
    entity_kind: str,
    entity_id: Any,
    operation: AuditOperation,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    actor: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    """
    Append one audit row.

    Args:
        db: Database session (the primary mutation must already be committed)
        entity_kind: Table name of the mutated entity
        entity_id: Primary key of the mutated row
        operation: INSERT, UPDATE or DELETE
        before: Snapshot prior to the change (ignored for INSERT)
        after: Snapshot after the change (ignored for DELETE)
        actor: Token payload of the caller; None for system jobs

    Returns:
        The stored AuditLog, or None when recording failed
    """
    old_values = None if operation == AuditOperation.INSERT else before
    new_values = None if operation == AuditOperation.DELETE else after
    fields = None
    if operation == AuditOperation.UPDATE:
        fields = changed_fields(old_values or {}, new_values or {})

    audit_log = AuditLog(
        table_name=entity_kind,
        record_id=str(entity_id),
        operation=operation,
        old_values=old_values,
        new_values=new_values,
        changed_fields=fields,
        user_id=actor.get("user_id") if actor else None,
        user_email=actor.get("email") if actor else None,
    )

    try:
        await _write_audit_row(db, audit_log)
    except Exception:
        logger.exception(
            "Audit recording failed for %s %s:%s", operation.value, entity_kind, entity_id
        )
        return None

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    operation: Optional[AuditOperation] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if table_name:
        query = query.where(AuditLog.table_name == table_name)

    if record_id:
        query = query.where(AuditLog.record_id == str(record_id))

    if operation:
        query = query.where(AuditLog.operation == operation)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
