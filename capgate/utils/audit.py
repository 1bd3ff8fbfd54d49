"""Audit trail for authorization decisions and capability changes."""

from datetime import datetime, timezone
from typing import Any, Optional

from capgate.models import AuditAction, AuditStatus
from capgate.utils import database
from capgate.utils.logger import logger

AUDIT_TABLE = "audit_logs"


async def log_audit_event(
    supabase,
    action: AuditAction,
    actor_id: Optional[Any],
    status: AuditStatus = AuditStatus.success,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
    metadata: Optional[dict] = None,
) -> None:
    """
    Write one row to ``audit_logs``.

    Args:
        supabase: Supabase client
        action: Standardized action type (AuditAction enum)
        actor_id: Login id performing the action (None for anonymous callers)
        status: Operation status (success/failure/denied)
        resource_type: Service the action targeted (``notes``, ``logins`` ...)
        resource_id: ID of the specific record acted upon
        metadata: Additional structured data about the operation
    """
    audit_entry = {
        "actor_id": str(actor_id) if actor_id is not None else None,
        "action": action.value,
        "status": status.value,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }

    if resource_type:
        audit_entry["resource_type"] = resource_type
    if resource_id is not None:
        audit_entry["resource_id"] = str(resource_id)
    if metadata:
        audit_entry["metadata"] = metadata

    try:
        await database.insert_data(supabase, AUDIT_TABLE, audit_entry)
    except Exception as e:  # noqa: BLE001
        # Never let audit logging break the main operation
        logger.warning(f"Failed to log audit event: {e}")
