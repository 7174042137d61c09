from database import database
from models import AuditLog, AuditAction
from datetime import datetime
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


async def create_audit_log(
    action: AuditAction,
    organization_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    reason_code: Optional[str] = None,
) -> str:
    """Create an audit log entry.

    Args:
        action: The audit action type
        organization_id: ID of the affected organization
        resource_type: Type of resource involved (e.g., 'members', 'appointment')
        resource_id: ID of the specific resource
        metadata: Additional structured context
        reason_code: Optional reason code for the action
    """
    try:
        db = database.get_db()

        audit_log = AuditLog(
            action=action,
            organization_id=organization_id,
            resource_type=resource_type,
            resource_id=resource_id,
            metadata=metadata or None,
            reason_code=reason_code,
        )

        doc = audit_log.model_dump()
        doc["timestamp"] = doc["timestamp"].isoformat() if isinstance(doc["timestamp"], datetime) else doc["timestamp"]

        await db.audit_logs.insert_one(doc)
        logger.info(f"Audit log created: {action.value}")
        return audit_log.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        # Never fail the main operation due to audit log failure
        return ""

