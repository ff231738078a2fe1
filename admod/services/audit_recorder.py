"""Append-only audit trail for privileged actions."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from admod.models.audit import AuditEntry
from admod.models.enums import AuditAction

logger = logging.getLogger(__name__)


@dataclass
class AuditPage:
    items: List[AuditEntry]
    total: int
    page: int
    limit: int


class AuditRecorder:
    """
    Writes audit entries into the caller's session.

    The recorder flushes but never commits: the entry becomes durable together
    with the change it describes, or not at all. Callers are trusted to supply
    a coherent action/entity pairing.
    """

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: AuditAction,
        acting_admin_id: str,
        entity_type: str,
        entity_id: str,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            action=action,
            acting_admin_id=acting_admin_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            old_values=old_values,
            new_values=new_values,
            description=description,
            ip_address=ip_address,
        )
        self.db.add(entry)
        self.db.flush()
        logger.debug("audit %s by %s on %s/%s", action.value, acting_admin_id, entity_type, entity_id)
        return entry

    def find(
        self,
        admin_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> AuditPage:
        """Newest-first page of entries matching every given filter."""
        query = self.db.query(AuditEntry)
        if admin_id:
            query = query.filter(AuditEntry.acting_admin_id == admin_id)
        if action:
            query = query.filter(AuditEntry.action == action)
        if entity_type:
            query = query.filter(AuditEntry.entity_type == entity_type)
        if entity_id:
            query = query.filter(AuditEntry.entity_id == entity_id)

        total = query.count()
        items = (
            query.order_by(AuditEntry.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return AuditPage(items=items, total=total, page=page, limit=limit)
