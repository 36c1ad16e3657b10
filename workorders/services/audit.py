# workorders/services/audit.py
"""Журнал аудита: кто, что и в какой сущности поменял.

Сравнение идёт по явной таблице полей для каждого типа сущности
(имя поля -> как его достать из объекта), без рефлексии.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from operator import attrgetter
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workorders.errors import InvalidInput, NotFound, StorageError
from workorders.models.audit_log import AuditLog
from workorders.models.user import User
from workorders.utils.enums import AuditAction

logger = logging.getLogger(__name__)

# Служебные отметки времени меняются при каждом сохранении: в дифф не попадают
IGNORED_FIELDS = frozenset({"created_at", "updated_at", "deleted_at"})

AUDITED_FIELDS = {
    "WorkOrder": {
        name: attrgetter(name)
        for name in (
            "id", "work_order_number", "product_name", "target_quantity", "quantity",
            "production_deadline", "status", "operator_id",
            "created_at", "updated_at", "deleted_at",
        )
    },
    "WorkOrderProgress": {
        name: attrgetter(name)
        for name in ("id", "work_order_id", "progress_description", "progress_quantity", "created_at")
    },
    "User": {
        name: attrgetter(name)
        for name in ("id", "username", "role", "created_at", "updated_at", "deleted_at")
    },
}


def snapshot(entity_type: str, obj) -> Dict[str, Any]:
    """Снимок сущности: имя поля -> значение (как есть, без нормализации)."""
    try:
        fields = AUDITED_FIELDS[entity_type]
    except KeyError:
        raise InvalidInput(f"Unknown entity type for audit: {entity_type}")
    return {name: getter(obj) for name, getter in fields.items()}


def normalize_value(value: Any) -> Any:
    """Приводит значение к виду, пригодному для сравнения и записи в JSON.

    Время -> UTC в фиксированном формате, чтобы разница только в часовом
    поясе не считалась изменением. Наивное время считаем уже UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


def changed_fields(
    old_state: Optional[Dict[str, Any]], new_state: Optional[Dict[str, Any]]
) -> Dict[str, Dict[str, Any]]:
    """{поле: {"old": ..., "new": ...}} для полей, которые есть в обоих снимках и отличаются."""
    changes: Dict[str, Dict[str, Any]] = {}
    if old_state is None or new_state is None:
        return changes

    for field, old_raw in old_state.items():
        if field in IGNORED_FIELDS or field not in new_state:
            continue
        old = normalize_value(old_raw)
        new = normalize_value(new_state[field])
        if old != new:
            changes[field] = {"old": old, "new": new}
    return changes


class AuditService:
    """Пишет записи AuditLog в текущую транзакцию сессии (flush, без commit)."""

    def __init__(self, db: Session):
        self.db = db

    def _as_state(self, entity_type: str, state) -> Optional[Dict[str, Any]]:
        if state is None or isinstance(state, dict):
            return state
        return snapshot(entity_type, state)

    def record_change(
        self,
        actor_id: int,
        action,
        entity_type: str,
        entity_id: int,
        old_state=None,
        new_state=None,
        note: str = "",
    ) -> AuditLog:
        try:
            action = AuditAction(action)
        except ValueError:
            raise InvalidInput(f"Unknown audit action: {action}")

        actor = self.db.get(User, actor_id)
        if actor is None:
            raise NotFound(f"Audit actor {actor_id} not found")

        old_state = self._as_state(entity_type, old_state)
        new_state = self._as_state(entity_type, new_state)

        # Пишем даже пустой дифф: вызывающий сам решает, звать ли аудит
        changes = changed_fields(old_state, new_state)
        old_values = {f: c["old"] for f, c in changes.items()} or None
        new_values = {f: c["new"] for f, c in changes.items()} or None

        entry = AuditLog(
            user_id=actor.id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            note=note or None,
        )
        try:
            self.db.add(entry)
            self.db.flush()
        except SQLAlchemyError as exc:
            raise StorageError(f"Error creating audit log: {exc}") from exc

        logger.debug("audit %s %s#%s by user %s: %s", action.value, entity_type, entity_id,
                     actor.id, sorted(changes))
        return entry

    def list_logs(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        action: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[list, int]:
        query = self.db.query(AuditLog)
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.filter(AuditLog.entity_id == entity_id)
        if action:
            query = query.filter(AuditLog.action == action)

        total = query.count()
        rows = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total
