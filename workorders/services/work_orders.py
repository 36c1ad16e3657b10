# workorders/services/work_orders.py
"""Жизненный цикл наряда: создание, правка, смена статуса, прогресс, удаление.

Каждая операция выполняется одной транзакцией: наряд + история статусов + аудит
коммитятся вместе. Аудит пишется в SAVEPOINT: если он упал, откатывается
только он, основная операция всё равно проходит (ошибка уходит в лог).
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from workorders.errors import (
    Conflict, Forbidden, InvalidInput, InvalidRole, InvalidState, InvalidTransition,
    NotFound, StorageError, WorkOrderError,
)
from workorders.models.audit_log import AuditLog
from workorders.models.user import User
from workorders.models.work_order import WorkOrder, WorkOrderProgress, WorkOrderSequence
from workorders.models.work_order_status_history import WorkOrderStatusHistory
from workorders.services.audit import AuditService, snapshot
from workorders.utils.dates import day_bounds, to_naive_utc, utcnow
from workorders.utils.enums import AuditAction, UserRole, WorkOrderStatus, is_valid_transition

logger = logging.getLogger(__name__)

ENTITY = "WorkOrder"
NUMBER_PREFIX = "WO"
MAX_NUMBER_ATTEMPTS = 3

PATCH_FIELDS = ("product_name", "quantity", "production_deadline", "status", "operator_id")


def format_number(day: str, sequence: int) -> str:
    return f"{NUMBER_PREFIX}-{day}-{sequence:03d}"


def parse_sequence(number: str) -> int:
    """'WO-20250101-007' -> 7; мусор -> 0"""
    try:
        return int(number.rsplit("-", 1)[1])
    except (AttributeError, IndexError, ValueError):
        return 0


def _parse_role(role) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise Forbidden("Unknown role")


def _escape_like(value: str) -> str:
    """Поиск "содержит": % и _ из запроса ищем буквально."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_status(value) -> WorkOrderStatus:
    try:
        return WorkOrderStatus(value)
    except ValueError:
        raise InvalidInput(f"Unknown status: {value}")


class WorkOrderService:
    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    # ---------- транзакции ----------

    @contextmanager
    def _write(self):
        try:
            yield
            self.db.commit()
        except WorkOrderError:
            self.db.rollback()
            raise
        except StaleDataError as exc:
            self.db.rollback()
            raise Conflict("Work order was modified concurrently, please retry") from exc
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Uniqueness violation") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Storage error in work order lifecycle")
            raise StorageError() from exc

    def _audit_quietly(self, actor_id, action, entity_type, entity_id, old_state=None,
                       new_state=None, note=""):
        # Ошибка аудита не должна отменять основную операцию
        try:
            with self.db.begin_nested():
                self.audit.record_change(actor_id, action, entity_type, entity_id,
                                         old_state, new_state, note)
        except (WorkOrderError, SQLAlchemyError):
            logger.error(
                "Error creating audit log (%s %s#%s by user %s)",
                AuditAction(action).value, entity_type, entity_id, actor_id, exc_info=True,
            )

    # ---------- проверки ----------

    def _require_manager(self, role, message="Only Production Manager can do this"):
        if _parse_role(role) != UserRole.PRODUCTION_MANAGER:
            raise Forbidden(message)

    def _check_access(self, wo: WorkOrder, user_id: int, role):
        """Менеджер видит любой наряд, оператор только назначенный ему."""
        role = _parse_role(role)
        if role == UserRole.PRODUCTION_MANAGER:
            return
        if wo.operator_id != user_id:
            raise Forbidden("You are not assigned to this work order")

    def _get_operator(self, operator_id: int) -> User:
        user = (
            self.db.query(User)
            .filter(User.id == operator_id, User.deleted_at.is_(None))
            .first()
        )
        if user is None:
            raise NotFound("Operator not found")
        if not user.is_operator:
            raise InvalidRole("Assigned user must have the operator role")
        return user

    def _get(self, work_order_id: int, for_update: bool = False,
             include_deleted: bool = False) -> WorkOrder:
        query = self.db.query(WorkOrder).filter(WorkOrder.id == work_order_id)
        if not include_deleted:
            query = query.filter(WorkOrder.deleted_at.is_(None))
        if for_update:
            query = query.with_for_update(of=WorkOrder)
        wo = query.first()
        if wo is None:
            raise NotFound("Work order not found")
        return wo

    # ---------- номер наряда ----------

    def _highest_sequence(self, day: str) -> int:
        numbers = (
            self.db.query(WorkOrder.work_order_number)
            .filter(WorkOrder.work_order_number.like(f"{NUMBER_PREFIX}-{day}-%"))
            .all()
        )
        return max((parse_sequence(n) for (n,) in numbers), default=0)

    def _next_number(self, today: date) -> str:
        day = today.strftime("%Y%m%d")
        counter = (
            self.db.query(WorkOrderSequence)
            .filter(WorkOrderSequence.day == day)
            .with_for_update()
            .first()
        )
        if counter is None:
            # первый наряд за день (или счётчика ещё нет для старых данных)
            counter = WorkOrderSequence(day=day, last_value=self._highest_sequence(day))
            self.db.add(counter)
            self.db.flush()  # параллельная вставка -> IntegrityError -> повтор
        counter.last_value += 1
        self.db.flush()
        return format_number(day, counter.last_value)

    def _add_history(self, wo: WorkOrder, quantity: Optional[int] = None):
        # при создании ещё ничего не произведено, туда передаётся 0
        self.db.add(WorkOrderStatusHistory(
            work_order_id=wo.id, status=wo.status,
            quantity=wo.quantity if quantity is None else quantity,
        ))

    def _apply_transition(self, wo: WorkOrder, new_status: WorkOrderStatus,
                          quantity: Optional[int] = None):
        current = WorkOrderStatus(wo.status)
        if not is_valid_transition(current, new_status):
            raise InvalidTransition(
                f"Invalid status transition from {current.value} to {new_status.value}"
            )
        wo.status = new_status.value
        if quantity and quantity > 0:
            wo.quantity = quantity
        self._add_history(wo)

    # ---------- чтение ----------

    def get(self, work_order_id: int, user_id: int, role) -> WorkOrder:
        # мягко удалённые по id всё ещё доступны
        wo = self._get(work_order_id, include_deleted=True)
        self._check_access(wo, user_id, role)
        return wo

    def list_work_orders(
        self,
        status: Optional[str] = None,
        operator_id: Optional[int] = None,
        search: Optional[str] = None,
        deadline: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[list, int]:
        query = self.db.query(WorkOrder).filter(WorkOrder.deleted_at.is_(None))

        if status:
            query = query.filter(WorkOrder.status == _parse_status(status).value)
        if operator_id:
            query = query.filter(WorkOrder.operator_id == operator_id)
        if search:
            like = "%%%s%%" % _escape_like(search.strip())
            if search.strip().upper().startswith(f"{NUMBER_PREFIX}-"):
                query = query.filter(WorkOrder.work_order_number.ilike(like, escape="\\"))
            else:
                query = query.filter(WorkOrder.product_name.ilike(like, escape="\\"))
        if deadline:
            start, end = day_bounds(deadline)
            query = query.filter(WorkOrder.production_deadline >= start,
                                 WorkOrder.production_deadline < end)

        total = query.count()
        rows = (
            query.order_by(WorkOrder.work_order_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def list_assigned(self, operator_id: int, status: Optional[str] = None,
                      page: int = 1, limit: int = 10) -> Tuple[list, int]:
        query = self.db.query(WorkOrder).filter(
            WorkOrder.operator_id == operator_id, WorkOrder.deleted_at.is_(None)
        )
        if status:
            query = query.filter(WorkOrder.status == _parse_status(status).value)

        total = query.count()
        rows = (
            query.order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def list_progress(self, work_order_id: int, user_id: int, role) -> list:
        wo = self._get(work_order_id, include_deleted=True)
        self._check_access(wo, user_id, role)
        return (
            self.db.query(WorkOrderProgress)
            .filter(WorkOrderProgress.work_order_id == wo.id)
            .order_by(WorkOrderProgress.created_at.desc(), WorkOrderProgress.id.desc())
            .all()
        )

    def list_history(self, work_order_id: int, user_id: int, role) -> list:
        wo = self._get(work_order_id, include_deleted=True)
        self._check_access(wo, user_id, role)
        return (
            self.db.query(WorkOrderStatusHistory)
            .filter(WorkOrderStatusHistory.work_order_id == wo.id)
            .order_by(WorkOrderStatusHistory.created_at.asc(), WorkOrderStatusHistory.id.asc())
            .all()
        )

    def list_logs(self, work_order_id: int, user_id: int, role) -> list:
        wo = self._get(work_order_id, include_deleted=True)
        self._check_access(wo, user_id, role)
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == ENTITY, AuditLog.entity_id == wo.id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .all()
        )

    # ---------- запись ----------

    def create(
        self,
        product_name: str,
        quantity: int,
        production_deadline: datetime,
        operator_id: int,
        acting_manager_id: int,
        acting_role=UserRole.PRODUCTION_MANAGER,
    ) -> WorkOrder:
        self._require_manager(acting_role, "Only Production Manager can create work orders")
        product_name = (product_name or "").strip()
        if not product_name:
            raise InvalidInput("product_name is required")
        if quantity is None or quantity < 1:
            raise InvalidInput("quantity must be a positive number")
        if production_deadline is None:
            raise InvalidInput("production_deadline is required")

        self._get_operator(operator_id)

        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            try:
                number = self._next_number(utcnow().date())
                wo = WorkOrder(
                    work_order_number=number,
                    product_name=product_name,
                    target_quantity=quantity,
                    quantity=quantity,
                    production_deadline=to_naive_utc(production_deadline),
                    status=WorkOrderStatus.PENDING.value,
                    operator_id=operator_id,
                )
                self.db.add(wo)
                self.db.flush()
                self._add_history(wo, quantity=0)
                self.db.flush()
                self._audit_quietly(acting_manager_id, AuditAction.CREATE, ENTITY, wo.id,
                                    note=f"Work order {number} created")
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning("Work order number collision, attempt %s/%s",
                               attempt, MAX_NUMBER_ATTEMPTS)
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Error creating work order")
                raise StorageError("Error creating work order") from exc

            logger.info("Work order %s created by user %s", wo.work_order_number, acting_manager_id)
            return wo

        raise Conflict("Could not allocate a unique work order number, please retry")

    def update_fields(self, work_order_id: int, patch: dict, acting_manager_id: int,
                      acting_role=UserRole.PRODUCTION_MANAGER) -> WorkOrder:
        """Частичное обновление: пустые/нулевые поля патча не трогаем."""
        self._require_manager(acting_role, "Only Production Manager can update work orders")
        unknown = set(patch) - set(PATCH_FIELDS)
        if unknown:
            raise InvalidInput(f"Unknown fields: {', '.join(sorted(unknown))}")

        with self._write():
            wo = self._get(work_order_id, for_update=True)

            # сначала всё проверяем, потом меняем: наряд остаётся нетронутым при ошибке
            product_name = (patch.get("product_name") or "").strip()
            quantity = patch.get("quantity")
            if quantity is not None and quantity < 0:
                raise InvalidInput("quantity must be a positive number")
            deadline = patch.get("production_deadline")
            operator_id = patch.get("operator_id")
            if operator_id:
                self._get_operator(operator_id)
            new_status = _parse_status(patch["status"]) if patch.get("status") else None
            if new_status and not is_valid_transition(WorkOrderStatus(wo.status), new_status):
                raise InvalidTransition(
                    f"Invalid status transition from {wo.status} to {new_status.value}"
                )

            before = snapshot(ENTITY, wo)
            if product_name:
                wo.product_name = product_name
            if quantity:
                wo.quantity = quantity
                wo.target_quantity = quantity
            if deadline:
                wo.production_deadline = to_naive_utc(deadline)
            if operator_id:
                wo.operator_id = operator_id
            if new_status:
                self._apply_transition(wo, new_status)
            self.db.flush()

            self._audit_quietly(acting_manager_id, AuditAction.UPDATE, ENTITY, wo.id,
                                before, snapshot(ENTITY, wo),
                                f"Work order {wo.work_order_number} updated")

        logger.info("Work order %s updated by user %s", wo.work_order_number, acting_manager_id)
        return wo

    def update_status(self, work_order_id: int, new_status, quantity: Optional[int],
                      acting_user_id: int, acting_role) -> WorkOrder:
        with self._write():
            wo = self._get(work_order_id, for_update=True)
            self._check_access(wo, acting_user_id, acting_role)
            status = _parse_status(new_status)
            if quantity is not None and quantity < 0:
                raise InvalidInput("quantity must not be negative")

            before = snapshot(ENTITY, wo)
            old_status = wo.status
            self._apply_transition(wo, status, quantity)
            self.db.flush()

            self._audit_quietly(
                acting_user_id, AuditAction.UPDATE, ENTITY, wo.id, before, snapshot(ENTITY, wo),
                f"Work order {wo.work_order_number} status updated from {old_status} to {wo.status}",
            )

        logger.info("Work order %s -> %s by user %s", wo.work_order_number, wo.status, acting_user_id)
        return wo

    def delete(self, work_order_id: int, acting_manager_id: int,
               acting_role=UserRole.PRODUCTION_MANAGER) -> WorkOrder:
        self._require_manager(acting_role, "Only Production Manager can delete work orders")
        with self._write():
            wo = self._get(work_order_id, for_update=True)
            before = snapshot(ENTITY, wo)
            wo.deleted_at = utcnow()
            self.db.flush()
            self._audit_quietly(acting_manager_id, AuditAction.DELETE, ENTITY, wo.id, before, None,
                                f"Work order {wo.work_order_number} deleted")

        logger.info("Work order %s deleted by user %s", wo.work_order_number, acting_manager_id)
        return wo

    def add_progress(self, work_order_id: int, description: str, quantity_delta: int,
                     acting_user_id: int, acting_role) -> WorkOrderProgress:
        with self._write():
            wo = self._get(work_order_id, for_update=True)
            self._check_access(wo, acting_user_id, acting_role)
            description = (description or "").strip()
            if not description:
                raise InvalidInput("progress_description is required")
            if quantity_delta is None or quantity_delta < 0:
                raise InvalidInput("progress_quantity must not be negative")
            if wo.status != WorkOrderStatus.IN_PROGRESS.value:
                raise InvalidState("Work order must be in progress to add progress updates")

            progress = WorkOrderProgress(
                work_order_id=wo.id,
                progress_description=description,
                progress_quantity=quantity_delta,
            )
            self.db.add(progress)
            self.db.flush()
            self._audit_quietly(acting_user_id, AuditAction.CREATE, "WorkOrderProgress",
                                progress.id, note=f"Progress added to {wo.work_order_number}")

        return progress

    def add_note(self, work_order_id: int, note: str, status, acting_user_id: int,
                 acting_role) -> Tuple[WorkOrder, AuditLog]:
        """Произвольная запись в журнал наряда, опционально со сменой статуса.

        Тут запись аудита: сама операция, поэтому её ошибка пробрасывается.
        """
        with self._write():
            wo = self._get(work_order_id, for_update=True)
            self._check_access(wo, acting_user_id, acting_role)
            note = (note or "").strip()
            if not note:
                raise InvalidInput("Note is required")

            if status:
                before = snapshot(ENTITY, wo)
                self._apply_transition(wo, _parse_status(status))
                self.db.flush()
                entry = self.audit.record_change(acting_user_id, AuditAction.CUSTOM, ENTITY,
                                                 wo.id, before, snapshot(ENTITY, wo), note)
            else:
                entry = self.audit.record_change(acting_user_id, AuditAction.CUSTOM, ENTITY,
                                                 wo.id, None, None, note)

        return wo, entry
