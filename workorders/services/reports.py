# workorders/services/reports.py
"""Отчёты по нарядам. Ничего не кэшируем: каждый раз считаем по живым данным."""
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from workorders.errors import InvalidInput, NotFound
from workorders.models.user import User
from workorders.models.work_order import WorkOrder
from workorders.utils.dates import current_year_window, window_bounds
from workorders.utils.enums import UserRole, WorkOrderStatus

TOTAL_LABEL = "Total"


@dataclass
class SummaryRow:
    product_name: str
    work_order_number: str = ""
    total_wo: int = 0
    percentage: int = 0
    target_qty: int = 0
    achieved_qty: int = 0
    achievement: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0


@dataclass
class OperatorPerformance:
    operator_id: int
    username: str
    assigned: int = 0
    in_progress: int = 0
    completed: int = 0
    total_quantity: int = 0


def _percent(part: int, whole: int) -> int:
    # целые проценты с отбрасыванием дробной части; на ноль не делим
    if not whole:
        return 0
    return int(part / whole * 100)


class ReportService:
    def __init__(self, db: Session):
        self.db = db

    def _check_window(self, start: Optional[date], end: Optional[date]):
        if start and end and start > end:
            raise InvalidInput("start_date must not be after end_date")

    def _window(self, query, column, start: Optional[date], end: Optional[date]):
        lower, upper = window_bounds(start, end)
        if lower is not None:
            query = query.filter(column >= lower)
        if upper is not None:
            query = query.filter(column < upper)
        return query

    def _live(self, *entities):
        return self.db.query(*entities).filter(WorkOrder.deleted_at.is_(None))

    # ---------- дашборд ----------

    def dashboard(self, role, user_id: int, start: Optional[date] = None,
                  end: Optional[date] = None) -> List[dict]:
        self._check_window(start, end)
        query = self._live(WorkOrder.status, func.count(WorkOrder.id))
        query = self._window(query, WorkOrder.production_deadline, start, end)
        if role != UserRole.PRODUCTION_MANAGER.value:
            query = query.filter(WorkOrder.operator_id == user_id)

        counts = dict(query.group_by(WorkOrder.status).all())
        summary = [
            {"status": status.value, "count": int(counts.get(status.value, 0))}
            for status in WorkOrderStatus
        ]
        summary.append({"status": "total", "count": sum(item["count"] for item in summary)})
        return summary

    # ---------- сводка по продуктам ----------

    def _summary(self, filters, column, start: Optional[date], end: Optional[date]) -> List[SummaryRow]:
        self._check_window(start, end)
        default_start, default_end = current_year_window()
        start = start or default_start
        end = end or default_end

        grouped = self._live(
            WorkOrder.product_name,
            WorkOrder.status,
            func.count(WorkOrder.id),
            func.coalesce(func.sum(WorkOrder.target_quantity), 0),
            func.coalesce(func.sum(WorkOrder.quantity), 0),
        ).filter(*filters)
        grouped = self._window(grouped, column, start, end)
        grouped = grouped.group_by(WorkOrder.product_name, WorkOrder.status).all()

        numbers = self._live(WorkOrder.product_name, WorkOrder.work_order_number).filter(*filters)
        numbers = self._window(numbers, column, start, end)
        numbers = numbers.order_by(WorkOrder.work_order_number).all()

        rows: Dict[str, SummaryRow] = {}
        for product, status, count, target, qty in grouped:
            row = rows.setdefault(product, SummaryRow(product_name=product))
            row.total_wo += int(count)
            row.target_qty += int(target)
            if status == WorkOrderStatus.PENDING.value:
                row.pending += int(count)
            elif status == WorkOrderStatus.IN_PROGRESS.value:
                row.in_progress += int(count)
            elif status == WorkOrderStatus.COMPLETED.value:
                row.completed += int(count)
                row.achieved_qty += int(qty)

        numbers_by_product: Dict[str, List[str]] = {}
        for product, number in numbers:
            numbers_by_product.setdefault(product, []).append(number)

        total_orders = sum(row.total_wo for row in rows.values())
        result = []
        for product in sorted(rows):
            row = rows[product]
            row.work_order_number = ", ".join(numbers_by_product.get(product, []))
            row.percentage = _percent(row.total_wo, total_orders)
            row.achievement = _percent(row.achieved_qty, row.target_qty)
            result.append(row)

        # итоговая строка: только если есть что суммировать
        if result:
            total = SummaryRow(product_name=TOTAL_LABEL, total_wo=total_orders, percentage=100)
            for row in result:
                total.target_qty += row.target_qty
                total.achieved_qty += row.achieved_qty
                total.pending += row.pending
                total.in_progress += row.in_progress
                total.completed += row.completed
            total.achievement = _percent(total.achieved_qty, total.target_qty)
            result.append(total)
        return result

    def summary(self, start: Optional[date] = None, end: Optional[date] = None) -> List[SummaryRow]:
        return self._summary([], WorkOrder.production_deadline, start, end)

    def summary_by_operator(self, operator_id: int, start: Optional[date] = None,
                            end: Optional[date] = None) -> List[SummaryRow]:
        operator = (
            self.db.query(User)
            .filter(User.id == operator_id, User.role == UserRole.OPERATOR.value,
                    User.deleted_at.is_(None))
            .first()
        )
        if operator is None:
            raise NotFound("Operator not found")
        return self._summary([WorkOrder.operator_id == operator_id], WorkOrder.created_at, start, end)

    # ---------- эффективность операторов ----------

    def operator_performance(self, start: Optional[date] = None,
                             end: Optional[date] = None) -> List[OperatorPerformance]:
        self._check_window(start, end)
        operators = (
            self.db.query(User)
            .filter(User.role == UserRole.OPERATOR.value, User.deleted_at.is_(None))
            .order_by(User.id)
            .all()
        )
        performances = {
            op.id: OperatorPerformance(operator_id=op.id, username=op.username) for op in operators
        }

        query = self._live(
            WorkOrder.operator_id,
            WorkOrder.status,
            func.count(WorkOrder.id),
            func.coalesce(func.sum(WorkOrder.quantity), 0),
        )
        query = self._window(query, WorkOrder.production_deadline, start, end)
        for operator_id, status, count, qty in query.group_by(WorkOrder.operator_id, WorkOrder.status):
            perf = performances.get(operator_id)
            if perf is None:
                continue
            perf.assigned += int(count)
            if status == WorkOrderStatus.IN_PROGRESS.value:
                perf.in_progress += int(count)
            elif status == WorkOrderStatus.COMPLETED.value:
                perf.completed += int(count)
                perf.total_quantity += int(qty)

        return sorted(performances.values(), key=lambda p: p.completed, reverse=True)
