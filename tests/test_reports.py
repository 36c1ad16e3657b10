from datetime import date, datetime

import pytest

from workorders.errors import InvalidInput, NotFound
from workorders.services.reports import TOTAL_LABEL, ReportService
from workorders.services.users import UserService
from workorders.utils.dates import utcnow

JUNE = (date(2030, 6, 1), date(2030, 6, 30))


@pytest.fixture
def populated(service, make_work_order, operator, other_operator):
    done = make_work_order(product_name="Widget", quantity=10)
    waiting = make_work_order(product_name="Widget", quantity=5)
    running = make_work_order(product_name="Gadget", quantity=4, operator_id=other_operator.id)

    service.update_status(done.id, "in_progress", None, operator.id, operator.role)
    service.update_status(done.id, "completed", 8, operator.id, operator.role)
    service.update_status(running.id, "in_progress", None, other_operator.id, other_operator.role)
    return {"done": done, "waiting": waiting, "running": running}


def _counts(summary):
    return {item["status"]: item["count"] for item in summary}


def test_dashboard_manager_sees_everything(db, populated, manager):
    counts = _counts(ReportService(db).dashboard(manager.role, manager.id, *JUNE))
    assert counts == {"pending": 1, "in_progress": 1, "completed": 1, "total": 3}


def test_dashboard_operator_sees_own(db, populated, operator):
    counts = _counts(ReportService(db).dashboard(operator.role, operator.id))
    assert counts == {"pending": 1, "in_progress": 0, "completed": 1, "total": 2}


def test_dashboard_window_is_inclusive_of_end_day(db, make_work_order, manager):
    make_work_order(production_deadline=datetime(2030, 6, 30, 23, 0))

    counts = _counts(ReportService(db).dashboard(manager.role, manager.id, *JUNE))
    assert counts["total"] == 1

    counts = _counts(ReportService(db).dashboard(manager.role, manager.id, date(2030, 7, 1), None))
    assert counts["total"] == 0


def test_summary_rows(db, populated):
    rows = ReportService(db).summary(*JUNE)

    assert [r.product_name for r in rows] == ["Gadget", "Widget", TOTAL_LABEL]
    gadget, widget, total = rows

    assert gadget.total_wo == 1 and gadget.percentage == 33
    assert gadget.in_progress == 1 and gadget.achieved_qty == 0 and gadget.achievement == 0

    assert widget.total_wo == 2 and widget.percentage == 66
    assert widget.target_qty == 15 and widget.achieved_qty == 8 and widget.achievement == 53
    assert widget.pending == 1 and widget.completed == 1
    assert widget.work_order_number == ", ".join(
        sorted([populated["done"].work_order_number, populated["waiting"].work_order_number])
    )

    assert total.total_wo == 3 and total.percentage == 100
    assert total.target_qty == 19 and total.achieved_qty == 8 and total.achievement == 42


def test_summary_totals_match(db, populated):
    rows = ReportService(db).summary(*JUNE)
    products, total = rows[:-1], rows[-1]
    assert sum(r.total_wo for r in products) == total.total_wo


def test_summary_empty_window(db, populated):
    assert ReportService(db).summary(date(2031, 1, 1), date(2031, 1, 31)) == []


def test_reports_reject_inverted_window(db, manager):
    service = ReportService(db)
    with pytest.raises(InvalidInput):
        service.summary(date(2030, 2, 1), date(2030, 1, 1))
    with pytest.raises(InvalidInput):
        service.dashboard(manager.role, manager.id, date(2030, 2, 1), date(2030, 1, 1))
    with pytest.raises(InvalidInput):
        service.operator_performance(date(2030, 2, 1), date(2030, 1, 1))


def test_summary_excludes_soft_deleted(db, service, populated, manager):
    service.delete(populated["running"].id, manager.id)

    rows = ReportService(db).summary(*JUNE)
    assert [r.product_name for r in rows] == ["Widget", TOTAL_LABEL]
    assert rows[-1].total_wo == 2


def test_summary_by_operator_filters_on_creation_time(db, populated, operator):
    today = utcnow().date()
    rows = ReportService(db).summary_by_operator(operator.id, today, today)

    assert [r.product_name for r in rows] == ["Widget", TOTAL_LABEL]
    assert rows[0].total_wo == 2

    # окно по сроку сдачи здесь не работает: наряды созданы сегодня
    assert ReportService(db).summary_by_operator(operator.id, *JUNE) == []


def test_summary_by_unknown_operator(db):
    with pytest.raises(NotFound):
        ReportService(db).summary_by_operator(999)


def test_summary_by_operator_rejects_non_operators(db, populated, manager, operator):
    reports = ReportService(db)
    with pytest.raises(NotFound):
        reports.summary_by_operator(manager.id)

    UserService(db).soft_delete_operator(operator.id, manager.id, manager.role)
    with pytest.raises(NotFound):
        reports.summary_by_operator(operator.id)


def test_operator_performance(db, populated, operator, other_operator):
    rows = ReportService(db).operator_performance()

    assert [r.operator_id for r in rows] == [operator.id, other_operator.id]
    first, second = rows
    assert (first.assigned, first.in_progress, first.completed, first.total_quantity) == (2, 0, 1, 8)
    assert (second.assigned, second.in_progress, second.completed, second.total_quantity) == (1, 1, 0, 0)


def test_reports_see_latest_commit(db, service, make_work_order, operator, manager):
    wo = make_work_order()
    reports = ReportService(db)
    assert _counts(reports.dashboard(manager.role, manager.id))["pending"] == 1

    service.update_status(wo.id, "in_progress", None, operator.id, operator.role)
    counts = _counts(reports.dashboard(manager.role, manager.id))
    assert counts["pending"] == 0 and counts["in_progress"] == 1
