# workorders/routers/work_orders.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from workorders.db import get_db
from workorders.middleware.auth import CurrentUser, get_current_user, require_manager, require_operator
from workorders.schemas import (
    AuditLogOut,
    Pagination,
    ProgressCreate,
    ProgressListResponse,
    ProgressOut,
    ProgressResponse,
    StatusHistoryOut,
    StatusHistoryResponse,
    WorkOrderCreate,
    WorkOrderListResponse,
    WorkOrderLogsResponse,
    WorkOrderNoteCreate,
    WorkOrderNoteResponse,
    WorkOrderOut,
    WorkOrderResponse,
    WorkOrderStatusUpdate,
    WorkOrderUpdate,
)
from workorders.services.work_orders import WorkOrderService

router = APIRouter(prefix="/api/work-orders", tags=["work-orders"])


def _one(wo) -> WorkOrderResponse:
    return WorkOrderResponse(work_order=WorkOrderOut.model_validate(wo))


def _page(rows, total: int, page: int, limit: int) -> WorkOrderListResponse:
    return WorkOrderListResponse(
        work_orders=[WorkOrderOut.model_validate(r) for r in rows],
        pagination=Pagination.build(total, page, limit),
    )


# --------- СПИСКИ ----------
# /assigned объявлен раньше /{work_order_id}, иначе его перехватит шаблон

@router.get("", response_model=WorkOrderListResponse)
def list_work_orders(
    status_: Optional[str] = Query(None, alias="status"),
    operator_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    deadline: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    rows, total = WorkOrderService(db).list_work_orders(
        status=status_, operator_id=operator_id, search=search, deadline=deadline,
        page=page, limit=limit,
    )
    return _page(rows, total, page, limit)


@router.get("/assigned", response_model=WorkOrderListResponse)
def list_assigned(
    status_: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current: CurrentUser = Depends(require_operator),
    db: Session = Depends(get_db),
):
    rows, total = WorkOrderService(db).list_assigned(current.id, status=status_, page=page, limit=limit)
    return _page(rows, total, page, limit)


# --------- ОДИН НАРЯД ----------

@router.post("", response_model=WorkOrderResponse, status_code=status.HTTP_201_CREATED)
def create_work_order(
    body: WorkOrderCreate,
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    wo = WorkOrderService(db).create(
        product_name=body.product_name,
        quantity=body.quantity,
        production_deadline=body.production_deadline,
        operator_id=body.operator_id,
        acting_manager_id=current.id,
        acting_role=current.role,
    )
    return _one(wo)


@router.get("/{work_order_id}", response_model=WorkOrderResponse)
def get_work_order(
    work_order_id: int,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _one(WorkOrderService(db).get(work_order_id, current.id, current.role))


@router.put("/{work_order_id}", response_model=WorkOrderResponse)
def update_work_order(
    work_order_id: int,
    body: WorkOrderUpdate,
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    patch = body.model_dump(exclude_none=True)
    wo = WorkOrderService(db).update_fields(work_order_id, patch, current.id, current.role)
    return _one(wo)


@router.put("/{work_order_id}/status", response_model=WorkOrderResponse)
def update_work_order_status(
    work_order_id: int,
    body: WorkOrderStatusUpdate,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    wo = WorkOrderService(db).update_status(
        work_order_id, body.status, body.quantity, current.id, current.role,
    )
    return _one(wo)


@router.delete("/{work_order_id}")
def delete_work_order(
    work_order_id: int,
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    WorkOrderService(db).delete(work_order_id, current.id, current.role)
    return {"error": False, "msg": "Work order deleted successfully"}


# --------- ПРОГРЕСС / ИСТОРИЯ ----------

@router.post("/{work_order_id}/progress", response_model=ProgressResponse,
             status_code=status.HTTP_201_CREATED)
def add_progress(
    work_order_id: int,
    body: ProgressCreate,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    progress = WorkOrderService(db).add_progress(
        work_order_id, body.progress_description, body.progress_quantity, current.id, current.role,
    )
    return ProgressResponse(progress=ProgressOut.model_validate(progress))


@router.get("/{work_order_id}/progress", response_model=ProgressListResponse)
def list_progress(
    work_order_id: int,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = WorkOrderService(db).list_progress(work_order_id, current.id, current.role)
    return ProgressListResponse(progress=[ProgressOut.model_validate(r) for r in rows])


@router.get("/{work_order_id}/history", response_model=StatusHistoryResponse)
def list_history(
    work_order_id: int,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = WorkOrderService(db).list_history(work_order_id, current.id, current.role)
    return StatusHistoryResponse(history=[StatusHistoryOut.model_validate(r) for r in rows])


# --------- ЖУРНАЛ ----------

@router.get("/{work_order_id}/logs", response_model=WorkOrderLogsResponse)
def list_logs(
    work_order_id: int,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = WorkOrderService(db).list_logs(work_order_id, current.id, current.role)
    return WorkOrderLogsResponse(logs=[AuditLogOut.model_validate(r) for r in rows])


@router.post("/{work_order_id}/logs", response_model=WorkOrderNoteResponse,
             status_code=status.HTTP_201_CREATED)
def add_note(
    work_order_id: int,
    body: WorkOrderNoteCreate,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    wo, entry = WorkOrderService(db).add_note(
        work_order_id, body.note, body.status, current.id, current.role,
    )
    return WorkOrderNoteResponse(
        work_order=WorkOrderOut.model_validate(wo),
        log=AuditLogOut.model_validate(entry),
    )
