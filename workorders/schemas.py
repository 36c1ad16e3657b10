# workorders/schemas.py
"""Тела запросов и ответов API (pydantic)."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from workorders.utils.enums import UserRole, WorkOrderStatus


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------- пользователи / авторизация ----------

class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)
    role: UserRole


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(min_length=6)


class UserOut(ORMModel):
    id: int
    username: str
    role: str


class TokenResponse(BaseModel):
    error: bool = False
    token: str
    user: UserOut


class OperatorListResponse(BaseModel):
    error: bool = False
    operators: List[UserOut]


# ---------- наряды ----------

class WorkOrderCreate(BaseModel):
    product_name: str = Field(min_length=1, max_length=100)
    quantity: int = Field(ge=1)
    production_deadline: datetime
    operator_id: int


class WorkOrderUpdate(BaseModel):
    # все поля необязательные: частичное обновление
    product_name: Optional[str] = Field(default=None, max_length=100)
    quantity: Optional[int] = Field(default=None, ge=0)
    production_deadline: Optional[datetime] = None
    status: Optional[WorkOrderStatus] = None
    operator_id: Optional[int] = None


class WorkOrderStatusUpdate(BaseModel):
    status: WorkOrderStatus
    quantity: Optional[int] = Field(default=None, ge=0)


class WorkOrderOut(ORMModel):
    id: int
    work_order_number: str
    product_name: str
    target_quantity: int
    quantity: int
    production_deadline: datetime
    status: str
    operator_id: int
    operator: Optional[UserOut] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, page=page, limit=limit, pages=(total + limit - 1) // limit)


class WorkOrderResponse(BaseModel):
    error: bool = False
    work_order: WorkOrderOut


class WorkOrderListResponse(BaseModel):
    error: bool = False
    work_orders: List[WorkOrderOut]
    pagination: Pagination


# ---------- прогресс / история ----------

class ProgressCreate(BaseModel):
    progress_description: str = Field(min_length=1, max_length=500)
    progress_quantity: int = Field(default=0, ge=0)


class ProgressOut(ORMModel):
    id: int
    work_order_id: int
    progress_description: str
    progress_quantity: int
    created_at: datetime


class ProgressResponse(BaseModel):
    error: bool = False
    progress: ProgressOut


class ProgressListResponse(BaseModel):
    error: bool = False
    progress: List[ProgressOut]


class StatusHistoryOut(ORMModel):
    id: int
    work_order_id: int
    status: str
    quantity: int
    created_at: datetime


class StatusHistoryResponse(BaseModel):
    error: bool = False
    history: List[StatusHistoryOut]


# ---------- аудит ----------

class WorkOrderNoteCreate(BaseModel):
    note: str
    status: Optional[WorkOrderStatus] = None


class AuditLogOut(ORMModel):
    id: int
    user_id: int
    user: Optional[UserOut] = None
    action: str
    entity_type: str
    entity_id: int
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    changes: Dict[str, Dict[str, Any]] = {}
    note: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    error: bool = False
    audit_logs: List[AuditLogOut]
    pagination: Pagination


class WorkOrderLogsResponse(BaseModel):
    error: bool = False
    logs: List[AuditLogOut]


class WorkOrderNoteResponse(BaseModel):
    error: bool = False
    message: str = "Work order log created successfully"
    work_order: WorkOrderOut
    log: AuditLogOut


# ---------- отчёты ----------

class DashboardItem(BaseModel):
    status: str
    count: int


class DashboardResponse(BaseModel):
    error: bool = False
    summary: List[DashboardItem]


class SummaryRowOut(ORMModel):
    work_order_number: str
    product_name: str
    total_wo: int
    percentage: int
    target_qty: int
    achieved_qty: int
    achievement: int
    pending: int
    in_progress: int
    completed: int


class SummaryResponse(BaseModel):
    error: bool = False
    summary: List[SummaryRowOut]


class OperatorPerformanceOut(ORMModel):
    operator_id: int
    username: str
    assigned: int
    in_progress: int
    completed: int
    total_quantity: int


class PerformanceResponse(BaseModel):
    error: bool = False
    performances: List[OperatorPerformanceOut]
