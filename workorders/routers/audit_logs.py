from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from workorders.db import get_db
from workorders.middleware.auth import CurrentUser, require_manager
from workorders.schemas import AuditLogListResponse, AuditLogOut, Pagination
from workorders.services.audit import AuditService

router = APIRouter(prefix="/api/audit-logs", tags=["audit-logs"])


@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    rows, total = AuditService(db).list_logs(entity_type, entity_id, action, page, limit)
    return AuditLogListResponse(
        audit_logs=[AuditLogOut.model_validate(r) for r in rows],
        pagination=Pagination.build(total, page, limit),
    )
