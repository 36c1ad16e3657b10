# workorders/routers/reports.py
from datetime import date
from io import BytesIO
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from workorders.db import get_db
from workorders.middleware.auth import CurrentUser, get_current_user, require_manager
from workorders.schemas import (
    DashboardResponse,
    OperatorPerformanceOut,
    PerformanceResponse,
    SummaryResponse,
    SummaryRowOut,
)
from workorders.services.export import summary_to_xlsx
from workorders.services.reports import ReportService

router = APIRouter(prefix="/api/reports", tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _content_disposition_utf8(pretty_filename_utf8: str, fallback_ascii: str) -> str:
    """Content-Disposition с ASCII-фолбэком и UTF-8 вариантом по RFC 5987."""
    return "attachment; filename=\"{fallback}\"; filename*=UTF-8''{utf8}".format(
        fallback=fallback_ascii.replace('"', ''),
        utf8=quote(pretty_filename_utf8, safe="")
    )


def _summary_out(rows) -> SummaryResponse:
    return SummaryResponse(summary=[SummaryRowOut.model_validate(r) for r in rows])


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    summary = ReportService(db).dashboard(current.role, current.id, start_date, end_date)
    return DashboardResponse(summary=summary)


@router.get("/performance", response_model=PerformanceResponse)
def performance(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    rows = ReportService(db).operator_performance(start_date, end_date)
    return PerformanceResponse(performances=[OperatorPerformanceOut.model_validate(r) for r in rows])


@router.get("/summary", response_model=SummaryResponse)
def summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return _summary_out(ReportService(db).summary(start_date, end_date))


# export раньше /summary/{operator_id}
@router.get("/summary/export")
def summary_export(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    rows = ReportService(db).summary(start_date, end_date)
    bio = BytesIO(summary_to_xlsx(rows, start_date, end_date))

    stamp = date.today().strftime("%Y-%m-%d")
    pretty = f"Сводка по нарядам {stamp}.xlsx"
    fallback = f"work_order_summary_{stamp}.xlsx"
    headers = {"Content-Disposition": _content_disposition_utf8(pretty, fallback)}
    return StreamingResponse(bio, media_type=XLSX_MEDIA_TYPE, headers=headers)


@router.get("/summary/{operator_id}", response_model=SummaryResponse)
def summary_by_operator(
    operator_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return _summary_out(ReportService(db).summary_by_operator(operator_id, start_date, end_date))
