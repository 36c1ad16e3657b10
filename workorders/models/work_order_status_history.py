# workorders/models/work_order_status_history.py
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workorders.db import Base
from workorders.utils.dates import utcnow


class WorkOrderStatusHistory(Base):
    __tablename__ = "work_order_status_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    work_order_id: Mapped[int] = mapped_column(ForeignKey("work_orders.id"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0)  # количество на момент перехода

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    work_order = relationship("WorkOrder", back_populates="status_history")
