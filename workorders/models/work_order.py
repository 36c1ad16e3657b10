# workorders/models/work_order.py
from typing import List, Optional
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workorders.db import Base
from workorders.utils.dates import utcnow
from workorders.utils.enums import WorkOrderStatus


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    # WO-YYYYMMDD-NNN, последовательность сбрасывается каждый день
    work_order_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    product_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    target_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    production_deadline: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # === СТАТУС ===
    # допустимые значения: 'pending' | 'in_progress' | 'completed'
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WorkOrderStatus.PENDING.value, index=True
    )

    operator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    operator = relationship("User", lazy="joined", innerjoin=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    # счётчик версий: защита от потерянных обновлений status/quantity
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    progress: Mapped[List["WorkOrderProgress"]] = relationship(
        "WorkOrderProgress", back_populates="work_order", cascade="all, delete-orphan",
        order_by="WorkOrderProgress.id",
    )
    status_history = relationship(
        "WorkOrderStatusHistory", back_populates="work_order", cascade="all, delete-orphan",
        order_by="WorkOrderStatusHistory.id",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class WorkOrderProgress(Base):
    __tablename__ = "work_order_progress"

    id: Mapped[int] = mapped_column(primary_key=True)
    work_order_id: Mapped[int] = mapped_column(ForeignKey("work_orders.id"), nullable=False, index=True)

    progress_description: Mapped[str] = mapped_column(String(500), nullable=False)
    progress_quantity: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    work_order: Mapped["WorkOrder"] = relationship("WorkOrder", back_populates="progress")


class WorkOrderSequence(Base):
    """Счётчик номеров нарядов на календарный день (строка на день)."""
    __tablename__ = "work_order_sequences"

    day: Mapped[str] = mapped_column(String(8), primary_key=True)  # YYYYMMDD
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
