from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime
from workorders.db import Base
from workorders.utils.dates import utcnow
from workorders.utils.enums import UserRole  # 👈 импорт enum ролей


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # 🔹 роль пользователя
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        default=UserRole.OPERATOR.value  # по умолчанию: оператор
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    # мягкое удаление: пользователей физически не удаляем (на них ссылается аудит)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    @property
    def is_operator(self) -> bool:
        return self.role == UserRole.OPERATOR.value

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
