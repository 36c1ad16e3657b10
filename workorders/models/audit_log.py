# workorders/models/audit_log.py
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from workorders.db import Base
from workorders.utils.dates import utcnow


class AuditLog(Base):
    """Журнал изменений (только добавление). На сущность ссылаемся по типу+id, без FK."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.id", onupdate="CASCADE", ondelete="RESTRICT"),
        nullable=False, index=True,
    )

    # create | update | delete | custom
    action = Column(String(20), nullable=False, index=True)

    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False)

    # только изменившиеся поля: {"field": old} / {"field": new}
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    user = relationship("User")

    @property
    def changes(self) -> dict:
        old = self.old_values or {}
        new = self.new_values or {}
        return {
            field: {"old": old.get(field), "new": new.get(field)}
            for field in sorted(set(old) | set(new))
        }
