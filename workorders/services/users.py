import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workorders.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from workorders.models.user import User
from workorders.services.audit import AuditService, snapshot
from workorders.utils.dates import utcnow
from workorders.utils.enums import AuditAction, UserRole
from workorders.utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def register(self, username: str, password: str, role) -> User:
        try:
            role = UserRole(role)
        except ValueError:
            raise InvalidInput("role must be production_manager or operator")

        # проверка на уникальность
        exists = self.db.query(User).filter(User.username == username).first()
        if exists:
            raise Conflict("Username already exists")

        user = User(username=username, password_hash=hash_password(password), role=role.value)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:  # параллельная регистрация того же имени
            self.db.rollback()
            raise Conflict("Username already exists") from exc
        self.db.refresh(user)
        logger.info("User %s registered with role %s", user.username, user.role)
        return user

    def authenticate(self, username: str, password: str) -> User:
        user = (
            self.db.query(User)
            .filter(User.username == username, User.deleted_at.is_(None))
            .first()
        )
        if not user or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid credentials")
        return user

    def change_password(self, user_id: int, old_password: str, new_password: str) -> User:
        user = self.db.get(User, user_id)
        if user is None or user.is_deleted:
            raise NotFound("User not found")
        if not verify_password(old_password, user.password_hash):
            raise Unauthorized("Invalid credentials")
        user.password_hash = hash_password(new_password)
        self.db.commit()
        logger.info("Password rotated for user %s", user.username)
        return user

    def list_operators(self) -> list:
        return (
            self.db.query(User)
            .filter(User.role == UserRole.OPERATOR.value, User.deleted_at.is_(None))
            .order_by(User.username)
            .all()
        )

    def soft_delete_operator(self, operator_id: int, acting_manager_id: int, acting_role) -> User:
        if acting_role != UserRole.PRODUCTION_MANAGER.value:
            raise Forbidden("Only Production Manager can delete operators")
        user = (
            self.db.query(User)
            .filter(User.id == operator_id, User.deleted_at.is_(None))
            .first()
        )
        if user is None or not user.is_operator:
            raise NotFound("Operator not found")

        before = snapshot("User", user)
        user.deleted_at = utcnow()
        self.db.flush()
        # удаление пользователя: сама операция аудируемая, ошибку не глотаем
        self.audit.record_change(acting_manager_id, AuditAction.DELETE, "User", user.id,
                                 before, None, f"Operator {user.username} deleted")
        self.db.commit()
        return user
