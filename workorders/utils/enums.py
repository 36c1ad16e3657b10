from enum import Enum


class UserRole(str, Enum):
    PRODUCTION_MANAGER = "production_manager"
    OPERATOR = "operator"


class WorkOrderStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CUSTOM = "custom"


# Разрешённые переходы статусов (completed: конечный)
VALID_NEXT = {
    WorkOrderStatus.PENDING: {WorkOrderStatus.IN_PROGRESS},
    WorkOrderStatus.IN_PROGRESS: {WorkOrderStatus.COMPLETED},
    WorkOrderStatus.COMPLETED: set(),
}


def is_valid_transition(current: WorkOrderStatus, new: WorkOrderStatus) -> bool:
    return new in VALID_NEXT.get(current, set())
