# workorders/errors.py
"""Ошибки предметной области.

Сервисы бросают только эти исключения; транспорт (FastAPI) превращает их
в HTTP-ответ вида {"error": true, "msg": "..."} по полю status_code.
"""


class WorkOrderError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(WorkOrderError):
    status_code = 404
    default_message = "Not found"


class Unauthorized(WorkOrderError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(WorkOrderError):
    status_code = 403
    default_message = "Access forbidden: insufficient permissions"


class InvalidTransition(WorkOrderError):
    status_code = 400
    default_message = "Invalid status transition"


class InvalidState(WorkOrderError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class InvalidInput(WorkOrderError):
    status_code = 400
    default_message = "Invalid request body"


class Conflict(WorkOrderError):
    status_code = 409
    default_message = "Conflict"


class StorageError(WorkOrderError):
    status_code = 500
    default_message = "Database error"


class InvalidRole(InvalidInput):
    default_message = "User has an invalid role for this operation"
