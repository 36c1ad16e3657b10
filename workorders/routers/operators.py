from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from workorders.db import get_db
from workorders.middleware.auth import CurrentUser, get_current_user, require_manager
from workorders.schemas import OperatorListResponse, UserOut
from workorders.services.users import UserService

router = APIRouter(prefix="/api/operators", tags=["operators"])


@router.get("", response_model=OperatorListResponse)
def list_operators(
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return OperatorListResponse(
        operators=[UserOut.model_validate(u) for u in UserService(db).list_operators()]
    )


@router.delete("/{operator_id}")
def delete_operator(
    operator_id: int,
    current: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
):
    user = UserService(db).soft_delete_operator(operator_id, current.id, current.role)
    return {"error": False, "msg": "Operator deleted", "operator": UserOut.model_validate(user)}
