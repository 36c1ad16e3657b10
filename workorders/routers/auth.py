import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from workorders.db import get_db
from workorders.errors import Unauthorized
from workorders.middleware.auth import CurrentUser, get_current_user
from workorders.schemas import ChangePasswordRequest, LoginRequest, RegisterRequest, TokenResponse, UserOut
from workorders.services.users import UserService
from workorders.utils.tokens import make_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(user) -> TokenResponse:
    token = make_access_token(user.id, user.username, user.role)
    return TokenResponse(token=token, user=UserOut.model_validate(user))


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = UserService(db).register(body.username, body.password, body.role)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(body.username, body.password)
    except Unauthorized:
        # имя пишем, пароль: никогда
        logger.warning("Failed login for %r", body.username)
        raise
    logger.info("User %s logged in", user.username)
    return _token_response(user)


@router.put("/password")
def change_password(
    body: ChangePasswordRequest,
    current: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    UserService(db).change_password(current.id, body.old_password, body.new_password)
    return {"error": False, "msg": "Password updated"}
