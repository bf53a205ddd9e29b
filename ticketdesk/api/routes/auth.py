from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ticketdesk.api.dependencies import get_db, get_store
from ticketdesk.api.errors import to_http_error
from ticketdesk.api.security import get_current_user
from ticketdesk.core.errors import TicketDeskError
from ticketdesk.models.user import User
from ticketdesk.schemas.auth_schema import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from ticketdesk.services.agent_service import mark_logged_in, mark_logged_out
from ticketdesk.services.auth_service import create_access_token, hash_password, verify_password
from ticketdesk.services.ticket_store import TicketStore


router = APIRouter()


@router.post("/register", response_model=UserResponse)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.username == request.username).first()
    if existing:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = User(
        username=request.username,
        password_hash=hash_password(request.password),
        is_admin=False,
        logged_in=False,
        is_working=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, db: Session = Depends(get_db), store: TicketStore = Depends(get_store)):
    user = db.query(User).filter(User.username == request.username).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    if not verify_password(request.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    try:
        mark_logged_in(store, user.username)
    except TicketDeskError as e:
        raise to_http_error(e)

    token = create_access_token(username=user.username)
    return TokenResponse(access_token=token)


@router.post("/logout")
def logout(user: User = Depends(get_current_user), store: TicketStore = Depends(get_store)):
    try:
        mark_logged_out(store, user.username)
    except TicketDeskError as e:
        raise to_http_error(e)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user
