"""Account router - registration, login and profile"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from .service import AccountService

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db)


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.full_name,
        email=user.email,
        created_at=user.created_at,
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(data: RegisterRequest, service: AccountService = Depends(get_account_service)):
    """Create an account and log it in"""
    user, token = service.register(data)
    return TokenResponse(access_token=token, user=_user_response(user))


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, service: AccountService = Depends(get_account_service)):
    user, token = service.login(data)
    return TokenResponse(access_token=token, user=_user_response(user))


@router.get("/me", response_model=UserResponse)
async def read_me(current_user: User = Depends(get_current_user)):
    """Get the current authenticated user's profile"""
    return _user_response(current_user)
