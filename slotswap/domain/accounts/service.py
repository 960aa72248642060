"""Account service - Registration and login"""

import logging

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import create_access_token, hash_password, verify_password
from ...database import unit_of_work
from ...models import User
from .repository import UserRepository
from .schemas import LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)


class AccountService:
    """Service layer for account operations"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = UserRepository()

    def register(self, data: RegisterRequest) -> tuple[User, str]:
        """Create a user and return it with a fresh access token"""
        if self.repo.get_user_by_email(self.db, data.email):
            raise HTTPException(status_code=409, detail="This email is already registered")

        try:
            with unit_of_work(self.db):
                user = self.repo.create_user(
                    self.db,
                    email=data.email,
                    full_name=data.name,
                    hashed_password=hash_password(data.password),
                )
        except IntegrityError as e:
            # Email taken between the check and the insert
            logger.error(f"❌ Email {data.email} was registered concurrently")
            raise HTTPException(status_code=409, detail="This email is already registered") from e

        logger.info(f"🆕 New user created: {user.id}")
        return user, create_access_token(user.id)

    def login(self, data: LoginRequest) -> tuple[User, str]:
        user = self.repo.get_user_by_email(self.db, data.email)
        if not user or not verify_password(data.password, user.hashed_password):
            logger.warning(f"⚠️ Failed login for {data.email}")
            raise HTTPException(
                status_code=401,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return user, create_access_token(user.id)
