"""Account repository - Database operations for users"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import User


class UserRepository:
    """Repository for user database operations"""

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def create_user(db: Session, email: str, full_name: str, hashed_password: str) -> User:
        """Add a new user to the session (caller commits)"""
        user = User(email=email, full_name=full_name, hashed_password=hashed_password)
        db.add(user)
        db.flush()
        return user
