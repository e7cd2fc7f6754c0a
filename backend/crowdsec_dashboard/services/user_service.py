"""
Dashboard user accounts: creation with bcrypt-hashed passwords, listing
and deletion.
"""

import logging
from typing import List

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from crowdsec_dashboard.error_handlers import ConflictError, ForbiddenError, NotFoundError
from crowdsec_dashboard.models import User
from crowdsec_dashboard.schemas.user_schemas import UserCreate

logger = logging.getLogger(__name__)

# Placeholder domain for users created without an email address
LOCAL_EMAIL_DOMAIN = "@local.internal"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


class UserService:
    """User management"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def hash_password(password: str) -> str:
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    def list_users(self) -> List[User]:
        """All users, oldest first (the first one is the admin)"""
        return self.db.query(User).order_by(User.created_at.asc()).all()

    def create_user(self, data: UserCreate) -> User:
        """
        Create a user. ``data.username`` is already lowercased.

        Raises:
            ConflictError: Username taken
        """
        if self.db.query(User).filter(User.username == data.username).first():
            raise ConflictError("Username already exists")

        user = User(
            username=data.username,
            email=data.email or f"{data.username}{LOCAL_EMAIL_DOMAIN}",
            hashed_password=self.hash_password(data.password),
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Created user {user.username}")
        return user

    def delete_user(self, user_id: str) -> None:
        """
        Delete a user.

        Raises:
            ForbiddenError: Attempt to delete the first (admin) user
            NotFoundError: Unknown user id
        """
        first_user = self.db.query(User).order_by(User.created_at.asc()).first()
        if first_user is not None and first_user.id == user_id:
            raise ForbiddenError("Cannot delete the admin user")

        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError(f"User {user_id} not found", resource_type="user")

        self.db.delete(user)
        self.db.commit()
        logger.info(f"Deleted user {user.username}")
