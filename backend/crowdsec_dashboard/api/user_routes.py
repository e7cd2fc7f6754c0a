"""
User management API routes.

Endpoints:
- GET /users - List users, oldest first
- POST /users - Create a user
- DELETE /users/{user_id} - Delete a user (the first user cannot be deleted)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from crowdsec_dashboard.database import get_db
from crowdsec_dashboard.schemas.user_schemas import UserCreate, UserListResponse, UserResponse
from crowdsec_dashboard.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["User Management"])


@router.get("", response_model=UserListResponse, summary="List users")
async def list_users(db: Session = Depends(get_db)):
    users = UserService(db).list_users()
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=len(users),
    )


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user"
)
async def create_user(user_data: UserCreate, db: Session = Depends(get_db)):
    """
    Create a dashboard user.

    The username is stored lowercase. Without an email the account gets
    ``<username>@local.internal``.

    **Errors:**
    - 409: Username already exists
    - 422: Password shorter than 4 characters or invalid email
    """
    return UserService(db).create_user(user_data)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete user")
async def delete_user(user_id: str, db: Session = Depends(get_db)):
    """
    **Errors:**
    - 403: Attempt to delete the first (admin) user
    - 404: Unknown user
    """
    UserService(db).delete_user(user_id)
