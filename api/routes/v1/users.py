"""
api/routes/v1/users.py -- User CRUD routes.

Routes:
  POST   /users          -- register a user (public while self-registration is enabled)
  GET    /users          -- list live users
  GET    /users/{id}     -- user detail
  PUT    /users/{id}     -- partial update; omitted fields are left unchanged
  DELETE /users/{id}     -- soft delete

Every route except POST requires a bearer token. There are no roles: any
authenticated user may read and modify user records.

Domain errors (UserValidationError 400, UserNotFound 404, DuplicateUserError
409, StorageError 503) propagate to the AccountsError handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import UserCreate, UserResponse, UserUpdate
from auth.dependencies import get_current_user
from auth.models import User
from users.service import UserService

router = APIRouter()


def _service(request: Request) -> UserService:
    return request.app.state.user_service


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate) -> UserResponse:
    """Register a new user.

    When SELF_REGISTRATION_ENABLED is false the caller must already hold a
    valid bearer token.
    """
    if not request.app.state.settings.self_registration_enabled:
        get_current_user(request)
    user = _service(request).create_user(
        username=body.username,
        password=body.password,
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        age=body.age,
    )
    return UserResponse.from_user(user)


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current_user: User = Depends(get_current_user)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _service(request).list_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_user(_service(request).get_user(user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update the supplied fields of a user. A new password is re-hashed."""
    updated = _service(request).update_user(user_id, **body.model_dump(exclude_none=True))
    return UserResponse.from_user(updated)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, current_user: User = Depends(get_current_user)) -> Response:
    """Soft-delete a user. Tokens issued to it stop verifying immediately."""
    _service(request).delete_user(user_id)
    return Response(status_code=204)
