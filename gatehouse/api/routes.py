from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from gatehouse.api.schemas import (
    Envelope,
    PasswordChangeRequest,
    RoleCreateRequest,
    RoleListResponse,
    RoleResponse,
    RoleUpdateRequest,
    UserCreateRequest,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from gatehouse.logging import get_logger
from gatehouse.service.errors import ForbiddenError, NotAuthorizedError, NotFoundError
from gatehouse.service.identity import RequestContext
from gatehouse.service.principals import ADMIN_ROLE, is_anonymous
from gatehouse.service.runtime import get_runtime
from gatehouse.storage.models import Role, User

logger = get_logger(__name__)

router = APIRouter(prefix="/v1/security")


def get_request_context(authorization: Optional[str] = Header(None)) -> RequestContext:
    return RequestContext(authorization=authorization)


def get_principal(ctx: RequestContext = Depends(get_request_context)) -> User:
    return get_runtime().security.current_user(ctx)


def get_authenticated_user(principal: User = Depends(get_principal)) -> User:
    if is_anonymous(principal):
        raise NotAuthorizedError()
    return principal


def get_admin_user(principal: User = Depends(get_authenticated_user)) -> User:
    if ADMIN_ROLE not in principal.role_ids:
        raise ForbiddenError("administrator role required")
    return principal


@router.get("/me", response_model=Envelope, tags=["identity"])
def get_current_user(principal: User = Depends(get_principal)):
    """Return the caller's identity with its expanded roles."""
    return Envelope(status="ok", data=UserResponse.from_user(principal))


@router.post("/me/password", response_model=Envelope, tags=["identity"])
def change_password(
    body: PasswordChangeRequest, principal: User = Depends(get_authenticated_user)
):
    get_runtime().security.change_password(
        principal.id, body.old_password, body.new_password
    )
    return Envelope(status="ok", data={"status": "changed"})


@router.get("/users", response_model=Envelope, tags=["users"])
def list_users(
    filter: Optional[str] = Query(None, max_length=1024),
    orderby: Optional[str] = Query(None, max_length=256),
    principal: User = Depends(get_authenticated_user),
):
    users = get_runtime().security.list_users(filter, orderby)
    return Envelope(
        status="ok", data=UserListResponse(items=[UserResponse.from_user(u) for u in users])
    )


@router.post("/users", response_model=Envelope, status_code=201, tags=["users"])
def create_user(body: UserCreateRequest, principal: User = Depends(get_admin_user)):
    user = get_runtime().security.create_user(body.to_user(), body.password)
    logger.info("user_created", user_id=user.id, by=principal.id)
    return Envelope(status="ok", data=UserResponse.from_user(user))


@router.get("/users/{user_id}", response_model=Envelope, tags=["users"])
def get_user(user_id: str, principal: User = Depends(get_authenticated_user)):
    user = get_runtime().security.get_user(user_id)
    return Envelope(status="ok", data=UserResponse.from_user(user))


@router.put("/users/{user_id}", response_model=Envelope, tags=["users"])
def update_user(
    user_id: str, body: UserUpdateRequest, principal: User = Depends(get_admin_user)
):
    user = User(
        id=user_id,
        display_name=body.display_name or user_id,
        email=body.email,
        role_ids=set(body.role_ids),
    )
    updated = get_runtime().security.update_user(user, body.password)
    return Envelope(status="ok", data=UserResponse.from_user(updated))


@router.delete("/users/{user_id}", response_model=Envelope, tags=["users"])
def delete_user(user_id: str, principal: User = Depends(get_admin_user)):
    if not get_runtime().security.delete_user(user_id):
        raise NotFoundError("user not found", detail={"user_id": user_id})
    return Envelope(status="ok", data={"deleted": True, "user_id": user_id})


@router.get("/roles", response_model=Envelope, tags=["roles"])
def list_roles(
    filter: Optional[str] = Query(None, max_length=1024),
    orderby: Optional[str] = Query(None, max_length=256),
    principal: User = Depends(get_authenticated_user),
):
    roles = get_runtime().security.list_roles(filter, orderby)
    return Envelope(
        status="ok", data=RoleListResponse(items=[RoleResponse.from_role(r) for r in roles])
    )


@router.post("/roles", response_model=Envelope, status_code=201, tags=["roles"])
def create_role(body: RoleCreateRequest, principal: User = Depends(get_admin_user)):
    role = get_runtime().security.create_role(body.to_role())
    return Envelope(status="ok", data=RoleResponse.from_role(role))


@router.get("/roles/{role_id}", response_model=Envelope, tags=["roles"])
def get_role(role_id: str, principal: User = Depends(get_authenticated_user)):
    role = get_runtime().security.get_role(role_id)
    return Envelope(status="ok", data=RoleResponse.from_role(role))


@router.put("/roles/{role_id}", response_model=Envelope, tags=["roles"])
def update_role(
    role_id: str, body: RoleUpdateRequest, principal: User = Depends(get_admin_user)
):
    role = Role(id=role_id, description=body.description, role_ids=set(body.role_ids))
    updated = get_runtime().security.update_role(role)
    return Envelope(status="ok", data=RoleResponse.from_role(updated))


@router.delete("/roles/{role_id}", response_model=Envelope, tags=["roles"])
def delete_role(role_id: str, principal: User = Depends(get_admin_user)):
    if not get_runtime().security.delete_role(role_id):
        raise NotFoundError("role not found", detail={"role_id": role_id})
    return Envelope(status="ok", data={"deleted": True, "role_id": role_id})
