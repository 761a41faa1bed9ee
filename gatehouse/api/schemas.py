from __future__ import annotations

from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from gatehouse.storage.models import Role, User

MAX_ID_LENGTH = 128


class ErrorBody(BaseModel):
    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None


class Envelope(BaseModel):
    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


def _clean_id(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("id must not be blank")
    if any(c.isspace() or c == ":" for c in value):
        raise ValueError("id must not contain whitespace or ':'")
    return value


class UserResponse(BaseModel):
    id: str
    display_name: str
    email: Optional[str] = None
    role_ids: List[str] = Field(default_factory=list)
    directory_account: bool = False

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            display_name=user.display_name,
            email=user.email,
            role_ids=sorted(user.role_ids),
            directory_account=user.password_hash is None,
        )


class UserListResponse(BaseModel):
    items: List[UserResponse]


class UserUpdateRequest(BaseModel):
    display_name: Optional[str] = Field(None, max_length=256)
    email: Optional[str] = Field(None, max_length=320)
    password: Optional[str] = Field(None, max_length=1024)
    role_ids: List[str] = Field(default_factory=list)

    @field_validator("role_ids")
    @classmethod
    def _validate_role_ids(cls, value: List[str]) -> List[str]:
        return [_clean_id(v) for v in value]


class UserCreateRequest(UserUpdateRequest):
    id: str = Field(..., max_length=MAX_ID_LENGTH)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _clean_id(value)

    def to_user(self) -> User:
        return User(
            id=self.id,
            display_name=self.display_name or self.id,
            email=self.email,
            role_ids=set(self.role_ids),
        )


class RoleResponse(BaseModel):
    id: str
    description: Optional[str] = None
    role_ids: List[str] = Field(default_factory=list)

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(id=role.id, description=role.description, role_ids=sorted(role.role_ids))


class RoleListResponse(BaseModel):
    items: List[RoleResponse]


class RoleUpdateRequest(BaseModel):
    description: Optional[str] = Field(None, max_length=1024)
    role_ids: List[str] = Field(default_factory=list)

    @field_validator("role_ids")
    @classmethod
    def _validate_role_ids(cls, value: List[str]) -> List[str]:
        return [_clean_id(v) for v in value]


class RoleCreateRequest(RoleUpdateRequest):
    id: str = Field(..., max_length=MAX_ID_LENGTH)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _clean_id(value)

    def to_role(self) -> Role:
        return Role(id=self.id, description=self.description, role_ids=set(self.role_ids))


class PasswordChangeRequest(BaseModel):
    old_password: str = Field(..., max_length=1024)
    new_password: str = Field(..., max_length=1024)
