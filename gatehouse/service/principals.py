"""Reserved identities shared across the process."""

from __future__ import annotations

from gatehouse.storage.models import User

ANONYMOUS_USER = "anonymous"
ADMIN_USER = "admin"

EVERYONE_ROLE = "EVERYONE"
AUTHENTICATED_ROLE = "AUTHENTICATED"
ADMIN_ROLE = "ADMINISTRATORS"


def anonymous_user() -> User:
    return User(id=ANONYMOUS_USER, display_name=ANONYMOUS_USER, role_ids={EVERYONE_ROLE})


def is_anonymous(user: User) -> bool:
    return user.id == ANONYMOUS_USER
