from __future__ import annotations

from typing import Optional

from gatehouse.logging import get_logger
from gatehouse.service.directory import DirectoryConnector, DirectoryUnavailableError
from gatehouse.service.errors import NotAuthorizedError
from gatehouse.service.passwords import NO_HASH, verify_password
from gatehouse.service.principals import ADMIN_USER, ANONYMOUS_USER, anonymous_user
from gatehouse.storage.common import SecurityStore
from gatehouse.storage.errors import StoreUnavailableError
from gatehouse.storage.models import User

logger = get_logger(__name__)


class CredentialValidator:
    """Chooses and enforces the validation strategy for an account.

    Strategies, in order: the anonymous id always passes; the super-user
    is checked against the configured secret; accounts without a stored
    hash go to the directory; everything else is checked against its hash.
    Every rejection raises the same ``NotAuthorizedError``.
    """

    def __init__(
        self,
        store: SecurityStore,
        admin_password: Optional[str],
        directory: Optional[DirectoryConnector] = None,
    ) -> None:
        self.store = store
        self.admin_password = admin_password
        self.directory = directory

    def load_user(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            # Directory accounts need not exist locally
            user = User(id=user_id, display_name=user_id)
        return user

    def validate(self, user_id: str, password: str) -> User:
        if user_id == ANONYMOUS_USER:
            return anonymous_user()
        try:
            user = self.load_user(user_id)
            accepted, method = self._check(user, password)
        except (StoreUnavailableError, DirectoryUnavailableError) as exc:
            logger.warning(
                "credential_check_unavailable",
                user_id=user_id,
                error_type=type(exc).__name__,
            )
            raise NotAuthorizedError() from exc
        if not accepted:
            logger.debug("credential_rejected", user_id=user_id, method=method)
            raise NotAuthorizedError()
        logger.debug("credential_accepted", user_id=user_id, method=method)
        return user

    def _check(self, user: User, password: str) -> tuple[bool, str]:
        if user.id == ADMIN_USER:
            return (
                self.admin_password is not None and password == self.admin_password,
                "admin_secret",
            )
        if user.password_hash is NO_HASH:
            if self.directory is None:
                return False, "directory"
            return self.directory.validate_credentials(user.id, password), "directory"
        return verify_password(password, user.password_hash), "local_hash"
