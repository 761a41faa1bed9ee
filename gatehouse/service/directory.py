from __future__ import annotations

from typing import Optional, Protocol

from ldap3 import NONE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.dn import escape_rdn

from gatehouse.config import Settings
from gatehouse.logging import get_logger

logger = get_logger(__name__)


class DirectoryUnavailableError(Exception):
    """Raised when the directory server cannot be reached."""


class DirectoryConnector(Protocol):
    def validate_credentials(self, user_id: str, password: str) -> bool: ...


class LdapDirectory:
    """Validates credentials with a simple bind against an LDAP server."""

    def __init__(self, url: str, user_dn_template: str) -> None:
        self.url = url
        self.user_dn_template = user_dn_template
        self.server = Server(url, get_info=NONE)

    def user_dn(self, user_id: str) -> str:
        return self.user_dn_template.format(user_id=escape_rdn(user_id))

    def validate_credentials(self, user_id: str, password: str) -> bool:
        # An empty password would be an unauthenticated bind, which servers accept
        if not password:
            return False
        conn = Connection(self.server, user=self.user_dn(user_id), password=password)
        try:
            bound = conn.bind()
        except LDAPException as exc:
            logger.error(
                "directory_bind_failed",
                url=self.url,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise DirectoryUnavailableError(str(exc)) from exc
        try:
            return bool(bound)
        finally:
            if bound:
                conn.unbind()


def create_directory(settings: Settings) -> Optional[DirectoryConnector]:
    if not settings.directory_enabled:
        return None
    logger.info("directory_enabled", url=settings.directory_url)
    return LdapDirectory(settings.directory_url, settings.directory_user_dn_template)
