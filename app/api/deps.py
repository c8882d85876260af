from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import SessionLocal, get_db
from app.core.exceptions import AuthenticationMissing
from app.core.role_cache import RoleCache
from app.core.roles import Role
from app.core.security import InvalidToken, TokenClaims, decode_access_token
from app.services.chat_relay import ChatWebhookRelay
from app.services.edge_functions import EdgeFunctionClient
from app.services.role_service import RoleResolver
from app.services.storage import StorageService

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenClaims:
    if not credentials:
        raise AuthenticationMissing("Authorization header missing")
    try:
        return decode_access_token(credentials.credentials)
    except InvalidToken as e:
        raise AuthenticationMissing(str(e), original_error=e)


def get_role_cache(request: Request) -> Optional[RoleCache]:
    return getattr(request.app.state, "role_cache", None)


def get_role_resolver(
    db: Session = Depends(get_db),
    cache: Optional[RoleCache] = Depends(get_role_cache),
) -> RoleResolver:
    return RoleResolver(db, cache)


def get_current_role(
    current_user: TokenClaims = Depends(get_current_user),
    resolver: RoleResolver = Depends(get_role_resolver),
) -> Optional[Role]:
    """The caller's effective role, re-derived server-side on every request."""
    return resolver.resolve(current_user.sub)


# Outbound clients; tests override these with MockTransport-backed instances
def get_storage() -> StorageService:
    return StorageService()


def get_edge_functions() -> EdgeFunctionClient:
    return EdgeFunctionClient()


def get_chat_relay() -> ChatWebhookRelay:
    return ChatWebhookRelay()


def get_session_factory():
    """Session factory for work that outlives the request, such as background tasks."""
    return SessionLocal
