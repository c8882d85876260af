import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.api import deps
from app.core.database import get_db
from app.core.exceptions import AuthorizationDenied, PolicyAiError
from app.core.roles import Role
from app.core.security import TokenClaims
from app.schemas.chat import ChatMessageOut, ChatSendRequest, RelayResponse
from app.services.chat_feed import ChatFeed
from app.services.chat_relay import ChatWebhookRelay
from app.services.chat_session import PolicyChatSession
from app.services.role_service import RoleResolver

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send-chat-message", response_model=RelayResponse)
async def send_chat_message(
    body: ChatSendRequest,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(deps.bearer_scheme),
    resolver: RoleResolver = Depends(deps.get_role_resolver),
    relay: ChatWebhookRelay = Depends(deps.get_chat_relay),
) -> Any:
    """
    Relay a chat message to the workflow for the caller's role.

    The role always comes from the caller's role rows; whatever role the
    client puts in the body is ignored. Errors are returned as `{error}`.
    """
    try:
        current_user = deps.get_current_user(credentials)
        role = resolver.resolve(current_user.sub)
        if role is None:
            raise AuthorizationDenied("User role not found")

        session = PolicyChatSession(db, body.session_id, current_user.sub, role, relay)
        data = await session.send(body.message)
    except PolicyAiError as e:
        logger.error(f"Error in send-chat-message: {e.message}")
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    return RelayResponse(success=True, data=data)


@router.get("/documents/{document_id}/chat", response_model=List[ChatMessageOut])
def read_chat_history(
    document_id: str,
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    return PolicyChatSession(db, document_id, current_user.sub, role).history()


@router.delete("/documents/{document_id}/chat")
def clear_chat_history(
    document_id: str,
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    deleted = PolicyChatSession(db, document_id, current_user.sub, role).clear_history()
    return {"success": True, "deleted": deleted}


@router.get("/documents/{document_id}/chat/stream")
async def stream_chat(
    document_id: str,
    request: Request,
    after_id: int = 0,
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
    session_factory=Depends(deps.get_session_factory),
) -> Any:
    """
    Server-sent events with every new chat message for the document.
    """
    session = PolicyChatSession(db, document_id, current_user.sub, role)
    session.ensure_access()
    # Load now; the request session is gone once streaming starts
    session.source_map
    feed = ChatFeed(document_id, session_factory, after_id=after_id)
    return StreamingResponse(
        chat_events(session, feed, request.is_disconnected), media_type="text/event-stream"
    )


async def chat_events(session: PolicyChatSession, feed: ChatFeed, is_disconnected):
    """SSE frames for each new message; the feed is closed however the stream ends."""
    try:
        async for row in feed:
            if await is_disconnected():
                break
            message = session.receive(row)
            if message is not None:
                yield f"data: {message.model_dump_json()}\n\n"
    finally:
        await feed.aclose()
