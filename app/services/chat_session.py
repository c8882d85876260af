import logging
from typing import Any, List, Optional, Set

from sqlalchemy.orm import Session

from app.core.exceptions import AuthenticationMissing, NotFound
from app.core.roles import parse_role
from app.models.chat import ChatHistory
from app.models.policy_document import PolicyDocument
from app.models.source import Source
from app.schemas.chat import ChatMessageOut
from app.services.access_guard import can_access_document, require_document_access
from app.services.chat_relay import ChatWebhookRelay
from app.services.citations import build_source_map, decode_chat_row

logger = logging.getLogger(__name__)


class PolicyChatSession:
    """
    Chat over one policy document. The session id is the document id.

    Holds the decoded messages seen so far; rows arriving from the feed are
    de-duplicated by id so a message is never shown twice.
    """

    def __init__(
        self,
        db: Session,
        document_id: str,
        user_id: str,
        role,
        relay: Optional[ChatWebhookRelay] = None,
    ):
        self.db = db
        self.document_id = document_id
        self.user_id = user_id
        self.role = parse_role(role)
        self.relay = relay or ChatWebhookRelay()
        self.messages: List[ChatMessageOut] = []
        self._seen_ids: Set[int] = set()
        self._source_map = None

    def _document(self) -> PolicyDocument:
        document = self.db.query(PolicyDocument).filter(PolicyDocument.id == self.document_id).first()
        if not document:
            raise NotFound("Policy document not found")
        return document

    def ensure_access(self) -> PolicyDocument:
        if self.role is None:
            raise AuthenticationMissing("User role not found. Please contact an administrator.")
        document = self._document()
        require_document_access(self.role, document)
        return document

    @property
    def source_map(self):
        if self._source_map is None:
            sources = self.db.query(Source).filter(Source.notebook_id == self.document_id).all()
            self._source_map = build_source_map(sources)
        return self._source_map

    def refresh_sources(self):
        self._source_map = None

    def check_access(self, document_id: Optional[str] = None) -> bool:
        document_id = document_id or self.document_id
        document = self.db.query(PolicyDocument).filter(PolicyDocument.id == document_id).first()
        if document is None:
            return False
        return can_access_document(self.role, document.role_assignment)

    async def send(self, content: str) -> Any:
        """
        Forward a user message to the role's chat workflow. The reply is not
        returned here; the workflow writes it to chat history.
        """
        self.ensure_access()
        return await self.relay.forward(self.document_id, content, self.user_id, self.role)

    def receive(self, row) -> Optional[ChatMessageOut]:
        """Decode an incoming chat-history row; returns None for an already-seen id."""
        message = decode_chat_row(row, self.source_map)
        if message.id in self._seen_ids:
            logger.debug(f"Skipping duplicate chat message {message.id}")
            return None
        self._seen_ids.add(message.id)
        self.messages.append(message)
        return message

    def history(self) -> List[ChatMessageOut]:
        self.ensure_access()
        self.refresh_sources()
        rows = (
            self.db.query(ChatHistory)
            .filter(ChatHistory.session_id == self.document_id)
            .order_by(ChatHistory.id.asc())
            .all()
        )
        self.messages = []
        self._seen_ids = set()
        for row in rows:
            self.receive(row)
        return list(self.messages)

    def clear_history(self) -> int:
        self.ensure_access()
        deleted = (
            self.db.query(ChatHistory)
            .filter(ChatHistory.session_id == self.document_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        self.messages = []
        self._seen_ids = set()
        logger.info(f"Cleared {deleted} chat messages for {self.document_id}")
        return deleted
