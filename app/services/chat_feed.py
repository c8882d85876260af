import asyncio
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.chat import ChatHistory

logger = logging.getLogger(__name__)


class ChatFeed:
    """
    Async iterator over new chat-history rows for one session.

    Polls for rows with an id above the cursor. Each consumer owns its feed
    and must close it with `aclose()` when it goes away.
    """

    def __init__(
        self,
        session_id: str,
        session_factory,
        after_id: int = 0,
        poll_interval: Optional[float] = None,
    ):
        self.session_id = session_id
        self.session_factory = session_factory
        self.cursor = after_id
        self.poll_interval = settings.CHAT_FEED_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.closed = False
        self._pending: List[ChatHistory] = []

    def poll_once(self, db: Session) -> List[ChatHistory]:
        rows = (
            db.query(ChatHistory)
            .filter(ChatHistory.session_id == self.session_id, ChatHistory.id > self.cursor)
            .order_by(ChatHistory.id.asc())
            .all()
        )
        if rows:
            self.cursor = rows[-1].id
        return rows

    def _poll(self) -> List[ChatHistory]:
        db = self.session_factory()
        try:
            rows = self.poll_once(db)
            # Detach so the rows stay readable after the session closes
            for row in rows:
                db.expunge(row)
            return rows
        finally:
            db.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChatHistory:
        while not self.closed:
            if self._pending:
                return self._pending.pop(0)
            self._pending = self._poll()
            if not self._pending:
                await asyncio.sleep(self.poll_interval)
        raise StopAsyncIteration

    async def aclose(self):
        self.close()

    def close(self):
        if not self.closed:
            logger.debug(f"Closing chat feed for {self.session_id}")
        self.closed = True
        self._pending = []
