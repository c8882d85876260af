import pytest

from app.models.chat import ChatHistory
from app.services.chat_feed import ChatFeed


def _add(db, session_id, content):
    row = ChatHistory(session_id=session_id, message={"type": "human", "content": content})
    db.add(row)
    db.commit()
    return row.id


def test_poll_once_advances_cursor(db, session_factory):
    feed = ChatFeed("doc-1", session_factory, poll_interval=0)
    first = _add(db, "doc-1", "one")
    _add(db, "doc-2", "other session")

    rows = feed.poll_once(db)
    assert [r.id for r in rows] == [first]
    assert feed.cursor == first
    assert feed.poll_once(db) == []

    second = _add(db, "doc-1", "two")
    assert [r.id for r in feed.poll_once(db)] == [second]


def test_feed_starts_after_given_id(db, session_factory):
    old = _add(db, "doc-1", "old")
    new = _add(db, "doc-1", "new")
    feed = ChatFeed("doc-1", session_factory, after_id=old, poll_interval=0)
    assert [r.id for r in feed.poll_once(db)] == [new]


@pytest.mark.asyncio
async def test_iteration_yields_rows_until_closed(db, session_factory):
    _add(db, "doc-1", "one")
    _add(db, "doc-1", "two")
    feed = ChatFeed("doc-1", session_factory, poll_interval=0)

    received = []
    async for row in feed:
        received.append(row.message["content"])
        if len(received) == 2:
            await feed.aclose()

    assert received == ["one", "two"]
    assert feed.closed is True


@pytest.mark.asyncio
async def test_closed_feed_stops_immediately(session_factory):
    feed = ChatFeed("doc-1", session_factory, poll_interval=0)
    await feed.aclose()
    with pytest.raises(StopAsyncIteration):
        await feed.__anext__()
