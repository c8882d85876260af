import json

import pytest

from app.core.exceptions import AuthenticationMissing, AuthorizationDenied
from app.core.roles import Role
from app.models.chat import ChatHistory
from app.models.source import Source
from app.services.chat_session import PolicyChatSession


@pytest.fixture
def document_with_source(db, make_document):
    document = make_document("administrator")
    source = Source(notebook_id=document.id, title="Handbook.pdf", type="pdf", processing_status="completed")
    db.add(source)
    db.commit()
    return document, source


def _ai_row(db, document_id, source_id):
    row = ChatHistory(
        session_id=document_id,
        message={
            "type": "ai",
            "content": json.dumps({"output": [
                {"text": "See the handbook.", "citations": [
                    {"chunk_source_id": source_id, "chunk_lines_from": 1, "chunk_lines_to": 4},
                ]},
            ]}),
        },
    )
    db.add(row)
    db.commit()
    return row


def test_duplicate_delivery_is_dropped(db, document_with_source, relay):
    document, source = document_with_source
    row = _ai_row(db, document.id, source.id)
    session = PolicyChatSession(db, document.id, "u1", Role.ADMINISTRATOR, relay)

    first = session.receive(row)
    second = session.receive({"id": row.id, "session_id": document.id, "message": row.message})

    assert first is not None
    assert second is None
    assert len(session.messages) == 1
    assert first.message.content.citations[0].source_title == "Handbook.pdf"


def test_history_decodes_in_order(db, document_with_source, relay):
    document, source = document_with_source
    db.add(ChatHistory(session_id=document.id, message={"type": "human", "content": "What is covered?"}))
    db.commit()
    _ai_row(db, document.id, source.id)
    db.add(ChatHistory(session_id="another-document", message={"type": "human", "content": "elsewhere"}))
    db.commit()

    messages = PolicyChatSession(db, document.id, "u1", Role.BOARD, relay).history()

    assert [m.message.type for m in messages] == ["human", "ai"]
    assert messages[0].id < messages[1].id


@pytest.mark.asyncio
async def test_send_without_role_is_rejected(db, make_document, relay, outbound):
    document = make_document("administrator")
    session = PolicyChatSession(db, document.id, "u1", None, relay)
    with pytest.raises(AuthenticationMissing):
        await session.send("hello")
    assert outbound.requests == []


@pytest.mark.parametrize("role, assignment, allowed", [
    (Role.BOARD, "administrator", True),
    (Role.BOARD, None, True),
    (Role.ADMINISTRATOR, "administrator", True),
    (Role.ADMINISTRATOR, "executive", False),
    (Role.EXECUTIVE, "administrator", False),
    (Role.EXECUTIVE, None, False),
])
@pytest.mark.asyncio
async def test_send_check_and_clear_share_one_rule(db, make_document, relay, outbound, role, assignment, allowed):
    document = make_document(assignment)
    db.add(ChatHistory(session_id=document.id, message={"type": "human", "content": "hi"}))
    db.commit()
    session = PolicyChatSession(db, document.id, "u1", role, relay)

    assert session.check_access() is allowed
    if allowed:
        await session.send("hello")
        assert session.clear_history() == 1
        assert len(outbound.requests) == 1
    else:
        with pytest.raises(AuthorizationDenied):
            await session.send("hello")
        with pytest.raises(AuthorizationDenied):
            session.clear_history()
        assert outbound.requests == []
        assert db.query(ChatHistory).filter(ChatHistory.session_id == document.id).count() == 1


def test_clear_history_resets_messages(db, document_with_source, relay):
    document, source = document_with_source
    row = _ai_row(db, document.id, source.id)
    session = PolicyChatSession(db, document.id, "u1", Role.ADMINISTRATOR, relay)
    session.receive(row)

    session.clear_history()

    assert session.messages == []
    assert db.query(ChatHistory).filter(ChatHistory.session_id == document.id).count() == 0
