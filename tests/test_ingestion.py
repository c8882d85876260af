import json

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.exceptions import ValidationFailed
from app.models.policy_document import PolicyDocument
from app.models.source import ProcessingStatus, Source
from app.services.edge_functions import EdgeFunctionClient
from app.services.ingestion import (
    SourceIngestionService,
    UploadedFile,
    advance,
    can_transition,
    source_type_for,
    validate_files,
)
from app.services.storage import StorageService


def _pdf(name, content=b"%PDF-1.4 policy"):
    return UploadedFile(filename=name, content_type="application/pdf", content=content)


def _failing_upload_handler(request: httpx.Request) -> httpx.Response:
    if "/storage/v1/object/" in request.url.path and request.content == b"broken":
        return httpx.Response(500, text="storage exploded")
    return httpx.Response(200, json={"success": True})


@pytest.fixture
def recorder(make_recorder):
    return make_recorder(_failing_upload_handler)


@pytest.fixture
def service(db, recorder):
    return SourceIngestionService(
        db,
        StorageService(transport=recorder.transport),
        EdgeFunctionClient(transport=recorder.transport),
        stagger_seconds=0.01,
    )


def test_transitions_only_move_forward():
    assert can_transition("pending", "uploading")
    assert can_transition("uploading", "processing")
    assert can_transition("processing", "failed")
    assert not can_transition("completed", "processing")
    assert not can_transition("failed", "pending")
    assert not can_transition("processing", "uploading")


def test_advance_refuses_regression():
    source = Source(id="s1", processing_status="completed")
    with pytest.raises(ValidationFailed):
        advance(source, ProcessingStatus.UPLOADING)
    advance(source, ProcessingStatus.COMPLETED)
    assert source.processing_status == "completed"


def test_source_type_from_mime():
    assert source_type_for("application/pdf") == "pdf"
    assert source_type_for("audio/mpeg") == "audio"
    assert source_type_for("text/markdown") == "text"


def test_invalid_file_rejects_whole_batch():
    files = [
        _pdf("ok.pdf"),
        UploadedFile(filename="notes.exe", content_type="application/x-msdownload", content=b"MZ"),
    ]
    with pytest.raises(ValidationFailed) as exc:
        validate_files(files)
    assert exc.value.message.startswith("notes.exe:")
    assert "ok.pdf" not in exc.value.message


def test_oversized_file_is_rejected(monkeypatch):
    from app.core.config import settings
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_BYTES", 10)
    with pytest.raises(ValidationFailed):
        validate_files([_pdf("big.pdf", b"x" * 11)])


@pytest.mark.asyncio
async def test_batch_of_three_isolates_failure(db, service, recorder, make_document):
    document = make_document("administrator")
    uploads = [_pdf("one.pdf"), _pdf("two.pdf", b"broken"), _pdf("three.pdf")]

    sources = await service.create_file_sources(document, uploads, "uploader", "administrator")

    assert len(sources) == 3
    assert len({s.id for s in sources}) == 3
    assert all(s.processing_status == "pending" for s in sources)
    assert sources[0].created_at < sources[1].created_at
    assert sources[0].created_at < sources[2].created_at

    summary = await service.process_batch([(s.id, u) for s, u in zip(sources, uploads)])
    assert summary == {"successful": 2, "failed": 1}

    statuses = {s.title: db.get(Source, s.id).processing_status for s in sources}
    assert statuses == {"one.pdf": "completed", "two.pdf": "failed", "three.pdf": "completed"}

    first = db.get(Source, sources[0].id)
    assert first.file_path == f"{document.id}/{first.id}.pdf"
    assert db.get(Source, sources[1].id).file_path is None

    # Only the first source seeds generation
    assert recorder.paths().count("/functions/v1/generate-notebook-content") == 1
    db.refresh(document)
    assert document.generation_status == "generating"


@pytest.mark.asyncio
async def test_processing_failure_completes_with_error(db, make_document, make_recorder):
    def handler(request):
        if request.url.path.endswith("/process-document"):
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json={})

    recorder = make_recorder(handler)
    service = SourceIngestionService(
        db, StorageService(transport=recorder.transport), EdgeFunctionClient(transport=recorder.transport)
    )
    document = make_document("executive")
    upload = _pdf("policy.pdf")
    [source] = await service.create_file_sources(document, [upload], "uploader")

    result = await service.process_file(source.id, upload)

    assert result.processing_status == "completed"
    assert "processing_error" in result.source_metadata
    assert "/functions/v1/generate-notebook-content" not in recorder.paths()


@pytest.mark.asyncio
async def test_completed_source_is_not_reprocessed(db, service, recorder, make_document):
    document = make_document("administrator")
    upload = _pdf("done.pdf")
    [source] = await service.create_file_sources(document, [upload], "uploader")
    source.processing_status = "completed"
    db.commit()

    result = await service.process_file(source.id, upload)
    assert result.processing_status == "completed"
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_text_source_is_handed_off(db, service, recorder, make_document):
    document = make_document("administrator")
    source = await service.add_text_source(document, "Pasted rules", "Rule one.\nRule two.", "uploader")

    assert source.type == "text"
    assert source.processing_status == "completed"
    assert source.source_metadata["characterCount"] == len("Rule one.\nRule two.")

    body = json.loads(recorder.requests[0].content)
    assert recorder.requests[0].url.path == "/functions/v1/process-additional-sources"
    assert body["type"] == "copied-text"
    assert body["sourceIds"] == [source.id]


@pytest.mark.asyncio
async def test_website_sources_are_numbered(db, service, recorder, make_document):
    document = make_document("administrator")
    sources = await service.add_website_sources(
        document, ["https://a.example/policy", " ", "https://b.example/faq"], "uploader"
    )

    assert [s.title for s in sources] == [
        "Website 1: https://a.example/policy",
        "Website 2: https://b.example/faq",
    ]
    body = json.loads(recorder.requests[0].content)
    assert body["type"] == "multiple-websites"
    assert body["urls"] == ["https://a.example/policy", "https://b.example/faq"]


@pytest.mark.asyncio
async def test_website_sources_need_a_url(service, make_document):
    with pytest.raises(ValidationFailed):
        await service.add_website_sources(make_document(), ["", "  "], "uploader")


def test_upload_endpoint_creates_document_and_processes(
    client: TestClient, db, admin_user, auth_headers, outbound
):
    files = [
        ("files", ("a.pdf", b"%PDF a", "application/pdf")),
        ("files", ("b.md", b"# B", "text/markdown")),
        ("files", ("c.mp3", b"ID3", "audio/mpeg")),
    ]
    response = client.post(
        "/api/v1/sources/upload",
        files=files,
        data={"document_title": "Expense Policy", "target_role": "administrator"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 201
    body = response.json()
    assert [s["type"] for s in body["sources"]] == ["pdf", "text", "audio"]

    # Background processing has run by the time the response returns
    db.expire_all()
    rows = db.query(Source).filter(Source.notebook_id == body["notebook_id"]).all()
    assert {r.processing_status for r in rows} == {"completed"}
    assert len([p for p in outbound.paths() if p.startswith("/storage/v1/object/")]) == 3


def test_upload_endpoint_rejects_bad_file(client: TestClient, admin_user, auth_headers):
    response = client.post(
        "/api/v1/sources/upload",
        files=[("files", ("run.exe", b"MZ", "application/x-msdownload"))],
        data={"document_title": "Nope"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 400
    assert "run.exe" in response.json()["detail"]


def test_upload_needs_title_for_new_document(client: TestClient, admin_user, auth_headers):
    response = client.post(
        "/api/v1/sources/upload",
        files=[("files", ("a.pdf", b"%PDF", "application/pdf"))],
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_text_source_failed_out_of_band_stays_failed(db, make_document, make_recorder):
    document = make_document("administrator")

    def handler(request):
        # The processing function gives up on the source before erroring
        db.query(Source).filter(Source.notebook_id == document.id).update({"processing_status": "failed"})
        db.commit()
        return httpx.Response(502, text="bad gateway")

    recorder = make_recorder(handler)
    service = SourceIngestionService(
        db, StorageService(transport=recorder.transport), EdgeFunctionClient(transport=recorder.transport)
    )

    source = await service.add_text_source(document, "Pasted rules", "Rule one.", "uploader")

    assert source.processing_status == "failed"
    assert "processing_error" in source.source_metadata


def test_blank_text_source_creates_no_document(client: TestClient, db, admin_user, auth_headers, outbound):
    before = db.query(PolicyDocument).count()
    response = client.post(
        "/api/v1/sources/text",
        json={"document_title": "New Doc", "title": "  ", "content": "body"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 400
    assert db.query(PolicyDocument).count() == before
    assert outbound.requests == []


def test_blank_urls_create_no_document(client: TestClient, db, admin_user, auth_headers, outbound):
    before = db.query(PolicyDocument).count()
    response = client.post(
        "/api/v1/sources/websites",
        json={"document_title": "New Doc", "urls": ["  ", ""]},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "At least one URL is required"
    assert db.query(PolicyDocument).count() == before


def test_text_source_endpoint_creates_document(client: TestClient, db, admin_user, auth_headers):
    response = client.post(
        "/api/v1/sources/text",
        json={"document_title": "New Doc", "title": "Rules", "content": "Rule one."},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == 201
    document = db.get(PolicyDocument, response.json()["notebook_id"])
    assert document.title == "New Doc"
