import json

import httpx
import pytest

from ai.matching import AIMatchingService, ApiError, BulkMatchingRequest
from ai.resume_parser import ResumeParseError, ResumeParserClient
from staffing.services import AttachmentError, AttachmentService
from staffing.services.attachment_service import format_file_size, get_file_extension


def recording(handler):
    requests = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(record), requests


async def test_find_engineers_for_project_defaults():
    transport, requests = recording(lambda r: httpx.Response(200, json={"matches": []}))
    service = AIMatchingService("http://backend/", "secret", transport=transport)

    assert await service.find_engineers_for_project("t1", "p1") == {"matches": []}

    request = requests[0]
    assert str(request.url) == "http://backend/api/v1/ai-matching/project-to-engineers"
    assert request.headers["X-API-Key"] == "secret"
    assert json.loads(request.content) == {
        "project_id": "p1",
        "tenant_id": "t1",
        "max_matches": 10,
        "min_score": 0.7,
        "filters": {},
    }


async def test_find_projects_for_engineer_passes_overrides():
    transport, requests = recording(lambda r: httpx.Response(200, json={"matches": [{"id": "m1"}]}))
    service = AIMatchingService("http://backend", "secret", transport=transport)

    result = await service.find_projects_for_engineer(
        "t1", "e1", max_matches=5, min_score=0.5, filters={"company_type": "own"}
    )

    assert result == {"matches": [{"id": "m1"}]}
    assert requests[0].url.path == "/api/v1/ai-matching/engineer-to-projects"
    body = json.loads(requests[0].content)
    assert body["engineer_id"] == "e1"
    assert body["max_matches"] == 5
    assert body["min_score"] == 0.5
    assert body["filters"] == {"company_type": "own"}


async def test_bulk_matching_sends_optional_filters_only_when_set():
    transport, requests = recording(lambda r: httpx.Response(200, json={"matches": [], "total_matches": 0}))
    service = AIMatchingService("http://backend", "secret", transport=transport)

    response = await service.perform_bulk_matching(
        BulkMatchingRequest(tenant_id="t1", project_start_date="2024-05-01", max_matches=100)
    )

    assert response.total_matches == 0
    body = json.loads(requests[0].content)
    assert body["project_start_date"] == "2024-05-01"
    assert body["matching_type"] == "bulk_matching"
    assert body["trigger_type"] == "api"
    assert "project_company_type" not in body


async def test_match_status_update_uses_query_params():
    transport, requests = recording(lambda r: httpx.Response(200, json={"ok": True}))
    service = AIMatchingService("http://backend", "secret", transport=transport)

    await service.update_match_status("t1", "m1", "保存済み", reviewed_by="u1")

    request = requests[0]
    assert request.method == "PUT"
    assert request.url.path == "/api/v1/ai-matching/matches/t1/m1/status"
    assert request.url.params["status"] == "保存済み"
    assert request.url.params["reviewed_by"] == "u1"
    assert "comment" not in request.url.params


async def test_error_responses_become_api_errors():
    transport, _ = recording(lambda r: httpx.Response(500, text="oops"))
    service = AIMatchingService("http://backend", "secret", transport=transport)

    with pytest.raises(ApiError) as exc_info:
        await service.get_matching_history("t1")

    assert exc_info.value.status == 500
    assert exc_info.value.message == "HTTPエラー: 500"


async def test_transport_failures_have_status_zero():
    def fail(request):
        raise httpx.ConnectError("refused", request=request)

    service = AIMatchingService("http://backend", "secret", transport=httpx.MockTransport(fail))

    with pytest.raises(ApiError) as exc_info:
        await service.get_matches_by_history_id("t1", "h1")
    assert exc_info.value.status == 0


async def test_resume_parse():
    def handler(request):
        assert request.url.path.endswith("/parse")
        assert request.headers["X-Tenant-ID"] == "t1"
        assert request.headers["Authorization"] == "Bearer tok"
        assert b"resume.pdf" in request.content
        return httpx.Response(200, json={
            "success": True,
            "data": {"name": "Taro", "skills": ["Python"], "japanese_level": "N1", "extra_field": "kept"},
        })

    client = ResumeParserClient("http://parser", "secret", transport=httpx.MockTransport(handler))

    parsed = await client.parse("resume.pdf", b"%PDF", "application/pdf", tenant_id="t1", access_token="tok")

    assert parsed.name == "Taro"
    assert parsed.skills == ["Python"]
    assert parsed.model_dump()["extra_field"] == "kept"


async def test_resume_parse_rejected():
    transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"success": False, "message": "対応していない形式です"}))
    client = ResumeParserClient("http://parser", "secret", transport=transport)

    with pytest.raises(ResumeParseError, match="対応していない形式です"):
        await client.validate("a.txt", b"x", "text/plain", tenant_id="t1")


def test_attachment_helpers():
    assert get_file_extension("https://cdn.example.com/files/resume.PDF?sig=1") == "PDF"
    assert get_file_extension("https://cdn.example.com/files/resume") is None
    assert format_file_size(0) == "0 Bytes"
    assert format_file_size(1536) == "1.5 KB"
    assert format_file_size(500) == "500 Bytes"


async def test_upload_resume_from_url():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})
        assert request.url.path == "/api/v1/email/attachments/upload"
        return httpx.Response(200, json={"attachment_id": "a1", "status": "uploaded", "file_size": 4})

    service = AttachmentService("http://backend", "secret", transport=httpx.MockTransport(handler))

    info = await service.upload_resume_from_url("t1", "e1", "Taro", "https://cdn.example.com/r/cv.pdf")

    assert info.id == "a1"
    assert info.filename == "Taro_履歴書.pdf"
    assert info.size == 4
    assert info.type == "application/pdf"


async def test_upload_rejects_unexpected_status():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, content=b"x")
        return httpx.Response(200, json={"attachment_id": "a1", "status": "pending"})

    service = AttachmentService("http://backend", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(AttachmentError):
        await service.upload_resume_from_url("t1", "e1", "Taro", "https://cdn.example.com/r/cv")


async def test_send_email_appends_signature():
    transport, requests = recording(
        lambda r: httpx.Response(200, json={"queue_id": "q1", "status": "queued", "message": "ok"})
    )
    service = AttachmentService("http://backend", "secret", transport=transport)

    result = await service.send_email_with_attachments(
        "t1", ["a@x.jp"], "件名", "本文1\n本文2", ["a1"], ["cv.pdf"], cc=["c@x.jp"], signature="署名"
    )

    assert result == {"queue_id": "q1", "status": "queued", "message": "ok"}
    body = json.loads(requests[0].content)
    assert body["body_text"] == "本文1\n本文2\n\n署名"
    assert body["body_html"] == "本文1<br>本文2<br><br>署名"
    assert body["cc_emails"] == ["c@x.jp"]
    assert "bcc_emails" not in body
