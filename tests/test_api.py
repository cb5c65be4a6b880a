import httpx
import pytest

from ai.matching import AIMatchingService
from ai.resume_parser import ResumeParserClient
from staffing.api import app, get_attachment_service, get_config_service, get_matching_service, get_resume_parser
from staffing.client import BusinessClientManager, get_business_client_manager
from staffing.services import AttachmentService, ConfigService

from .conftest import TENANT, USER

HEADERS = {"X-Tenant-ID": TENANT, "X-User-ID": USER}


@pytest.fixture
async def api(manager):
    app.dependency_overrides[get_business_client_manager] = lambda: manager
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def override(dependency, value):
    app.dependency_overrides[dependency] = lambda: value


async def test_root_and_health(api):
    root = await api.get("/")
    assert root.status_code == 200
    assert "batch_matching" in root.json()["endpoints"]

    health = await api.get("/health")
    assert health.json()["status"] == "ok"
    assert health.json()["authenticated"] is True


async def test_engineer_endpoints(api):
    created = await api.post("/engineers", json={"name": "Taro", "skills": ["Python"]}, headers=HEADERS)
    assert created.status_code == 201
    engineer = created.json()["data"]
    assert engineer["company_type"] == "自社"
    assert created.json()["notifications"][0]["description"] == "技術者情報を登録しました"

    listed = await api.get("/engineers", params={"company_type": "own"}, headers=HEADERS)
    assert [e["name"] for e in listed.json()["data"]] == ["Taro"]

    other = await api.get("/engineers", params={"company_type": "other"}, headers=HEADERS)
    assert other.json()["data"] == []

    deleted = await api.delete(f"/engineers/{engineer['id']}", headers=HEADERS)
    assert deleted.json()["data"]["deleted"] is True

    bad_type = await api.get("/engineers", params={"company_type": "both"}, headers=HEADERS)
    assert bad_type.status_code == 400


async def test_validation_errors_are_400(api):
    response = await api.post("/engineers", json={"name": ""}, headers=HEADERS)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation"
    assert "必須項目" in body["detail"]


async def test_missing_tenant_is_401(api):
    response = await api.get("/projects")

    assert response.status_code == 401
    assert response.json()["notifications"][0]["level"] == "error"


async def test_unauthenticated_manager_is_401(engine):
    app.dependency_overrides[get_business_client_manager] = lambda: BusinessClientManager(engine)
    try:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            listed = await client.get("/projects", headers=HEADERS)
            history = await client.get("/matching-history", headers=HEADERS)
    finally:
        app.dependency_overrides.clear()

    assert listed.status_code == 401
    assert history.status_code == 401
    assert history.json()["error"] == "authentication_error"


async def test_project_archive_flow(api):
    created = await api.post("/projects", json={"title": "Case A", "manager_name": "Suzuki"}, headers=HEADERS)
    project_id = created.json()["data"]["id"]

    archived = await api.post(f"/projects/{project_id}/archive", json={"reason": "終了"}, headers=HEADERS)
    assert archived.status_code == 200
    assert (await api.get("/projects", headers=HEADERS)).json()["data"] == []

    [archive] = (await api.get("/archives", headers=HEADERS)).json()["data"]
    assert archive["project_data"]["title"] == "Case A"

    restored = await api.post(f"/archives/{archive['id']}/restore", headers=HEADERS)
    assert restored.status_code == 200
    assert [p["title"] for p in (await api.get("/projects", headers=HEADERS)).json()["data"]] == ["Case A"]

    missing = await api.post("/projects/missing/archive", json={}, headers=HEADERS)
    assert missing.status_code == 502


async def test_project_search_and_senders(api, seed):
    await seed("projects", title="Python API", manager_name="Suzuki", manager_email="suzuki@acme.jp")
    await seed("projects", title="Java batch")

    found = await api.get("/projects/search", params={"q": "python"}, headers=HEADERS)
    assert [p["title"] for p in found.json()["data"]] == ["Python API"]

    senders = await api.get("/bulk-email/senders", headers=HEADERS)
    rows = {row["case_title"]: row for row in senders.json()["data"]}
    assert senders.json()["count"] == 2
    assert rows["Python API"]["sender"] == "Suzuki"
    assert rows["Java batch"]["row_id"].endswith("-default-0")


async def test_lookup_lists(api, seed):
    await seed("projects", title="Python API", client_company="ACME")
    await seed("projects", title="Java batch", client_company="Globex")
    await seed("engineers", name="Taro", skills=["Python", "AWS"], nationality="日本", japanese_level="N1")
    await seed("engineers", name="Minh", skills=["Java"], nationality="ベトナム", japanese_level="N2")

    companies = await api.get("/projects/companies", headers=HEADERS)
    assert sorted(companies.json()["data"]) == ["ACME", "Globex"]

    skills = await api.get("/engineers/skills", headers=HEADERS)
    assert skills.json()["data"] == ["AWS", "Java", "Python"]

    nationalities = await api.get("/engineers/nationalities", headers=HEADERS)
    assert set(nationalities.json()["data"]) == {"日本", "ベトナム"}

    found = await api.get("/engineers/search", params={"japanese_level": "N1"}, headers=HEADERS)
    assert [e["name"] for e in found.json()["data"]] == ["Taro"]


async def test_resume_attachment_endpoint(api, seed):
    with_resume = await seed("engineers", name="Taro", resume_url="https://cdn.example.com/r/cv.pdf")
    without_resume = await seed("engineers", name="Hanako")

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})
        return httpx.Response(200, json={"attachment_id": "a1", "status": "uploaded", "file_size": 4})

    override(get_attachment_service, AttachmentService("http://backend", "secret", transport=httpx.MockTransport(handler)))

    uploaded = await api.post(f"/engineers/{with_resume['id']}/resume-attachment", headers=HEADERS)
    assert uploaded.status_code == 201
    assert uploaded.json()["data"]["filename"] == "Taro_履歴書.pdf"

    missing_resume = await api.post(f"/engineers/{without_resume['id']}/resume-attachment", headers=HEADERS)
    assert missing_resume.status_code == 400

    unknown = await api.post("/engineers/nope/resume-attachment", headers=HEADERS)
    assert unknown.status_code == 404


async def test_template_endpoints(api):
    created = await api.post(
        "/templates",
        json={
            "name": "Intro",
            "category": "engineer_introduction",
            "subject_template": "{engineer_name}のご紹介",
            "body_template_text": "{client} 様\n{engineer_skills}",
        },
        headers=HEADERS,
    )
    assert created.status_code == 201
    template_id = created.json()["data"]["id"]

    applied = await api.post(
        f"/templates/{template_id}/apply",
        json={"engineers": [{"name": "Taro", "skills": ["Python", "AWS"]}], "additional_data": {"client": "ACME"}},
        headers=HEADERS,
    )
    assert applied.json()["data"] == {"subject": "Taroのご紹介", "body": "ACME 様\nPython, AWS", "signature": ""}

    fetched = await api.get(f"/templates/{template_id}", headers=HEADERS)
    assert fetched.json()["data"]["usage_count"] == 1

    categories = await api.get("/templates/categories", headers=HEADERS)
    assert categories.json()["data"] == ["engineer_introduction"]

    missing = await api.get("/templates/missing", headers=HEADERS)
    assert missing.status_code == 404


async def test_template_preview_and_builtin(api):
    preview = await api.post("/templates/preview", json={"text": "Hi {foo}"})
    assert preview.json()["segments"] == [
        {"kind": "text", "value": "Hi "},
        {"kind": "placeholder", "value": "foo"},
    ]

    builtin = await api.post(
        "/templates/builtin/follow-up/apply",
        json={"cases": [{"title": "Case A", "sender": "Suzuki"}], "engineers": [{"name": "Taro"}]},
    )
    assert builtin.json()["subject"] == "【ご確認】Case Aのご状況について"


async def test_batch_matching_search(api, seed):
    project = await seed("projects", title="Case A", client_company="ACME")
    engineer = await seed("engineers", name="Taro", age="30")
    matches = [
        {"id": f"m{i}", "project_id": project["id"], "engineer_id": engineer["id"], "match_score": 0.82}
        for i in range(4)
    ]
    transport = httpx.MockTransport(
        lambda r: httpx.Response(200, json={"matches": matches, "total_matches": 4, "high_quality_matches": 4})
    )
    override(get_matching_service, AIMatchingService("http://backend", "key", transport=transport))

    response = await api.post("/batch-matching/search", json={"page": 2}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["page"] == 2
    assert body["total_pages"] == 2
    assert body["total_results"] == 4
    [row] = body["results"]
    assert row["id"] == "m3"
    assert row["caseName"] == "Case A"
    assert row["matchingRate"] == "82%"
    assert row["matchingLabel"] == "高品質マッチ"
    assert row["age"] == "30"
    assert body["notifications"][0]["title"] == "一括マッチング完了"


async def test_batch_matching_backend_failure_is_502(api):
    transport = httpx.MockTransport(lambda r: httpx.Response(500, json={"message": "down"}))
    override(get_matching_service, AIMatchingService("http://backend", "key", transport=transport))

    response = await api.post("/batch-matching/search", json={}, headers=HEADERS)

    assert response.status_code == 502
    assert response.json()["detail"] == "down"


async def test_matching_history_endpoints(api, seed):
    project = await seed("projects", title="Case A")
    engineer = await seed("engineers", name="Taro")
    match = await seed(
        "project_engineer_matches", project_id=project["id"], engineer_id=engineer["id"], status="保存済み"
    )

    history = await api.get("/matching-history", headers=HEADERS)
    assert history.json()["data"][0]["engineer_detail"]["name"] == "Taro"

    assert (await api.delete(f"/matching-history/{match['id']}", headers=HEADERS)).status_code == 200
    assert (await api.get(f"/matching-history/{match['id']}", headers=HEADERS)).status_code == 404
    assert (await api.delete(f"/matching-history/{match['id']}", headers=HEADERS)).status_code == 502


async def test_resume_parse_endpoint(api):
    def handler(request):
        if request.url.path.endswith("/validate"):
            return httpx.Response(200, json={"success": True, "data": {"valid": True}})
        return httpx.Response(200, json={"success": True, "data": {"name": "Taro", "skills": ["Go"]}})

    override(get_resume_parser, ResumeParserClient("http://parser", "key", transport=httpx.MockTransport(handler)))

    response = await api.post(
        "/resumes/parse",
        params={"validate_first": "true"},
        files={"file": ("cv.pdf", b"%PDF", "application/pdf")},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Taro"
    assert response.json()["filename"] == "cv.pdf"


async def test_resume_parse_failure_is_400(api):
    transport = httpx.MockTransport(lambda r: httpx.Response(422, json={"detail": "unsupported"}))
    override(get_resume_parser, ResumeParserClient("http://parser", "key", transport=transport))

    response = await api.post("/resumes/parse", files={"file": ("cv.txt", b"x", "text/plain")}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"] == "unsupported"


async def test_runtime_config(api):
    transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"success": True, "data": {"A": "1"}}))
    override(get_config_service, ConfigService("http://backend", "key", cache_seconds=0, transport=transport))

    response = await api.get("/runtime-config")

    assert response.json() == {"data": {"A": "1"}, "count": 1, "applied": 1}
