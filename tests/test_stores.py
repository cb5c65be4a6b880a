import json

import httpx
import pytest

from ai.matching import AIMatchingService
from staffing.client import BusinessClientManager
from staffing.stores import (
    BatchMatchingStore,
    EmailTemplatesStore,
    EngineersStore,
    ProjectArchivesStore,
    ProjectsStore,
    TenantContext,
)

from .conftest import TENANT


def errors(store):
    return [n for n in store.notifier.items if n.level == "error"]


async def test_engineer_store_crud(manager, context):
    store = EngineersStore(manager, context, company_type="own")

    created = await store.create({"name": "Taro", "skills": "Python, AWS", "desired_rate": "60"})
    assert created["company_type"] == "自社"
    assert created["source"] == "manual"
    assert created["skills"] == ["Python", "AWS"]
    assert [e["name"] for e in store.items] == ["Taro"]

    assert await store.update(created["id"], {"japanese_level": "N1"})
    assert store.items[0]["japanese_level"] == "N1"

    assert await store.delete(created["id"])
    assert store.items == []
    assert [n.description for n in store.notifier.items if n.level == "success"] == [
        "技術者情報を登録しました",
        "技術者情報を更新しました",
        "技術者を削除しました",
    ]


async def test_engineer_store_separates_company_types(manager, context):
    own = EngineersStore(manager, context, company_type="own")
    other = EngineersStore(manager, context, company_type="other")

    await own.create({"name": "Taro"})
    await other.create({"name": "Partner"})

    assert [e["name"] for e in await own.fetch()] == ["Taro"]
    assert [e["name"] for e in await other.fetch()] == ["Partner"]
    with pytest.raises(ValueError):
        EngineersStore(manager, context, company_type="both")


async def test_engineer_store_validation_blocks_save(manager, context):
    store = EngineersStore(manager, context)

    assert await store.create({"name": "  "}) is None
    assert store.failure == "validation"
    assert "name" in errors(store)[0].description
    assert await store.fetch() == []


async def test_engineer_update_of_missing_row_fails(manager, context):
    store = EngineersStore(manager, context)

    assert await store.update("missing", {"japanese_level": "N1"}) is False
    assert store.failure == "remote"


async def test_engineer_batch_update_and_permanent_delete(manager, context):
    store = EngineersStore(manager, context)
    a = await store.create({"name": "A"})
    b = await store.create({"name": "B"})

    assert await store.batch_update([a["id"], b["id"]], {"current_status": "面談"})
    assert {e["current_status"] for e in store.items} == {"面談"}
    assert await store.batch_update([], {"current_status": "面談"}) is False

    assert await store.permanently_delete(a["id"])
    raw = await manager.get_client().table("engineers").select("id").execute()
    assert [r["id"] for r in raw.data] == [b["id"]]


async def test_store_without_tenant_does_not_query(manager):
    store = EngineersStore(manager, TenantContext(tenant_id=None))

    assert await store.fetch() == []
    assert store.failure == "auth"
    assert errors(store)[0].description == "テナント情報が見つかりません"


async def test_store_unauthenticated(engine, context):
    store = ProjectsStore(BusinessClientManager(engine), context)

    assert await store.fetch() == []
    assert store.failure == "auth"
    assert errors(store)[0].title == "認証エラー"


async def test_expired_session_resets_list_with_relogin_message(manager, context):
    store = ProjectsStore(manager, context)
    store.items = [{"id": "stale"}]
    manager.get_client().set_auth("")

    assert await store.fetch() == []
    assert store.failure == "auth"
    assert store.loading is False
    assert errors(store)[0].description == "セッションが期限切れです。再ログインしてください"


async def test_project_create_requires_user(manager):
    store = ProjectsStore(manager, TenantContext(tenant_id=TENANT))

    assert await store.create({"title": "Case A"}) is None
    assert errors(store)[0].description == "認証情報が不足しています"


async def test_project_archive_and_restore(manager, context):
    projects = ProjectsStore(manager, context)
    created = await projects.create({"title": "Case A", "skills": ["Python"]})
    assert created["created_by"] == context.user_id

    assert await projects.archive(created["id"], "終了")
    assert projects.items == []

    archives = ProjectArchivesStore(manager, context)
    [archive] = await archives.fetch()
    assert archive["original_project_id"] == created["id"]
    assert archive["archive_reason"] == "終了"
    assert archive["project_data"]["title"] == "Case A"

    assert await archives.restore(archive["id"])
    assert archives.items == []
    assert [p["title"] for p in await projects.fetch()] == ["Case A"]


async def test_archive_of_missing_project_fails(manager, context):
    store = ProjectsStore(manager, context)

    assert await store.archive("missing") is False
    assert store.failure == "remote"
    assert await ProjectArchivesStore(manager, context).fetch() == []


async def test_delete_batch_archives_removes_projects(manager, context):
    projects = ProjectsStore(manager, context)
    first = await projects.create({"title": "A"})
    second = await projects.create({"title": "B"})
    await projects.archive(first["id"])
    await projects.archive(second["id"])

    archives = ProjectArchivesStore(manager, context)
    ids = [a["id"] for a in await archives.fetch()]

    assert await archives.delete_batch_archives(ids + ["missing"])
    assert archives.items == []
    raw = await manager.get_client().table("projects").select("id").execute()
    assert raw.data == []
    assert await archives.delete_batch_archives([]) is False


async def test_archive_batch_delete_with_expired_session(manager, context):
    archives = ProjectArchivesStore(manager, context)
    manager.get_client().set_auth("")

    assert await archives.delete_batch_archives(["a"]) is False
    assert archives.failure == "auth"
    assert errors(archives)[0].title == "認証エラー"


async def test_email_templates_store(manager, context):
    store = EmailTemplatesStore(manager, context, category="intro")

    assert await store.create({"name": "Intro", "subject_template": "s"}) is None
    assert store.failure == "validation"

    created = await store.create(
        {"name": "Intro", "category": "intro", "subject_template": "{name}", "body_template_text": "Hi {name}"}
    )
    assert created["created_by"] == context.user_id
    assert [t["name"] for t in store.items] == ["Intro"]

    assert await store.increment_usage_count(created["id"])
    default = await store.get_default_template_by_category("intro")
    assert default["usage_count"] == 1

    updated = await store.update(created["id"], {"description": "greeting"})
    assert updated["description"] == "greeting"
    assert [t["name"] for t in await store.search("greet")] == ["Intro"]
    assert await store.get_available_categories() == ["intro"]
    assert [t["id"] for t in await store.get_templates_by_category("intro")] == [created["id"]]

    assert await store.delete(created["id"])
    assert store.items == []
    assert await store.get_template_by_id(created["id"]) is None


async def test_email_templates_store_without_tenant(manager):
    store = EmailTemplatesStore(manager, TenantContext(tenant_id=None))

    assert await store.refresh() == []
    assert store.error == "テナントIDが設定されていません"
    assert await store.search("x") == []
    assert await store.increment_usage_count("x") is False


def bulk_matching_transport(payload, status_code=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler), requests


async def test_batch_matching_store_search(manager, context, seed):
    project = await seed("projects", title="Case A", client_company="ACME")
    engineer = await seed("engineers", name="Taro", skills=["Python"])
    matches = [
        {"id": f"m{i}", "project_id": project["id"], "engineer_id": engineer["id"], "match_score": 0.82}
        for i in range(4)
    ]
    transport, requests = bulk_matching_transport({"matches": matches, "total_matches": 4})
    service = AIMatchingService("http://backend", "key", transport=transport)
    store = BatchMatchingStore(manager, context, service)
    store.case_affiliation = "自社"

    results = await store.search()

    assert len(results) == 4
    assert store.is_searched
    assert results[0].case_name == "Case A"
    assert results[0].matching_rate == "82%"
    assert store.total_pages == 2
    assert len(store.paginated_results) == 3
    assert [r.id for r in store.set_page(2)] == ["m3"]
    assert store.notifier.items[-1].title == "一括マッチング完了"
    assert store.notifier.items[-1].description == "4件のマッチが見つかりました"

    body = json.loads(requests[0].content)
    assert body["project_company_type"] == "自社"
    assert "engineer_company_type" not in body
    assert body["max_matches"] == 100
    assert body["min_score"] == 0.7

    assert store.case_detail("m1")["company"] == "ACME"
    assert store.candidate_detail("m1")["name"] == "Taro"
    assert store.case_detail("missing") is None


async def test_batch_matching_store_api_error(manager, context):
    transport, _ = bulk_matching_transport({"message": "backend down"}, status_code=503)
    store = BatchMatchingStore(manager, context, AIMatchingService("http://backend", "key", transport=transport))

    assert await store.search() == []
    assert not store.is_searched
    assert store.failure == "remote"
    assert errors(store)[0].title == "一括マッチング失敗"
    assert errors(store)[0].description == "backend down"


async def test_batch_matching_store_keeps_matches_with_null_fields(manager, context, seed):
    project = await seed("projects", title="Case A")
    engineer = await seed("engineers", name="Taro")
    matches = [
        {"id": "m1", "project_id": project["id"], "engineer_id": engineer["id"], "match_score": 0.9},
        {
            "id": "m2",
            "project_id": project["id"],
            "engineer_id": engineer["id"],
            "match_score": None,
            "match_reasons": None,
            "concerns": None,
        },
    ]
    transport, _ = bulk_matching_transport({"matches": matches, "total_matches": 2})
    store = BatchMatchingStore(manager, context, AIMatchingService("http://backend", "key", transport=transport))

    results = await store.search()

    assert [r.id for r in results] == ["m1", "m2"]
    assert results[1].matching_rate == "0%"
    assert results[1].matching_reason == ""
    assert store.failure is None


async def test_batch_matching_store_sends_zero_min_score(manager, context):
    transport, requests = bulk_matching_transport({"matches": [], "total_matches": 0})
    store = BatchMatchingStore(manager, context, AIMatchingService("http://backend", "key", transport=transport))
    store.min_score = 0.0

    await store.search()

    assert json.loads(requests[0].content)["min_score"] == 0.0


async def test_engineer_soft_delete_keeps_row(manager, context):
    store = EngineersStore(manager, context, company_type="own")
    created = await store.create({"name": "Taro"})

    assert await store.delete(created["id"])

    assert store.items == []
    row = await manager.get_client().table("engineers").select("*").eq("id", created["id"]).single().execute()
    assert row.data["is_active"] is False
    assert row.data["name"] == "Taro"


async def test_project_soft_delete_keeps_row(manager, context):
    store = ProjectsStore(manager, context)
    created = await store.create({"title": "Case A"})

    assert await store.delete(created["id"])

    assert store.items == []
    assert await store.fetch() == []
    row = await manager.get_client().table("projects").select("*").eq("id", created["id"]).single().execute()
    assert row.data["is_active"] is False
    assert row.data["title"] == "Case A"
    assert [n.description for n in store.notifier.items if n.level == "success"][-1] == "案件が正常に削除されました"
