import pytest

from staffing.client import (
    AuthenticationError,
    BusinessClientManager,
    ClientNotInitializedError,
    QueryError,
    SessionExpiredError,
)

from .conftest import TENANT


async def test_get_client_requires_authentication(engine):
    manager = BusinessClientManager(engine)

    assert not manager.is_authenticated()
    with pytest.raises(ClientNotInitializedError, match="認証エラー"):
        manager.get_client()


async def test_set_token_rejects_empty_token(engine):
    manager = BusinessClientManager(engine)

    assert await manager.set_token("") is False
    assert not manager.is_authenticated()


async def test_token_verifier_rejects_unknown_tokens(engine):
    async def verify(token):
        return token == "good"

    manager = BusinessClientManager(engine, token_verifier=verify)

    assert await manager.set_token("forged") is False
    assert not manager.is_authenticated()
    assert await manager.initialize("forged") is False

    assert await manager.set_token("good")
    assert manager.is_authenticated()


async def test_rejected_token_falls_back_to_verified_refresh(engine):
    async def verify(token):
        return token.startswith("fresh")

    async def refresh(refresh_token):
        return f"fresh-{refresh_token}"

    manager = BusinessClientManager(engine, token_verifier=verify, token_refresher=refresh)

    assert await manager.set_token("stale", refresh_token="r1")
    assert manager.get_client().access_token == "fresh-r1"


async def test_failing_verifier_counts_as_rejection(engine):
    async def verify(token):
        raise RuntimeError("identity provider down")

    manager = BusinessClientManager(engine, token_verifier=verify)

    assert await manager.set_token("token") is False


async def test_initialize_is_idempotent(engine):
    manager = BusinessClientManager(engine)

    assert await manager.initialize("token")
    assert await manager.initialize("other")
    assert manager.is_authenticated()


async def test_clear_auth_drops_session(manager):
    manager.clear_auth()

    assert not manager.is_authenticated()
    with pytest.raises(ClientNotInitializedError):
        manager.get_client()


async def test_filters_and_ordering(manager, seed):
    await seed("projects", title="Python API", client_company="ACME", skills=["Python", "AWS"])
    await seed("projects", title="Go batch", client_company="Globex", skills=["Go"])
    await seed("projects", title="Legacy", client_company=None, is_active=False)
    await seed("projects", title="Other tenant", tenant_id="tenant-2")

    client = manager.get_client()
    active = await (
        client.table("projects")
        .select("title")
        .eq("tenant_id", TENANT)
        .eq("is_active", True)
        .order("title")
        .execute()
    )
    assert [r["title"] for r in active.data] == ["Go batch", "Python API"]

    by_skill = await client.table("projects").select("title").overlaps("skills", ["AWS", "Rust"]).execute()
    assert [r["title"] for r in by_skill.data] == ["Python API"]

    by_text = await client.table("projects").select("title").or_("title.ilike.%python%,client_company.eq.Globex").order("title").execute()
    assert [r["title"] for r in by_text.data] == ["Go batch", "Python API"]

    no_company = await client.table("projects").select("title").is_("client_company", None).order("title").execute()
    assert [r["title"] for r in no_company.data] == ["Legacy", "Other tenant"]

    in_tenants = await client.table("projects").select("id").in_("tenant_id", [TENANT, "tenant-2"]).execute()
    assert in_tenants.count == 4


async def test_overlaps_matches_elements_exactly(manager, seed):
    await seed("projects", title="Python", skills=["Python"])
    await seed("projects", title="Underscore", skills=["a_b"])
    await seed("projects", title="Wildcard bait", skills=["axb", "100%"])
    client = manager.get_client()

    lower = await client.table("projects").select("title").overlaps("skills", ["python"]).execute()
    assert lower.data == []

    underscore = await client.table("projects").select("title").overlaps("skills", ["a_b"]).execute()
    assert [r["title"] for r in underscore.data] == ["Underscore"]

    percent = await client.table("projects").select("title").overlaps("skills", ["%"]).execute()
    assert percent.data == []


async def test_negated_filters_and_maybe_single(manager, seed):
    await seed("projects", title="Python API", client_company="ACME")
    await seed("projects", title="Legacy", client_company=None)
    client = manager.get_client()

    with_company = await client.table("projects").select("title").not_is("client_company", None).execute()
    assert [r["title"] for r in with_company.data] == ["Python API"]

    not_acme = await client.table("projects").select("title").neq("title", "Python API").execute()
    assert [r["title"] for r in not_acme.data] == ["Legacy"]

    missing = await client.table("projects").select("*").eq("title", "nope").maybe_single().execute()
    assert missing.data is None
    assert missing.count == 0

    found = await client.table("projects").select("title").eq("title", "Legacy").maybe_single().execute()
    assert found.data == {"title": "Legacy"}


async def test_single_requires_exactly_one_row(manager):
    with pytest.raises(QueryError) as exc_info:
        await manager.get_client().table("projects").select("*").eq("id", "missing").single().execute()
    assert exc_info.value.code == "PGRST116"

    result = await manager.get_client().table("projects").select("*").eq("id", "missing").maybe_single().execute()
    assert result.data is None


async def test_unknown_names_are_query_errors(manager):
    client = manager.get_client()

    with pytest.raises(QueryError) as table_error:
        client.table("nope")
    assert table_error.value.code == "42P01"

    with pytest.raises(QueryError) as column_error:
        client.table("projects").select("*").eq("nope", 1)
    assert column_error.value.code == "42703"

    with pytest.raises(QueryError) as insert_error:
        client.table("projects").insert({"title": "x", "nope": 1})
    assert insert_error.value.code == "PGRST204"


async def test_update_and_delete_return_affected_rows(manager, seed):
    project = await seed("projects", title="Before")
    client = manager.get_client()

    updated = await client.table("projects").update({"title": "After"}).eq("id", project["id"]).execute()
    assert updated.data[0]["title"] == "After"

    deleted = await client.table("projects").delete().eq("id", project["id"]).execute()
    assert deleted.count == 1
    remaining = await client.table("projects").select("id").execute()
    assert remaining.data == []


async def test_execute_with_retry_without_refresher_passes_errors_through(manager):
    async def expired():
        raise SessionExpiredError()

    with pytest.raises(SessionExpiredError):
        await manager.execute_with_retry(expired)


async def test_execute_with_retry_refreshes_once(engine):
    refreshed = []

    async def refresher(refresh_token):
        refreshed.append(refresh_token)
        return "new-token"

    manager = BusinessClientManager(engine, token_refresher=refresher)
    assert await manager.set_token("old-token", "refresh-1")

    calls = []

    async def query():
        calls.append(manager.get_client().access_token)
        if len(calls) == 1:
            raise SessionExpiredError()
        return "ok"

    assert await manager.execute_with_retry(query) == "ok"
    assert refreshed == ["refresh-1"]
    assert calls == ["old-token", "new-token"]


async def test_execute_with_retry_gives_up_after_failed_refresh(engine):
    async def refresher(refresh_token):
        return None

    manager = BusinessClientManager(engine, token_refresher=refresher)
    assert await manager.set_token("token", "refresh-1")

    async def expired():
        raise SessionExpiredError()

    with pytest.raises(AuthenticationError, match="ログインし直してください"):
        await manager.execute_with_retry(expired)


async def test_execute_with_retry_does_not_retry_other_errors(engine):
    async def refresher(refresh_token):
        return "new-token"

    manager = BusinessClientManager(engine, token_refresher=refresher)
    assert await manager.set_token("token", "refresh-1")
    calls = []

    async def broken():
        calls.append(1)
        raise QueryError("boom")

    with pytest.raises(QueryError, match="boom"):
        await manager.execute_with_retry(broken)
    assert calls == [1]
