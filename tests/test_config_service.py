import httpx
import pytest

from staffing.services import ConfigService, ConfigServiceError
from staffing.services.config_service import RUNTIME_ENV


def counting_transport(payload, status_code=200):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler), calls


async def test_frontend_env_is_cached():
    transport, calls = counting_transport({"success": True, "data": {"API_URL": "http://x"}, "count": 1})
    service = ConfigService("http://backend", "secret", cache_seconds=300, transport=transport)

    assert await service.get_frontend_env() == {"API_URL": "http://x"}
    assert await service.get_frontend_env() == {"API_URL": "http://x"}
    assert len(calls) == 1
    assert calls[0].headers["X-API-Key"] == "secret"
    assert service.get_cached_env() == {"API_URL": "http://x"}

    service.clear_cache()
    assert service.get_cached_env() is None
    await service.get_frontend_env()
    assert len(calls) == 2


async def test_returned_env_does_not_alias_cache():
    transport, calls = counting_transport({"success": True, "data": {"API_URL": "http://x"}})
    service = ConfigService("http://backend", "secret", cache_seconds=300, transport=transport)

    fetched = await service.get_frontend_env()
    fetched["API_URL"] = "http://changed"
    cached = await service.get_frontend_env()
    cached.clear()

    assert await service.get_frontend_env() == {"API_URL": "http://x"}
    assert len(calls) == 1


async def test_zero_cache_always_refetches():
    transport, calls = counting_transport({"success": True, "data": {}})
    service = ConfigService("http://backend", "secret", cache_seconds=0, transport=transport)

    await service.get_frontend_env()
    await service.get_frontend_env()

    assert len(calls) == 2


async def test_unsuccessful_response_raises():
    transport, _ = counting_transport({"success": False, "message": "no env"})
    service = ConfigService("http://backend", "secret", transport=transport)

    with pytest.raises(ConfigServiceError, match="no env"):
        await service.get_frontend_env()


async def test_http_error_raises():
    transport, _ = counting_transport({}, status_code=500)
    service = ConfigService("http://backend", "secret", transport=transport)

    with pytest.raises(ConfigServiceError):
        await service.get_frontend_env()


async def test_health_never_raises():
    transport, _ = counting_transport({}, status_code=503)
    service = ConfigService("http://backend", "secret", transport=transport)

    health = await service.check_health()

    assert health["status"] == "error"
    assert health["missing_critical_vars"] == []


async def test_health_passes_backend_result_through():
    payload = {"status": "healthy", "missing_critical_vars": ["SMTP_HOST"]}
    transport, _ = counting_transport(payload)

    assert await ConfigService("http://backend", "secret", transport=transport).check_health() == payload


def test_apply_env_skips_blank_values():
    service = ConfigService("http://backend", "secret")

    applied = service.apply_env_to_runtime({"A": "1", "B": " ", "C": ""})

    assert applied == 1
    assert RUNTIME_ENV["A"] == "1"
    assert "B" not in RUNTIME_ENV


def test_set_base_url_clears_cache():
    service = ConfigService("http://backend", "secret")
    service._cache = {"A": "1"}
    service._cache_expiry = float("inf")

    service.set_base_url("http://other/")

    assert service.base_url == "http://other"
    assert service.get_cached_env() is None
