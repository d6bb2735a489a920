from gateway.config import DEFAULT_REGION, DEFAULT_USER_AGENT, GatewaySettings


def test_defaults():
    settings = GatewaySettings.from_env()
    assert settings.fetch_timeout_ms == 30_000
    assert settings.resource_timeout_ms == 15_000
    assert settings.cache_max_entries == 500
    assert settings.cache_ttl_seconds == 300
    assert settings.default_region == DEFAULT_REGION == "United States"
    assert settings.user_agent == DEFAULT_USER_AGENT
    assert settings.resource_path == "/api/proxy/resource"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("GATEWAY_FETCH_TIMEOUT_MS", "5000")
    monkeypatch.setenv("GATEWAY_CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("GATEWAY_DEFAULT_REGION", "Germany")
    monkeypatch.setenv("GATEWAY_USER_AGENT", "Custom/1.0")

    settings = GatewaySettings.from_env()

    assert settings.fetch_timeout_ms == 5000
    assert settings.cache_ttl_seconds == 60
    assert settings.default_region == "Germany"
    assert settings.user_agent == "Custom/1.0"


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("GATEWAY_FETCH_TIMEOUT_MS", "soon")
    monkeypatch.setenv("GATEWAY_CACHE_MAX_ENTRIES", "-5")
    monkeypatch.setenv("GATEWAY_RESOURCE_TIMEOUT_MS", "  ")

    settings = GatewaySettings.from_env()

    assert settings.fetch_timeout_ms == 30_000
    assert settings.cache_max_entries == 500
    assert settings.resource_timeout_ms == 15_000
