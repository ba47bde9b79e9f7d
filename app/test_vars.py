import importlib

import app.vars as vars_module


def _reload_with(monkeypatch, **env):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return importlib.reload(vars_module)


def test_defaults(monkeypatch):
    for key in ("PORT", "PROXY_TIMEOUT", "BASE_PATH", "CORS_ALLOW_ORIGINS"):
        monkeypatch.delenv(key, raising=False)
    try:
        module = importlib.reload(vars_module)
        assert module.PORT == 4006
        assert module.PROXY_TIMEOUT == 20.0
        assert module.BASE_PATH == ""
        assert module.CORS_ALLOW_ORIGINS == ["*"]
        assert module.FALLBACK_MAX_TIMEOUT_MS == 60000
    finally:
        monkeypatch.undo()
        importlib.reload(vars_module)


def test_env_overrides(monkeypatch):
    try:
        module = _reload_with(
            monkeypatch,
            PORT="8080",
            PROXY_TIMEOUT="2.5",
            BASE_PATH="/rp/",
            PUBLIC_URL="https://proxy.example.com/",
            CORS_ALLOW_ORIGINS="https://a.test, https://b.test,",
        )
        assert module.PORT == 8080
        assert module.PROXY_TIMEOUT == 2.5
        assert module.BASE_PATH == "/rp"
        assert module.PUBLIC_URL == "https://proxy.example.com"
        assert module.CORS_ALLOW_ORIGINS == ["https://a.test", "https://b.test"]
    finally:
        monkeypatch.undo()
        importlib.reload(vars_module)
