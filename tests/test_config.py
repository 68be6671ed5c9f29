import importlib

from auctions_service import config


def _reloaded(monkeypatch, **env):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    try:
        return importlib.reload(config).Config
    finally:
        for key in env:
            monkeypatch.delenv(key)
        importlib.reload(config)


def test_session_secret_comes_from_secret_key(monkeypatch):
    monkeypatch.delenv("FLASK_SECRET", raising=False)
    cfg = _reloaded(monkeypatch, SECRET_KEY="rotated-session-secret")
    assert cfg.SECRET_KEY == "rotated-session-secret"


def test_env_flags_and_numbers(monkeypatch):
    cfg = _reloaded(monkeypatch, SWEEPER_ENABLED="off", BID_CAS_RETRIES="5", NOTIFY_ASYNC="yes")
    assert cfg.SWEEPER_ENABLED is False
    assert cfg.NOTIFY_ASYNC is True
    assert cfg.BID_CAS_RETRIES == 5
