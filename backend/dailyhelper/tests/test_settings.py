import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from dailyhelper.settings import DEV_SECRET, JwtSettings, PasswordPolicy, Settings, load_settings

_BOUND = ("SETTINGS_FILE", "DEV_MODE", "ALLOWED_ORIGINS", "LOG_LEVEL", "LOG_FILE",
          "JWT__SECRET", "JWT__TOKEN_LIFETIME_MINUTES", "DB__CONNECTION_STRING", "DB__ECHO")


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Clean process environment, run from an empty dir so no .env is picked up."""
    for name in _BOUND:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def _write(tmp_path, data) -> str:
    cfg = tmp_path / "appsettings.json"
    cfg.write_text(json.dumps(data))
    return str(cfg)


def test_defaults_require_token_expiry(env):
    s = load_settings()
    assert s.jwt.require_expiration is True
    assert s.jwt.validate_lifetime is True
    assert s.ALLOWED_ORIGINS == ["*"]
    assert s.password.require_non_alphanumeric is False
    assert s.db.connection_string == "sqlite:///./storage/dailyhelper.db"


def test_sections_bound_from_json_file(env, tmp_path):
    env.setenv("SETTINGS_FILE", _write(tmp_path, {
        "JwtSettings": {"Secret": "s" * 40, "TokenLifetimeMinutes": 15},
        "DbSettings": {"ConnectionString": "sqlite:///./other.db"},
        "PasswordPolicy": {"RequireNonAlphanumeric": True},
    }))
    s = load_settings()
    assert s.jwt.secret == "s" * 40
    assert s.jwt.token_lifetime_minutes == 15
    assert s.db.connection_string == "sqlite:///./other.db"
    assert s.password.require_non_alphanumeric is True


def test_env_overrides_file(env, tmp_path):
    env.setenv("SETTINGS_FILE", _write(tmp_path, {
        "JwtSettings": {"Secret": "f" * 40, "TokenLifetimeMinutes": 15},
        "DbSettings": {"ConnectionString": "sqlite:///./file.db"},
    }))
    env.setenv("DB__CONNECTION_STRING", "sqlite:///./env.db")
    env.setenv("JWT__TOKEN_LIFETIME_MINUTES", "30")
    env.setenv("ALLOWED_ORIGINS", "http://a.test, http://b.test")
    env.setenv("LOG_LEVEL", "debug")
    s = load_settings()
    assert s.db.connection_string == "sqlite:///./env.db"
    # untouched keys of the same section still come from the file
    assert s.jwt.secret == "f" * 40
    assert s.jwt.token_lifetime_minutes == 30
    assert s.ALLOWED_ORIGINS == ["http://a.test", "http://b.test"]
    assert s.LOG_LEVEL == "DEBUG"


def test_null_section_in_file_falls_back_to_defaults_and_env(env, tmp_path):
    env.setenv("SETTINGS_FILE", _write(tmp_path, {"JwtSettings": None, "DbSettings": None}))
    assert load_settings().jwt.secret == DEV_SECRET

    env.setenv("JWT__SECRET", "e" * 40)
    s = load_settings()
    assert s.jwt.secret == "e" * 40
    assert s.db.connection_string == "sqlite:///./storage/dailyhelper.db"


def test_missing_settings_file_is_reported(env, tmp_path):
    env.setenv("SETTINGS_FILE", str(tmp_path / "nope.json"))
    with pytest.raises(FileNotFoundError):
        load_settings()


def test_settings_are_immutable(env):
    s = load_settings()
    with pytest.raises(PydanticValidationError):
        s.jwt.secret = "changed"  # type: ignore[misc]
    with pytest.raises(PydanticValidationError):
        s.DEV_MODE = False  # type: ignore[misc]


def test_production_rejects_weak_secret(env):
    env.setenv("DEV_MODE", "false")
    env.setenv("JWT__SECRET", "short")
    with pytest.raises(PydanticValidationError):
        load_settings()
    with pytest.raises(PydanticValidationError):
        Settings(DEV_MODE=False, jwt=JwtSettings(secret=DEV_SECRET))
    env.setenv("JWT__SECRET", "k" * 32)
    ok = load_settings()
    assert ok.DEV_MODE is False


def test_required_expiry_needs_a_lifetime():
    with pytest.raises(PydanticValidationError):
        JwtSettings(token_lifetime_minutes=0)
    legacy = JwtSettings(token_lifetime_minutes=0, require_expiration=False)
    assert legacy.token_lifetime_minutes == 0


def test_password_policy_relaxes_symbols_only():
    policy = PasswordPolicy()
    assert policy.violations("Passw0rd") == []
    assert policy.violations("Pa$$w0rd!") == []
    problems = policy.violations("abc")
    assert len(problems) == 3  # length, digit, uppercase
