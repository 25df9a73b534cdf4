"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from workflow_engine.config import EngineSettings

_ENV_VARS = (
    "WORKFLOW_DATA_ROOT",
    "WORKFLOW_CLIENT_STATE_PATH",
    "WORKFLOW_ENV",
    "WORKFLOW_CACHE_POLICY",
    "WORKFLOW_CACHE_TTL_SECONDS",
    "WORKFLOW_ALLOW_REGION_FALLBACK",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_settings_defaults() -> None:
    settings = EngineSettings()

    assert settings.data_root == Path("data")
    assert settings.client_state_path == Path("data/client_state")
    assert settings.environment == "development"
    assert settings.cache_policy == "none"
    assert settings.cache_ttl_seconds == 300.0
    assert settings.allow_region_fallback is False
    assert settings.workflows_dir == Path("data/workflows")
    assert settings.tasks_dir == Path("data/tasks")


def test_production_defaults_to_mtime_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKFLOW_ENV", "production")

    assert EngineSettings().cache_policy == "mtime"


def test_explicit_cache_policy_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKFLOW_ENV", "production")
    monkeypatch.setenv("WORKFLOW_CACHE_POLICY", "none")

    assert EngineSettings().cache_policy == "none"


def test_settings_loads_from_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "WORKFLOW_DATA_ROOT=/srv/definitions",
                "WORKFLOW_ALLOW_REGION_FALLBACK=true",
                "LOG_LEVEL=DEBUG",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = EngineSettings()

    assert settings.data_root == Path("/srv/definitions")
    assert settings.allow_region_fallback is True
    assert settings.log_level == "DEBUG"


def test_invalid_environment_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKFLOW_ENV", "staging")

    with pytest.raises(ValueError):
        EngineSettings()
