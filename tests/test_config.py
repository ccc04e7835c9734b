from __future__ import annotations

import pytest

from multiask.config import (
    BACKEND_URL_ENV,
    DEFAULT_BACKEND_URL,
    ClientSettings,
    ConfigManager,
    load_client_settings,
    save_backend_url,
)
from multiask.services.backend_client import BackendClient


@pytest.fixture()
def config_manager(tmp_path, monkeypatch) -> ConfigManager:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    return ConfigManager(app_name="MultiAskTest", filename="client.json")


def test_defaults_when_nothing_is_stored(config_manager) -> None:
    settings = load_client_settings(config_manager, environ={})

    assert settings == ClientSettings()
    assert settings.backend_url == DEFAULT_BACKEND_URL


def test_stored_values_are_loaded(config_manager) -> None:
    config_manager.save(
        {
            "client": {
                "backend_url": "http://answers.local:8080/",
                "timeout": 12,
                "max_retries": 4,
                "retry_backoff": 0.25,
            }
        }
    )

    settings = load_client_settings(config_manager, environ={})

    assert settings.as_dict() == {
        "backend_url": "http://answers.local:8080",
        "timeout": 12.0,
        "max_retries": 4,
        "retry_backoff": 0.25,
    }


def test_environment_overrides_stored_url(config_manager) -> None:
    config_manager.save({"client": {"backend_url": "http://stored.local"}})

    settings = load_client_settings(
        config_manager, environ={BACKEND_URL_ENV: "http://env.local:9000"}
    )

    assert settings.backend_url == "http://env.local:9000"


def test_invalid_values_fall_back_to_defaults(config_manager) -> None:
    config_manager.save(
        {"client": {"timeout": "soon", "max_retries": True, "retry_backoff": -1}}
    )

    settings = load_client_settings(config_manager, environ={})

    assert settings.timeout == 60.0
    assert settings.max_retries == 2
    assert settings.retry_backoff == 0.5


def test_saved_backend_url_is_merged_into_client_section(config_manager) -> None:
    config_manager.save({"client": {"timeout": 12}, "other": {"keep": True}})

    stored = save_backend_url(config_manager, " http://saved.local:7000/ ")

    assert stored == "http://saved.local:7000"
    assert config_manager.load() == {
        "client": {"backend_url": "http://saved.local:7000", "timeout": 12},
        "other": {"keep": True},
    }
    settings = load_client_settings(config_manager, environ={})
    assert settings.backend_url == "http://saved.local:7000"
    assert settings.timeout == 12.0


def test_empty_backend_url_is_not_saved(config_manager) -> None:
    with pytest.raises(ValueError):
        save_backend_url(config_manager, "  / ")

    assert not config_manager.config_path.exists()


def test_non_object_config_file_is_rejected(config_manager) -> None:
    config_manager.config_path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        config_manager.load()


def test_client_built_from_settings() -> None:
    settings = ClientSettings(backend_url="http://x.local", timeout=5.0, max_retries=0)

    client = BackendClient.from_settings(settings)

    assert client.base_url == "http://x.local"
    assert client.timeout == 5.0
    assert client.max_retries == 0
