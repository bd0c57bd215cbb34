from pathlib import Path

import pytest
from keyring.errors import KeyringError
from pytest_mock import MockerFixture

from cryptoglance import config
from cryptoglance.config import (
    DEFAULT_REFRESH_INTERVAL_MS,
    ConfigStore,
    PollConfig,
    Settings,
    load_config,
    save_config,
)


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "cryptoglance" / "config.toml"


def test_poll_config_defaults() -> None:
    poll = PollConfig()
    assert poll.auto_refresh_enabled is False
    assert poll.refresh_interval_ms == DEFAULT_REFRESH_INTERVAL_MS
    assert poll.refresh_interval_s == 30.0


@pytest.mark.parametrize("interval", [0, -1000, 1.5, True])
def test_poll_config_rejects_invalid_intervals(interval: object) -> None:
    with pytest.raises(ValueError, match="refresh_interval_ms"):
        PollConfig(refresh_interval_ms=interval)  # type: ignore[arg-type]


def test_missing_file_is_created_with_defaults(config_path: Path) -> None:
    settings = load_config(config_path)

    assert settings == Settings()
    assert config_path.exists()
    assert "[polling]" in config_path.read_text(encoding="utf-8")


def test_saved_settings_load_back(config_path: Path) -> None:
    settings = Settings()
    settings.tracker.currency = "BDT"
    settings.tracker.assets = ["BTC", "SOL"]
    settings.polling = PollConfig(auto_refresh_enabled=True, refresh_interval_ms=10_000)
    settings.general.log_directory = 'C:\\logs\\"quoted"'
    save_config(settings, config_path)

    loaded = load_config(config_path)

    assert loaded == settings


def test_control_characters_survive_a_save(config_path: Path) -> None:
    settings = Settings()
    settings.general.log_directory = "logs\nnext\tline\x7f\x01 \u20ac"
    save_config(settings, config_path)

    loaded = load_config(config_path)

    assert loaded.general.log_directory == settings.general.log_directory


def test_partial_file_merges_with_defaults(config_path: Path) -> None:
    config_path.parent.mkdir(parents=True)
    config_path.write_text(
        '[tracker]\ncurrency = "EUR"\n\n[polling]\nauto_refresh_enabled = true\n',
        encoding="utf-8",
    )

    settings = load_config(config_path)

    assert settings.tracker.currency == "EUR"
    assert settings.tracker.assets == ["BTC"]
    assert settings.polling == PollConfig(auto_refresh_enabled=True)
    assert settings.api.max_attempts == 3


def test_invalid_toml_falls_back_to_defaults(config_path: Path) -> None:
    config_path.parent.mkdir(parents=True)
    config_path.write_text("[polling\nnot toml", encoding="utf-8")

    assert load_config(config_path) == Settings()


def test_invalid_interval_falls_back_to_defaults(config_path: Path) -> None:
    config_path.parent.mkdir(parents=True)
    config_path.write_text("[polling]\nrefresh_interval_ms = -5\n", encoding="utf-8")

    assert load_config(config_path).polling == PollConfig()


def test_update_poll_persists_across_sessions(config_path: Path) -> None:
    store = ConfigStore(config_path)

    new_config = store.update_poll(auto_refresh_enabled=True)
    assert new_config == PollConfig(auto_refresh_enabled=True)
    store.update_poll(refresh_interval_ms=60_000)

    reopened = ConfigStore(config_path)
    assert reopened.poll_config == PollConfig(
        auto_refresh_enabled=True, refresh_interval_ms=60_000
    )


def test_update_poll_rejects_invalid_interval(config_path: Path) -> None:
    store = ConfigStore(config_path)

    with pytest.raises(ValueError, match="refresh_interval_ms"):
        store.update_poll(refresh_interval_ms=0)
    assert store.poll_config == PollConfig()


def test_get_api_key_reads_keyring(mocker: MockerFixture) -> None:
    get_password = mocker.patch.object(
        config.keyring, "get_password", return_value="abc123"
    )

    assert config.get_api_key() == "abc123"
    get_password.assert_called_once_with(
        config.KEYRING_SERVICE_NAME, config.KEYRING_API_KEY_NAME
    )


def test_get_api_key_survives_keyring_errors(mocker: MockerFixture) -> None:
    mocker.patch.object(
        config.keyring, "get_password", side_effect=KeyringError("no backend")
    )

    assert config.get_api_key() is None


def test_set_api_key_writes_keyring(mocker: MockerFixture) -> None:
    set_password = mocker.patch.object(config.keyring, "set_password")

    config.set_api_key("abc123")

    set_password.assert_called_once_with(
        config.KEYRING_SERVICE_NAME, config.KEYRING_API_KEY_NAME, "abc123"
    )
