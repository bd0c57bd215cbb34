from dataclasses import dataclass, field, is_dataclass, replace
import json
from pathlib import Path
import sys
import tomllib
from typing import Any, TypeVar

import keyring
from keyring.errors import KeyringError
from loguru import logger

# --- Constants ---
APP_NAME = "cryptoglance"
# Use a platform-agnostic user config directory
if sys.platform == "win32":
    CONFIG_DIR = Path.home() / "AppData" / "Roaming" / APP_NAME
else:
    CONFIG_DIR = Path.home() / ".config" / APP_NAME

CONFIG_FILE = CONFIG_DIR / "config.toml"

# --- Keyring Service Name ---
KEYRING_SERVICE_NAME = f"{APP_NAME}-api-keys"
KEYRING_API_KEY_NAME = "cryptocompare_key"

DEFAULT_REFRESH_INTERVAL_MS = 30_000

# Presets offered by the settings panel.
REFRESH_INTERVAL_PRESETS_MS: tuple[int, ...] = (10_000, 30_000, 60_000, 300_000)

T = TypeVar("T")


# --- Dataclass Models for Settings ---


@dataclass(frozen=True)
class PollConfig:
    """How often current prices are refreshed.

    When auto refresh is disabled no recurring timer exists at all.
    """

    auto_refresh_enabled: bool = False
    refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS

    def __post_init__(self) -> None:
        if (
            isinstance(self.refresh_interval_ms, bool)
            or not isinstance(self.refresh_interval_ms, int)
            or self.refresh_interval_ms <= 0
        ):
            err_msg = (
                "refresh_interval_ms must be a positive integer, "
                f"got {self.refresh_interval_ms!r}."
            )
            raise ValueError(err_msg)

    @property
    def refresh_interval_s(self) -> float:
        return self.refresh_interval_ms / 1000


@dataclass
class GeneralSettings:
    """General application settings."""

    log_level_console: str = "INFO"
    log_level_file: str = "DEBUG"
    log_directory: str = str(CONFIG_DIR / "logs")


@dataclass
class APISettings:
    """Settings for the CryptoCompare API."""

    # Note: the optional API key is stored in the system keyring, not here.
    base_url: str = "https://min-api.cryptocompare.com"
    timeout_s: float = 20.0
    max_attempts: int = 3
    base_delay_ms: int = 1000
    pacing_delay_ms: int = 500


@dataclass
class TrackerSettings:
    """The selection the tracker starts with."""

    currency: str = "USD"
    assets: list[str] = field(default_factory=lambda: ["BTC"])
    lookback_period: str = "7"


@dataclass
class Settings:
    """Root container for all application settings."""

    general: GeneralSettings = field(default_factory=GeneralSettings)
    api: APISettings = field(default_factory=APISettings)
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    polling: PollConfig = field(default_factory=PollConfig)


def _update_dataclass(dc_instance: T, data: dict[str, Any]) -> T:
    """Recursively updates a mutable dataclass instance from a dictionary."""
    for f in field_names(dc_instance):
        if f in data:
            field_value = getattr(dc_instance, f)
            if is_dataclass(field_value) and isinstance(data[f], dict):
                if isinstance(field_value, PollConfig):
                    setattr(dc_instance, f, _poll_config_from_dict(data[f]))
                else:
                    _update_dataclass(field_value, data[f])
            else:
                setattr(dc_instance, f, data[f])
    return dc_instance


def _poll_config_from_dict(data: dict[str, Any]) -> PollConfig:
    known = {k: v for k, v in data.items() if k in field_names(PollConfig())}
    return replace(PollConfig(), **known)


def field_names(dc_instance: Any) -> list[str]:
    """Helper to get field names from a dataclass instance."""
    return [f.name for f in dc_instance.__dataclass_fields__.values()]


def load_config(path: Path = CONFIG_FILE) -> Settings:
    """Loads settings from a TOML file, merging them with defaults.

    If the config file does not exist, it creates one with default values.

    Args:
        path: The path to the configuration file.

    Returns:
        A populated Settings object.
    """
    settings_obj = Settings()
    logger.info(f"Loading configuration from '{path}'...")

    if not path.exists():
        logger.warning(f"Configuration file not found. Creating default at '{path}'.")
        try:
            save_config(settings_obj, path)
        except OSError as e:
            logger.error(f"Failed to create default config file: {e}")
        return settings_obj

    try:
        with path.open("rb") as f:
            user_config = tomllib.load(f)
        _update_dataclass(settings_obj, user_config)
        logger.success("Successfully loaded user configuration.")
    except tomllib.TOMLDecodeError as e:
        logger.error(f"Error decoding TOML from '{path}': {e}")
        logger.warning("Using default settings due to configuration error.")
        settings_obj = Settings()
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid value in configuration '{path}': {e}")
        logger.warning("Using default settings due to configuration error.")
        settings_obj = Settings()

    return settings_obj


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    # JSON string escapes are a subset of TOML basic-string escapes; TOML
    # additionally forbids a raw DEL character.
    return json.dumps(str(value), ensure_ascii=False).replace("\x7f", "\\u007f")


def save_config(settings_obj: Settings, path: Path = CONFIG_FILE) -> None:
    """Writes every settings section to a TOML file.

    Raises:
        OSError: If the file cannot be written.
    """
    lines = ["# cryptoglance configuration file", ""]
    for section in field_names(settings_obj):
        section_obj = getattr(settings_obj, section)
        lines.append(f"[{section}]")
        for key in field_names(section_obj):
            lines.append(f"{key} = {_toml_value(getattr(section_obj, key))}")
        lines.append("")

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write("\n".join(lines))
    logger.debug(f"Configuration written to '{path}'.")


class ConfigStore:
    """Holds the active settings and persists polling changes across sessions.

    The polling coordinator never reads this directly; callers pass
    `store.poll_config` into it whenever it changes.
    """

    def __init__(
        self, path: Path = CONFIG_FILE, settings_obj: Settings | None = None
    ) -> None:
        self.path = path
        self.settings = settings_obj if settings_obj is not None else load_config(path)

    @property
    def poll_config(self) -> PollConfig:
        return self.settings.polling

    def update_poll(
        self,
        auto_refresh_enabled: bool | None = None,
        refresh_interval_ms: int | None = None,
    ) -> PollConfig:
        """Applies a partial polling update, saves it and returns the new config."""
        changes: dict[str, Any] = {}
        if auto_refresh_enabled is not None:
            changes["auto_refresh_enabled"] = auto_refresh_enabled
        if refresh_interval_ms is not None:
            changes["refresh_interval_ms"] = refresh_interval_ms
        new_config = replace(self.settings.polling, **changes)
        self.settings.polling = new_config
        try:
            save_config(self.settings, self.path)
        except OSError as e:
            logger.error(f"Failed to save configuration to '{self.path}': {e}")
        return new_config


# --- Keyring Management ---


def get_api_key() -> str | None:
    """Retrieves the optional CryptoCompare API key from the system keyring."""
    try:
        api_key = keyring.get_password(KEYRING_SERVICE_NAME, KEYRING_API_KEY_NAME)
        if api_key:
            logger.debug("Retrieved CryptoCompare API key from keyring.")
        return api_key
    except KeyringError as e:
        logger.error(f"Could not retrieve API key from keyring: {e}")
        return None


def set_api_key(api_key: str) -> None:
    """Stores the CryptoCompare API key in the system keyring."""
    try:
        keyring.set_password(KEYRING_SERVICE_NAME, KEYRING_API_KEY_NAME, api_key)
        logger.info("Successfully stored CryptoCompare API key in keyring.")
    except KeyringError as e:
        logger.error(f"Could not store API key in keyring: {e}")
