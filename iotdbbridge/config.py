"""Configuration loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from pydantic import BaseModel, Field

from .connections import IoTDBSessionFactory
from .session import SessionRegistry

CONFIG_FILE = Path.home() / ".config" / "iotdbbridge" / "config.toml"

DEFAULT_SCHEMA = "root"
DEFAULT_FETCH_SIZE = 1024


class ConnectionProfileConfig(BaseModel):
    """Connection profile stored in config.toml."""

    name: str
    uri: str
    account: str = "root"
    password: str | None = None


class BridgeConfig(BaseModel):
    """Shape of the configuration file."""

    store_enabled: bool = True
    default_schema: str = DEFAULT_SCHEMA
    fetch_size: int = DEFAULT_FETCH_SIZE
    zone_id: str | None = None
    enable_rpc_compression: bool = False
    profiles: list[ConnectionProfileConfig] = Field(default_factory=lambda: list(_default_profiles()))
    active_profile: str | None = None

    def profile(self, name: str | None = None) -> ConnectionProfileConfig:
        """Look up a profile by name, defaulting to the active (or first) one."""

        target = name or self.active_profile
        if target is None:
            if not self.profiles:
                raise ValueError("No connection profiles configured")
            return self.profiles[0]
        for profile in self.profiles:
            if profile.name == target:
                return profile
        raise ValueError(f"Profile '{target}' not found")

    def with_active_profile(self, name: str) -> BridgeConfig:
        """Return a copy with the active profile updated."""

        return self.model_copy(update={"active_profile": name})


def build_registry(config: BridgeConfig) -> SessionRegistry:
    """Create a registry whose sessions follow the client settings in ``config``."""

    factory = IoTDBSessionFactory(
        fetch_size=config.fetch_size,
        zone_id=config.zone_id,
        enable_rpc_compression=config.enable_rpc_compression,
    )
    return SessionRegistry(factory)


def load_config() -> BridgeConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return BridgeConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return BridgeConfig()

    profiles = data.pop("profiles", None)
    if profiles is None:
        return BridgeConfig(**data)
    return BridgeConfig(profiles=profiles, **data)


def save_config(config: BridgeConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f"store_enabled = {str(config.store_enabled).lower()}",
        f"default_schema = {_quote(config.default_schema)}",
        f"fetch_size = {config.fetch_size}",
        f"enable_rpc_compression = {str(config.enable_rpc_compression).lower()}",
    ]
    if config.zone_id:
        lines.append(f"zone_id = {_quote(config.zone_id)}")
    if config.active_profile:
        lines.append(f"active_profile = {_quote(config.active_profile)}")
    if config.profiles:
        lines.append("")
        for profile in config.profiles:
            lines.append("[[profiles]]")
            lines.append(f"name = {_quote(profile.name)}")
            lines.append(f"uri = {_quote(profile.uri)}")
            lines.append(f"account = {_quote(profile.account)}")
            if profile.password is not None:
                lines.append(f"password = {_quote(profile.password)}")
            lines.append("")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _quote(value: str) -> str:
    """Render ``value`` as a TOML basic string."""

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    for key in ("store_enabled", "enable_rpc_compression"):
        value = raw.get(key)
        if isinstance(value, bool):
            data[key] = value
    for key in ("default_schema", "zone_id", "active_profile"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    fetch_size = raw.get("fetch_size")
    if isinstance(fetch_size, int) and not isinstance(fetch_size, bool) and fetch_size > 0:
        data["fetch_size"] = fetch_size
    profiles = raw.get("profiles")
    if isinstance(profiles, list):
        parsed_profiles: list[ConnectionProfileConfig] = []
        for profile in profiles:
            if not isinstance(profile, dict):
                continue
            parsed: dict[str, str] = {}
            for key in ("name", "uri", "account", "password"):
                value = profile.get(key)
                if isinstance(value, str):
                    parsed[key] = value
            if parsed.get("name") and parsed.get("uri"):
                parsed_profiles.append(ConnectionProfileConfig(**parsed))
        if parsed_profiles:
            data["profiles"] = parsed_profiles
    return data


def _default_profiles() -> tuple[ConnectionProfileConfig, ...]:
    """Profile used before the config file is customized."""

    return (
        ConnectionProfileConfig(
            name="Local IoTDB",
            uri="iotdb://127.0.0.1:6667",
            account="root",
            password="root",
        ),
    )
