"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

CONFIG_FILE_NAME = "hello_mcp.toml"
DEFAULT_SERVER_NAME = "test-server"
DEFAULT_SERVER_VERSION = "1.0.0"
DEFAULT_MAX_MESSAGE_BYTES = 256 * 1024
MAX_MESSAGE_BYTES_CAP = 16 * 1024 * 1024


@dataclass(slots=True, frozen=True)
class ServerLimits:
    """Per-message size limits."""

    max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES


@dataclass(slots=True, frozen=True)
class ServerConfig:
    """Fully merged server configuration."""

    workdir: Path
    data_dir: Path
    name: str
    version: str
    audit_enabled: bool
    limits: ServerLimits

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot."""
        return {
            "workdir": str(self.workdir),
            "data_dir": str(self.data_dir),
            "name": self.name,
            "version": self.version,
            "audit_enabled": self.audit_enabled,
            "limits": {
                "max_message_bytes": self.limits.max_message_bytes,
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    data_dir: Path | None = None
    name: str | None = None
    version: str | None = None
    audit_enabled: bool | None = None
    max_message_bytes: int | None = None


def default_config(workdir: Path) -> ServerConfig:
    """Build default config for a given working directory."""
    resolved = workdir.resolve()
    return ServerConfig(
        workdir=resolved,
        data_dir=resolved / ".hello_mcp",
        name=DEFAULT_SERVER_NAME,
        version=DEFAULT_SERVER_VERSION,
        audit_enabled=True,
        limits=ServerLimits(),
    )


def load_config_file(workdir: Path) -> dict[str, object]:
    """Load optional hello_mcp.toml from the working directory."""
    config_path = workdir / CONFIG_FILE_NAME
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{CONFIG_FILE_NAME} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def merge_config(
    base: ServerConfig, file_payload: dict[str, object], overrides: CliOverrides
) -> ServerConfig:
    """Merge defaults, config file, then CLI/startup overrides."""
    server_payload = _get_table(file_payload, "server")
    limits_payload = _get_table(file_payload, "limits")
    audit_payload = _get_table(file_payload, "audit")

    name = _optional_non_empty_string(server_payload.get("name"), "server.name", base.name)
    version = _optional_non_empty_string(
        server_payload.get("version"), "server.version", base.version
    )
    max_message_bytes = _optional_positive_int_with_cap(
        limits_payload.get("max_message_bytes"),
        "limits.max_message_bytes",
        base.limits.max_message_bytes,
        MAX_MESSAGE_BYTES_CAP,
    )
    audit_enabled = base.audit_enabled
    if "enabled" in audit_payload:
        raw_enabled = audit_payload["enabled"]
        if not isinstance(raw_enabled, bool):
            raise ValueError("Config field 'audit.enabled' must be a boolean.")
        audit_enabled = raw_enabled
    data_dir = base.data_dir
    if "data_dir" in audit_payload:
        raw_data_dir = _optional_non_empty_string(
            audit_payload["data_dir"], "audit.data_dir", str(base.data_dir)
        )
        data_dir = base.workdir / raw_data_dir

    merged = ServerConfig(
        workdir=base.workdir,
        data_dir=data_dir,
        name=name,
        version=version,
        audit_enabled=audit_enabled,
        limits=ServerLimits(max_message_bytes=max_message_bytes),
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: ServerConfig, overrides: CliOverrides) -> ServerConfig:
    """Apply startup overrides at highest precedence."""
    max_message_bytes = _optional_positive_int_with_cap(
        overrides.max_message_bytes,
        "overrides.max_message_bytes",
        config.limits.max_message_bytes,
        MAX_MESSAGE_BYTES_CAP,
    )
    data_dir = overrides.data_dir or config.data_dir
    return ServerConfig(
        workdir=config.workdir,
        data_dir=data_dir.resolve(),
        name=_optional_non_empty_string(overrides.name, "overrides.name", config.name),
        version=_optional_non_empty_string(
            overrides.version, "overrides.version", config.version
        ),
        audit_enabled=(
            overrides.audit_enabled
            if overrides.audit_enabled is not None
            else config.audit_enabled
        ),
        limits=ServerLimits(max_message_bytes=max_message_bytes),
    )


def load_effective_config(workdir: Path, overrides: CliOverrides | None = None) -> ServerConfig:
    """Load effective config using merge order defaults -> config file -> overrides."""
    resolved = workdir.resolve()
    base = default_config(resolved)
    payload = load_config_file(resolved)
    return merge_config(base, payload, overrides or CliOverrides())


def _optional_non_empty_string(value: object, name: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Config field '{name}' must be a non-empty string.")
    return value


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ValueError(f"Config field '{name}' must be <= {cap}.")
    return value
