"""Configuration loading utilities for the multi-database query tool."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml

from . import paths
from .exceptions import ConfigurationError

SUPPORTED_DRIVERS = ("sqlite", "odbc")
OUTPUT_FORMATS = ("table", "json")


@dataclass(frozen=True, slots=True)
class ExecutionSettings:
    """How the command is dispatched across targets."""

    connect_timeout: float
    command_timeout: float
    sequential: bool
    parallelism: int
    discard_results: bool
    show_information_messages: bool


@dataclass(frozen=True, slots=True)
class OdbcSettings:
    """Connection attributes used by the ODBC driver."""

    driver: str
    trusted_connection: bool
    username: str | None
    password_env: str
    encrypt: bool
    trust_server_certificate: bool
    application_name: str


@dataclass(frozen=True, slots=True)
class OutputSettings:
    """Rendering preferences for the CLI."""

    format: str
    show_nulls: bool


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Top-level application configuration."""

    source_path: Path
    driver: str
    execution: ExecutionSettings
    odbc: OdbcSettings
    output: OutputSettings

    def with_execution(self, **changes: Any) -> AppConfig:
        """Return a copy with selected execution settings replaced."""
        effective = {key: value for key, value in changes.items() if value is not None}
        execution = replace(self.execution, **effective)
        _validate_execution(execution)
        return replace(self, execution=execution)


def _default_config() -> dict[str, Any]:
    return {
        "driver": "sqlite",
        "execution": {
            "connect_timeout": 15,
            "command_timeout": 30,
            "sequential": False,
            "parallelism": 8,
            "discard_results": False,
            "show_information_messages": False,
        },
        "odbc": {
            "driver": "ODBC Driver 18 for SQL Server",
            "trusted_connection": True,
            "username": None,
            "password_env": "MULTIDB_ODBC_PASSWORD",
            "encrypt": True,
            "trust_server_certificate": False,
            "application_name": "multidb",
        },
        "output": {
            "format": "table",
            "show_nulls": False,
        },
    }


ENV_OVERRIDE_SPEC: dict[str, tuple[str, type]] = {
    "driver": ("MULTIDB_DRIVER", str),
    "execution.connect_timeout": ("MULTIDB_CONNECT_TIMEOUT", float),
    "execution.command_timeout": ("MULTIDB_COMMAND_TIMEOUT", float),
    "execution.sequential": ("MULTIDB_SEQUENTIAL", bool),
    "execution.parallelism": ("MULTIDB_PARALLELISM", int),
    "execution.discard_results": ("MULTIDB_DISCARD_RESULTS", bool),
    "execution.show_information_messages": ("MULTIDB_SHOW_INFO_MESSAGES", bool),
    "odbc.driver": ("MULTIDB_ODBC_DRIVER", str),
    "output.format": ("MULTIDB_OUTPUT_FORMAT", str),
    "output.show_nulls": ("MULTIDB_SHOW_NULLS", bool),
}


def load_config(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from defaults, YAML file, and env overrides."""
    env = dict(env or os.environ)
    resolved_config_path = _resolve_config_path(config_path, env)
    file_data = _load_yaml(resolved_config_path)
    defaults = _default_config()
    merged: dict[str, Any] = _deep_merge(defaults, file_data)
    merged = _apply_env_overrides(merged, env)
    return _build_config(merged, resolved_config_path)


def _resolve_config_path(
    config_path: str | Path | None, env: Mapping[str, str]
) -> Path:
    if config_path:
        return paths.resolve_path(config_path)
    return paths.default_config_path(env=env)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file at {path} is not valid YAML: {exc}") from exc
        if not isinstance(data, MutableMapping):
            raise ConfigurationError(f"Config file at {path} must define a mapping root object.")
        return dict(data)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    config_copy = _deep_merge(config, {})
    for dotted_key, (env_key, expected_type) in ENV_OVERRIDE_SPEC.items():
        if env_key not in env:
            continue
        raw_value = env[env_key]
        try:
            value = _coerce_env_value(raw_value, expected_type)
        except ValueError as exc:
            raise ConfigurationError(
                f"Environment override {env_key} has invalid value '{raw_value}': {exc}"
            ) from exc
        _assign_nested(config_copy, dotted_key.split("."), value)
    return config_copy


def _coerce_env_value(raw: str, expected_type: type) -> Any:
    cleaned = raw.strip()
    if expected_type is bool:
        lowered = cleaned.lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError("expected boolean (true/false)")
    if expected_type is int:
        return int(cleaned)
    if expected_type is float:
        return float(cleaned)
    return cleaned


def _assign_nested(target: MutableMapping[str, Any], keys: list[str], value: Any) -> None:
    current = target
    for key in keys[:-1]:
        if key not in current or not isinstance(current[key], MutableMapping):
            current[key] = {}
        current = current[key]  # type: ignore[assignment]
    current[keys[-1]] = value


def _validate_execution(execution: ExecutionSettings) -> None:
    if execution.parallelism < 1:
        raise ConfigurationError(f"Parallelism must be at least 1 (got {execution.parallelism}).")
    if execution.connect_timeout < 0 or execution.command_timeout < 0:
        raise ConfigurationError("Timeouts must not be negative.")


def _build_config(data: Mapping[str, Any], source_path: Path) -> AppConfig:
    try:
        driver = str(data["driver"]).lower()
        exec_cfg = data["execution"]
        execution = ExecutionSettings(
            connect_timeout=float(exec_cfg["connect_timeout"]),
            command_timeout=float(exec_cfg["command_timeout"]),
            sequential=bool(exec_cfg["sequential"]),
            parallelism=int(exec_cfg["parallelism"]),
            discard_results=bool(exec_cfg["discard_results"]),
            show_information_messages=bool(exec_cfg["show_information_messages"]),
        )
        odbc_cfg = data["odbc"]
        username = odbc_cfg.get("username")
        odbc = OdbcSettings(
            driver=str(odbc_cfg["driver"]),
            trusted_connection=bool(odbc_cfg["trusted_connection"]),
            username=str(username) if username else None,
            password_env=str(odbc_cfg["password_env"]),
            encrypt=bool(odbc_cfg["encrypt"]),
            trust_server_certificate=bool(odbc_cfg["trust_server_certificate"]),
            application_name=str(odbc_cfg["application_name"]),
        )
        out_cfg = data["output"]
        output = OutputSettings(
            format=str(out_cfg["format"]).lower(),
            show_nulls=bool(out_cfg["show_nulls"]),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid configuration structure: {exc}") from exc

    if driver not in SUPPORTED_DRIVERS:
        raise ConfigurationError(
            f"Unsupported driver '{driver}'. Expected one of: {', '.join(SUPPORTED_DRIVERS)}."
        )
    if output.format not in OUTPUT_FORMATS:
        raise ConfigurationError(
            f"Unsupported output format '{output.format}'. Expected one of: {', '.join(OUTPUT_FORMATS)}."
        )
    _validate_execution(execution)

    return AppConfig(
        source_path=source_path,
        driver=driver,
        execution=execution,
        odbc=odbc,
        output=output,
    )
