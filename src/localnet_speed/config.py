"""Configuration loading for the command-line front end.

Values come from command-line flags first, then ``LOCALNET_SPEED_*``
environment variables, then the dataclass defaults.
"""

from __future__ import annotations

import argparse
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from localnet_speed.engine.models import (
    DEFAULT_PAYLOAD_SIZE_MB,
    DEFAULT_PORT,
    RetryConfig,
    Role,
    SessionConfig,
)
from localnet_speed.errors import ConfigError
from localnet_speed.evaluation import SpeedUnit

ENV_PREFIX = "LOCALNET_SPEED_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Everything the CLI needs to run one session.

    Attributes:
        session: Transport configuration.
        retry: Client retry policy.
        unit: Display unit for rates.
        log_file: Optional path of an append-only log file.
        json_output: Print the final result as JSON instead of text.
    """

    session: SessionConfig
    retry: RetryConfig = field(default_factory=RetryConfig)
    unit: SpeedUnit = SpeedUnit.MBPS
    log_file: Path | None = None
    json_output: bool = False


def _env(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def parse_bool(value: str) -> bool:
    """Parse a boolean flag value such as ``1``, ``true`` or ``off``.

    Raises:
        ConfigError: If the value is not a recognised boolean.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"invalid boolean value: {value!r}")


def _parse_int(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def parse_unit(value: str) -> SpeedUnit:
    """Parse a display unit, case-insensitively (``mbps``, ``MB/s``, ...).

    Raises:
        ConfigError: If the unit is unknown.
    """
    for unit in SpeedUnit:
        if unit.value.lower() == value.strip().lower():
            return unit
    choices = ", ".join(unit.value for unit in SpeedUnit)
    raise ConfigError(f"unknown unit {value!r} (choose from {choices})")


def load_config(
    args: argparse.Namespace,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Build an AppConfig from parsed CLI arguments and the environment.

    Args:
        args: Namespace produced by ``cli.build_parser()``. Attributes left at
            None fall back to the environment.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        AppConfig: The validated configuration.

    Raises:
        ConfigError: If any value is missing or invalid.
    """
    env = os.environ if environ is None else environ

    role_value = getattr(args, "role", None) or _env(env, "ROLE")
    if role_value is None:
        raise ConfigError("role is required (server or client)")
    try:
        role = Role(role_value.lower())
    except ValueError:
        raise ConfigError(f"unknown role: {role_value!r}") from None

    host = getattr(args, "host", None) or _env(env, "HOST")

    port = getattr(args, "port", None)
    if port is None:
        env_port = _env(env, "PORT")
        port = _parse_int(env_port, "port") if env_port is not None else DEFAULT_PORT

    size_mb = getattr(args, "size_mb", None)
    if size_mb is None:
        env_size = _env(env, "SIZE_MB")
        size_mb = _parse_int(env_size, "size") if env_size is not None else DEFAULT_PAYLOAD_SIZE_MB

    retry_enabled = getattr(args, "retry", None)
    if retry_enabled is None:
        env_retry = _env(env, "RETRY")
        retry_enabled = parse_bool(env_retry) if env_retry is not None else True

    max_attempts = getattr(args, "max_attempts", None)
    if max_attempts is None:
        env_attempts = _env(env, "MAX_ATTEMPTS")
        max_attempts = (
            _parse_int(env_attempts, "max attempts")
            if env_attempts is not None
            else RetryConfig().max_attempts
        )

    unit_value = getattr(args, "unit", None) or _env(env, "UNIT")
    unit = parse_unit(unit_value) if unit_value is not None else SpeedUnit.MBPS

    log_file = getattr(args, "log_file", None)

    session = SessionConfig(
        role=role,
        port=port,
        host=host,
        payload_size_mb=size_mb,
        retry_enabled=retry_enabled,
    )

    return AppConfig(
        session=session,
        retry=RetryConfig(max_attempts=max_attempts),
        unit=unit,
        log_file=Path(log_file) if log_file else None,
        json_output=bool(getattr(args, "json", False)),
    )
