from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


_ENV_FILE_ENV = "TDS_ENV_FILE"
_BROKER_HOST_ENV = "MQTT_BROKER_HOST"
_BROKER_PORT_ENV = "MQTT_BROKER_PORT"
_USERNAME_ENV = "MQTT_USERNAME"
_PASSWORD_ENV = "MQTT_PASSWORD"
_CLIENT_ID_ENV = "MQTT_CLIENT_ID"
_TOPIC_ENV = "MQTT_TOPIC"
_QOS_ENV = "MQTT_QOS"
_KEEPALIVE_ENV = "MQTT_KEEPALIVE_SECONDS"
_CONNECT_TIMEOUT_ENV = "MQTT_CONNECT_TIMEOUT_SECONDS"
_DATABASE_URL_ENV = "DATABASE_URL"
_READINGS_PATH_ENV = "READINGS_PERSISTENCE_PATH"
_HISTORY_LIMIT_ENV = "HISTORY_LIMIT"
_INGEST_ENABLED_ENV = "INGEST_ENABLED"
_CORS_ORIGINS_ENV = "CORS_ORIGINS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    broker_host: str
    broker_port: int
    broker_username: Optional[str]
    broker_password: Optional[str]
    client_id: str
    topic: str
    qos: int
    keepalive_seconds: int
    connect_timeout: float
    database_url: Optional[str]
    readings_persistence_path: Optional[str]
    history_limit: int
    ingest_enabled: bool
    cors_origins: Tuple[str, ...]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(
    name: str,
    default: int,
    minimum: int = 1,
    maximum: Optional[int] = None,
) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    if parsed < minimum:
        return default
    if maximum is not None and parsed > maximum:
        return default
    return parsed


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    items = tuple(part.strip() for part in value.split(",") if part.strip())
    return items or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _load_env_file() -> None:
    # Real environment variables always win over the file.
    env_file = os.getenv(_ENV_FILE_ENV, ".env")
    if env_file and Path(env_file).is_file():
        load_dotenv(env_file, override=False)


@lru_cache
def get_settings() -> Settings:
    _load_env_file()
    return Settings(
        broker_host=_read_str_env(_BROKER_HOST_ENV, "localhost"),
        broker_port=_read_int_env(_BROKER_PORT_ENV, 1883, maximum=65535),
        broker_username=_read_optional_env(_USERNAME_ENV, None),
        broker_password=_read_optional_env(_PASSWORD_ENV, None),
        client_id=_read_str_env(_CLIENT_ID_ENV, "tds-bridge"),
        topic=_read_str_env(_TOPIC_ENV, "tds/topic"),
        qos=_read_int_env(_QOS_ENV, 0, minimum=0, maximum=2),
        keepalive_seconds=_read_int_env(_KEEPALIVE_ENV, 5),
        connect_timeout=_read_float_env(_CONNECT_TIMEOUT_ENV, 10.0),
        database_url=_read_optional_env(_DATABASE_URL_ENV, None),
        readings_persistence_path=_read_optional_env(
            _READINGS_PATH_ENV, "./tmp/readings.jsonl"
        ),
        history_limit=_read_int_env(_HISTORY_LIMIT_ENV, 60),
        ingest_enabled=_read_bool_env(_INGEST_ENABLED_ENV, True),
        cors_origins=_read_list_env(_CORS_ORIGINS_ENV, ("*",)),
        log_level=_read_log_level("INFO"),
    )
