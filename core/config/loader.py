"""Configuration loading & validation.

- Per-section schemas live in `core.config.schemas.*`.
- `schema_version` (missing → assume 1, warn).
- AggregatedConfig holds validated sub-schemas; every section gets its
  defaults when absent from YAML.

Precedence (last wins): base.yaml → overrides.local.yaml → ENV
(BOOKBAG__SECTION__KEY).

Unknown keys are rejected.
"""
from __future__ import annotations

import logging
import os
import pathlib
import threading
from functools import lru_cache
from typing import Any, Dict, Type

import yaml
from core import metrics
from core.errors import validate_error_type
from pydantic import BaseModel, ConfigDict

from .schemas.api import APIConfig
from .schemas.llm import LLMConfig
from .schemas.observability import LoggingConfig, MetricsConfig
from .schemas.thinking import ThinkingConfig
from .schemas.tps import TPSConfig

logger = logging.getLogger("core.config")


class AggregatedConfig(BaseModel):
    schema_version: int = 1
    llm: LLMConfig = LLMConfig()
    thinking: ThinkingConfig = ThinkingConfig()
    tps: TPSConfig = TPSConfig()
    api: APIConfig = APIConfig()
    metrics: MetricsConfig = MetricsConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = ConfigDict(extra="forbid")


DEFAULT_CONFIG_DIR = "configs"
CONFIG_DIR_ENV = "BOOKBAG_CONFIG_DIR"
ENV_PREFIX = "BOOKBAG__"

SUB_SCHEMA_CLASSES: Dict[str, Type[BaseModel]] = {
    "llm": LLMConfig,
    "thinking": ThinkingConfig,
    "tps": TPSConfig,
    "api": APIConfig,
    "metrics": MetricsConfig,
    "logging": LoggingConfig,
}


class ConfigError(Exception):
    pass


def _load_yaml_if_exists(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _merge_dict(
    base: Dict[str, Any], override: Dict[str, Any]
) -> Dict[str, Any]:
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def _cast_env_value(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        try:
            return float(value)
        except ValueError:
            return value


def _apply_env(cfg: Dict[str, Any]) -> None:
    prefix_len = len(ENV_PREFIX)
    for env_key, value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        path_parts = env_key[prefix_len:].lower().split("__")
        target = cfg
        for part in path_parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                target[part] = {}
            target = target[part]
        target[path_parts[-1]] = _cast_env_value(value)
        dotted_path = ".".join(path_parts)
        metrics.inc("env_override_total", {"path": dotted_path})
        logger.info(
            "config env override path=%s value=*** source=env", dotted_path
        )


_lock = threading.Lock()


def _resolve_config_dir() -> pathlib.Path:
    """Resolve config directory each call honoring env var changes."""
    return pathlib.Path(os.getenv(CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR))


def _migrate_legacy(data: Dict[str, Any]) -> Dict[str, Any]:
    if "schema_version" not in data:
        logger.warning("config schema_version missing, assuming 1")
        data["schema_version"] = 1
    return data


def _normalize_and_validate(raw: Dict[str, Any]) -> None:
    """Apply cross-field bounds validation before schema parsing.

    Validations (error → raise):
      - llm.max_output_tokens > 0
      - thinking.tail_window_chars in 1..128
    Emits ``config_validation_errors_total`` per violation.
    """
    errors: list[tuple[str, str, str]] = []  # (path, code, msg)
    llm = raw.get("llm") or {}
    mot = llm.get("max_output_tokens") if isinstance(llm, dict) else None
    if mot is not None and (not isinstance(mot, int) or mot <= 0):
        errors.append(
            ("llm.max_output_tokens", "config-out-of-range", ">0 required")
        )
    thinking = raw.get("thinking") or {}
    tw = (
        thinking.get("tail_window_chars")
        if isinstance(thinking, dict)
        else None
    )
    if tw is not None and (not isinstance(tw, int) or not 0 < tw <= 128):
        errors.append(
            (
                "thinking.tail_window_chars",
                "config-out-of-range",
                "must be 1..128",
            )
        )
    if errors:
        for path, code, _ in errors:
            metrics.inc(
                "config_validation_errors_total",
                {"path": path, "code": validate_error_type(code)},
            )
        details = ", ".join(f"{p}:{c}:{m}" for p, c, m in errors)
        raise ConfigError(f"config validation failed: {details}")


def _validate_sub_schemas(raw: Dict[str, Any]) -> Dict[str, Any]:
    validated: Dict[str, Any] = {}
    for name, cls in SUB_SCHEMA_CLASSES.items():
        if name in raw:
            try:
                validated[name] = cls.model_validate(raw[name] or {})
            except Exception as e:  # noqa: BLE001
                metrics.inc(
                    "config_validation_errors_total",
                    {"path": name, "code": "config-invalid"},
                )
                raise ConfigError(
                    f"Validation failed for section '{name}': {e}"
                ) from e
    return validated


@lru_cache(maxsize=1)
def get_config() -> AggregatedConfig:  # noqa: D401
    with _lock:
        cfg_dir = _resolve_config_dir()
        base_cfg = _load_yaml_if_exists(cfg_dir / "base.yaml")
        overrides_cfg = _load_yaml_if_exists(cfg_dir / "overrides.local.yaml")
        merged = _merge_dict(base_cfg, overrides_cfg)
        _apply_env(merged)
        migrated = _migrate_legacy(merged)
        _normalize_and_validate(migrated)
        validated_sub = _validate_sub_schemas(migrated)
        top = {k: v for k, v in migrated.items() if k not in validated_sub}
        try:
            agg = AggregatedConfig.model_validate(top)
        except Exception as e:  # noqa: BLE001
            raise ConfigError(str(e)) from e
        for k, v in validated_sub.items():
            setattr(agg, k, v)
        return agg


def clear_config_cache() -> None:
    """Clear cached config (primarily for tests)."""
    get_config.cache_clear()


def as_dict() -> Dict[str, Any]:
    return get_config().model_dump()
