"""Configuration loading, validation, and access."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from goldwatch.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


class HttpConfig(BaseModel):
    """Transport settings shared by every source client."""

    model_config = ConfigDict(frozen=True)

    user_agent: str = _BROWSER_USER_AGENT
    accept_language: str = "zh-CN,zh;q=0.9,en;q=0.8"
    request_timeout: float = 10.0
    rate_limit: int = 20
    fallback_encodings: tuple[str, ...] = ("utf-8", "gb18030", "gbk", "big5")

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v


class SourcesConfig(BaseModel):
    """Upstream endpoints. All of them are third-party and unstable."""

    model_config = ConfigDict(frozen=True)

    jd_finance_url: str = (
        "https://api.jdjygold.com/gw/generic/hj/h5/m/latestPrice"
    )
    shuibei_url: str = "https://www.huangjinjiage.cn/shuibei.html"
    sge_url: str = "https://www.huangjinjiage.cn/sge.html"
    directory_url: str = "https://www.huangjinjiage.cn/js/brands.js"
    brand_price_url: str = "https://www.huangjinjiage.cn/api/brand/price?id={brand_id}"

    @field_validator("brand_price_url")
    @classmethod
    def brand_url_has_placeholder(cls, v: str) -> str:
        if "{brand_id}" not in v:
            raise ValueError("brand_price_url must contain a '{brand_id}' placeholder")
        return v


class SchedulerConfig(BaseModel):
    """Refresh cadence per tier, in seconds."""

    model_config = ConfigDict(frozen=True)

    fast_interval: float = 1.0
    pages_interval: float = 300.0
    brands_interval: float = 300.0
    reject_out_of_order: bool = False

    @field_validator("fast_interval", "pages_interval", "brands_interval")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("intervals must be > 0")
        return v


class DirectoryConfig(BaseModel):
    """Brand directory cache policy."""

    model_config = ConfigDict(frozen=True)

    max_age: float = 6 * 3600.0

    @field_validator("max_age")
    @classmethod
    def max_age_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("max_age must be > 0")
        return v


class LoggingConfig(BaseModel):
    """Log level used by the entry points."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def level_known(cls, v: str) -> str:
        upper = v.upper()
        if upper not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return upper


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8000


class GoldwatchConfig(BaseModel):
    """Root configuration for goldwatch."""

    model_config = ConfigDict(frozen=True)

    selected_source: str = "jd_finance"
    http: HttpConfig = HttpConfig()
    sources: SourcesConfig = SourcesConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    directory: DirectoryConfig = DirectoryConfig()
    logging: LoggingConfig = LoggingConfig()
    api: APIConfig = APIConfig()

    @field_validator("selected_source")
    @classmethod
    def selected_source_known(cls, v: str) -> str:
        from goldwatch.core.models import Source

        try:
            return Source(v.lower()).value
        except ValueError:
            raise ValueError(
                f"Unknown source {v!r}; expected one of {[s.value for s in Source]}"
            ) from None


CONFIG_ENV_VAR = "GOLDWATCH_CONFIG"
DEFAULT_CONFIG_FILE = "goldwatch.yml"


def load_config(
    config_path: str | None = None,
    env_prefix: str = "GOLDWATCH_",
) -> GoldwatchConfig:
    """Build a GoldwatchConfig from defaults, a YAML file and the environment.

    Later layers win: built-in defaults, then the YAML file (``config_path``,
    else ``$GOLDWATCH_CONFIG``, else ``./goldwatch.yml`` if present), then
    ``GOLDWATCH_SECTION__KEY`` environment variables, e.g.
    ``GOLDWATCH_SCHEDULER__FAST_INTERVAL=2`` sets ``scheduler.fast_interval``.

    Raises:
        ConfigError: The file is missing or malformed, or validation failed.
    """
    try:
        path = _find_config_file(config_path)
        layered = _read_yaml_mapping(path) if path is not None else {}
        if path is not None:
            logger.debug("Loaded config file %s", path)
        return GoldwatchConfig.model_validate(_merge_env_vars(layered, env_prefix))
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _find_config_file(explicit: str | None) -> Path | None:
    """Return the YAML file to read, or None to run on defaults alone."""
    if explicit is not None:
        candidate, origin = Path(explicit), "config_path"
    elif os.environ.get(CONFIG_ENV_VAR):
        candidate, origin = Path(os.environ[CONFIG_ENV_VAR]), CONFIG_ENV_VAR
    else:
        default = Path(DEFAULT_CONFIG_FILE)
        return default if default.is_file() else None

    if not candidate.exists():
        where = "" if origin == "config_path" else f" from {origin}"
        raise ConfigError(
            f"Config file{where} not found: {candidate}",
            context={"field": origin, "value": str(candidate)},
        )
    return candidate


def _read_yaml_mapping(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file {path} must hold a mapping, not {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Return a copy of ``base`` with ``PREFIX_A__B=value`` set at ``a.b``."""
    merged = dict(base)
    config_var = f"{prefix}CONFIG"

    for name, raw in os.environ.items():
        if not name.startswith(prefix) or name == config_var:
            continue

        *sections, leaf = name[len(prefix):].lower().split("__")
        node = merged
        for section in sections:
            child = node.get(section)
            # copy so the caller's nested dicts stay untouched
            node[section] = dict(child) if isinstance(child, dict) else {}
            node = node[section]
        node[leaf] = _auto_cast(raw)

    return merged


def _auto_cast(value: str) -> str | int | float | bool:
    """Coerce an env var string to bool, int or float where it looks like one."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
