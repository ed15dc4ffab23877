"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_LOCAL_NAMES_PATH = Path(__file__).resolve().parent / "translation" / "data" / "local_names.json"


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    for filename in (".env", ".env.local"):
        env_path = _PROJECT_ROOT / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for both registry clients.
    """

    timeout_seconds: float = 10.0
    max_attempts: int = 3
    backoff_seconds: float = 0.8
    user_agent: str = "generic-landscape/1.0"


@dataclass(frozen=True)
class PrimaryRegistrySettings:
    """
    Foreign (label / product listing) registry settings.
    """

    base_url: str = "https://api.fda.gov/drug"
    label_path: str = "/label.json"
    product_listing_path: str = "/ndc.json"
    api_key: str | None = None
    batch_size: int = 5
    batch_delay_seconds: float = 0.5
    fallback_delay_seconds: float = 0.2


@dataclass(frozen=True)
class SecondaryRegistrySettings:
    """
    Domestic (detailed permit / simplified list) registry settings.
    """

    detail_url: str = (
        "https://apis.data.go.kr/1471000/DrugPrdtPrmsnInfoService06/getDrugPrdtPrmsnDtlInq05"
    )
    simple_list_url: str = "https://apis.data.go.kr/1471000/DrbEasyDrugInfoService/getDrbEasyDrugList"
    service_key: str | None = None
    page_size: int = 100
    max_pages: int = 10
    row_delay_seconds: float = 0.05
    fallback_delay_seconds: float = 0.3
    success_result_codes: tuple[str, ...] = ("00",)
    original_drug_marker: str = "신약"


@dataclass(frozen=True)
class PipelineSettings:
    """
    Defaults for one pipeline run.
    """

    count_mode: str = "ingredient"
    include_revoked: bool = False
    local_names_path: Path = _DEFAULT_LOCAL_NAMES_PATH


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared registry HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("REGISTRY_HTTP_TIMEOUT_SECONDS", 10.0)),
        max_attempts=max(1, _get_int_env("REGISTRY_HTTP_MAX_ATTEMPTS", 3)),
        backoff_seconds=max(0.0, _get_float_env("REGISTRY_HTTP_BACKOFF_SECONDS", 0.8)),
        user_agent=_get_str_env("REGISTRY_HTTP_USER_AGENT", "generic-landscape/1.0"),
    )


@lru_cache(maxsize=1)
def get_primary_registry_settings() -> PrimaryRegistrySettings:
    """
    Return primary registry settings from environment variables.
    """

    return PrimaryRegistrySettings(
        base_url=_get_str_env("PRIMARY_REGISTRY_BASE_URL", "https://api.fda.gov/drug"),
        label_path=_get_str_env("PRIMARY_REGISTRY_LABEL_PATH", "/label.json"),
        product_listing_path=_get_str_env("PRIMARY_REGISTRY_LISTING_PATH", "/ndc.json"),
        api_key=_get_optional_str_env("PRIMARY_REGISTRY_API_KEY"),
        batch_size=max(1, _get_int_env("PRIMARY_REGISTRY_BATCH_SIZE", 5)),
        batch_delay_seconds=max(0.0, _get_float_env("PRIMARY_REGISTRY_BATCH_DELAY_SECONDS", 0.5)),
        fallback_delay_seconds=max(0.0, _get_float_env("PRIMARY_REGISTRY_FALLBACK_DELAY_SECONDS", 0.2)),
    )


@lru_cache(maxsize=1)
def get_secondary_registry_settings() -> SecondaryRegistrySettings:
    """
    Return secondary registry settings from environment variables.
    """

    defaults = SecondaryRegistrySettings()
    raw_codes = _get_str_env("SECONDARY_REGISTRY_SUCCESS_CODES", ",".join(defaults.success_result_codes))
    success_codes = tuple(code.strip() for code in raw_codes.split(",") if code.strip())
    return SecondaryRegistrySettings(
        detail_url=_get_str_env("SECONDARY_REGISTRY_DETAIL_URL", defaults.detail_url),
        simple_list_url=_get_str_env("SECONDARY_REGISTRY_SIMPLE_LIST_URL", defaults.simple_list_url),
        service_key=_get_optional_str_env("SECONDARY_REGISTRY_SERVICE_KEY"),
        page_size=min(100, max(1, _get_int_env("SECONDARY_REGISTRY_PAGE_SIZE", 100))),
        max_pages=min(10, max(1, _get_int_env("SECONDARY_REGISTRY_MAX_PAGES", 10))),
        row_delay_seconds=max(0.0, _get_float_env("SECONDARY_REGISTRY_ROW_DELAY_SECONDS", 0.05)),
        fallback_delay_seconds=max(0.0, _get_float_env("SECONDARY_REGISTRY_FALLBACK_DELAY_SECONDS", 0.3)),
        success_result_codes=success_codes or defaults.success_result_codes,
        original_drug_marker=_get_str_env("SECONDARY_REGISTRY_ORIGINAL_MARKER", defaults.original_drug_marker),
    )


@lru_cache(maxsize=1)
def get_pipeline_settings() -> PipelineSettings:
    """
    Return pipeline run defaults from environment variables.
    """

    raw_path = _get_optional_str_env("LOCAL_NAMES_PATH")
    local_names_path = _DEFAULT_LOCAL_NAMES_PATH
    if raw_path:
        candidate = Path(raw_path)
        local_names_path = candidate if candidate.is_absolute() else _PROJECT_ROOT / candidate

    return PipelineSettings(
        count_mode=_get_str_env("PIPELINE_COUNT_MODE", "ingredient"),
        include_revoked=_get_bool_env("PIPELINE_INCLUDE_REVOKED", False),
        local_names_path=local_names_path,
    )
