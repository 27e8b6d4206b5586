"""Runtime settings for the pipeline, read from the process environment.

Entrypoints load a local ``.env`` (python-dotenv) before calling
:meth:`PipelineSettings.from_env`; library code receives a settings object
explicitly and never reads the environment on its own.

Recognized variables
--------------------
- ``DATABASE_URL``: SQLAlchemy URL of the budget database.
- ``BUDGET_DEFAULT_CATEGORY``: fallback category name (``"Uncategorized"``).
- ``BUDGET_AUTO_CREATE_MERCHANTS``: create merchants for unknown names during
  import (default true). When false, unknown names are reported as pending.
- ``BUDGET_RECONCILE_MANUAL``: let imported rows replace same-day manual
  entries for the same amount (default true).
- ``YELP_API_KEY`` / ``YELP_API_URL``: merchant autocomplete credentials.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_CATEGORY_NAME = "Uncategorized"
DEFAULT_YELP_API_URL = "https://api.yelp.com/v3/autocomplete"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


class PipelineSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str | None = None
    default_category_name: str = DEFAULT_CATEGORY_NAME
    auto_create_merchants: bool = True
    reconcile_manual_entries: bool = True
    yelp_api_key: str | None = None
    yelp_api_url: str = DEFAULT_YELP_API_URL

    @field_validator("default_category_name")
    @classmethod
    def _non_blank_category(cls, v: str) -> str:
        name = " ".join(v.split())
        if not name:
            raise ValueError("default_category_name cannot be blank")
        return name

    @field_validator("yelp_api_key", "database_url")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        s = v.strip()
        return s or None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> PipelineSettings:
        src = os.environ if env is None else env
        return cls(
            database_url=src.get("DATABASE_URL"),
            default_category_name=src.get("BUDGET_DEFAULT_CATEGORY") or DEFAULT_CATEGORY_NAME,
            auto_create_merchants=_env_flag(src, "BUDGET_AUTO_CREATE_MERCHANTS", True),
            reconcile_manual_entries=_env_flag(src, "BUDGET_RECONCILE_MANUAL", True),
            yelp_api_key=src.get("YELP_API_KEY"),
            yelp_api_url=src.get("YELP_API_URL") or DEFAULT_YELP_API_URL,
        )


__all__ = [
    "DEFAULT_CATEGORY_NAME",
    "DEFAULT_YELP_API_URL",
    "PipelineSettings",
]
