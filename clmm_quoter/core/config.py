import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from solders.pubkey import Pubkey

from clmm_quoter.core.constants.raydium import (
    DEFAULT_SLIPPAGE,
    FETCH_TICKARRAY_COUNT,
    RAYDIUM_CLMM_PROGRAM_ID,
)

_CONFIG_ENV_KEYS = ("CLMM_QUOTER_CONFIG_PATH", "CLMM_QUOTER_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
_SETTINGS_SECTION = "clmm"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
        return {}


class QuoterSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    program_id: str = str(RAYDIUM_CLMM_PROGRAM_ID)
    tick_array_fetch_count: int = Field(default=FETCH_TICKARRAY_COUNT, ge=1)
    default_slippage: float = Field(default=DEFAULT_SLIPPAGE, ge=0, le=1)
    log_level: str = "INFO"

    @field_validator("program_id")
    @classmethod
    def _check_program_id(cls, value: str) -> str:
        Pubkey.from_string(value.strip())
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)


def load_settings(
    path: str | Path | None = None,
    *,
    require_exists: bool = False,
    overrides: dict[str, Any] | None = None,
) -> QuoterSettings:
    """Read the ``clmm`` section of the config file into ``QuoterSettings``."""
    section = load_config_json(path, require_exists=require_exists).get(
        _SETTINGS_SECTION, {}
    )
    if not isinstance(section, dict):
        raise ValueError(f'config section "{_SETTINGS_SECTION}" must be an object')
    values = {**section, **{k: v for k, v in (overrides or {}).items() if v is not None}}
    return QuoterSettings.model_validate(values)
