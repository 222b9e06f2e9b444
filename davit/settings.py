"""
settings.py

Two layers of configuration:

- DavitSettings: runtime knobs read from the environment (prefix DAVIT_).
- Config: the operator's TOML file listing environments and services.

Env vars (all prefixed with DAVIT_):
- DAVIT_CONFIG             path to the TOML config file
- DAVIT_LOG_LEVEL          (default: WARNING)
- DAVIT_JSON_LOGS          (default: false)
- DAVIT_LOG_FILE           write logs here instead of stderr
- DAVIT_REFRESH_INTERVAL   seconds to wait for a key per frame (default: 0.1)
- DAVIT_BUFFER_CAPACITY    log lines kept per generation (default: 100)
- DAVIT_DISPLAY_LINES      log lines shown per generation (default: 50)
- DAVIT_TAIL_LINES         backlog lines fetched per pod (default: 10)
- DAVIT_GENERATION_MATCH   contains | exact (default: contains)
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from davit.errors import ConfigError
from davit.parsing import MATCH_CONTAINS, MATCH_STRATEGIES


# =========================
# Runtime settings
# =========================

class DavitSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DAVIT_")

    config: Optional[Path] = None
    log_level: str = "WARNING"
    json_logs: bool = False
    log_file: Optional[Path] = None
    refresh_interval: float = 0.1
    buffer_capacity: int = 100
    display_lines: int = 50
    tail_lines: int = 10
    generation_match: str = MATCH_CONTAINS

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @field_validator("refresh_interval", "buffer_capacity", "display_lines", "tail_lines")
    @classmethod
    def must_be_positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("generation_match")
    @classmethod
    def known_strategy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in MATCH_STRATEGIES:
            raise ValueError(f"generation_match must be one of {', '.join(MATCH_STRATEGIES)}")
        return v


# =========================
# Config file
# =========================

class Defaults(BaseModel):
    interactive: bool = True


class Environment(BaseModel):
    name: str
    repo_root: Path
    kubectl_context: str
    protected: bool = False
    namespace: Optional[str] = None

    @field_validator("repo_root")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        return v.expanduser()


class Service(BaseModel):
    name: str
    manifest: Path
    image: str
    namespace: Optional[str] = None
    selector: Optional[str] = None
    container: Optional[str] = None

    @field_validator("image")
    @classmethod
    def strip_tag(cls, v: str) -> str:
        # Base image only; the tag is what gets deployed.
        last = v.rsplit("/", 1)[-1]
        if ":" in last:
            v = v[: len(v) - len(last)] + last.split(":", 1)[0]
        return v


class Config(BaseModel):
    defaults: Defaults = Defaults()
    environments: List[Environment]
    services: List[Service] = []

    def environment(self, name: str) -> Optional[Environment]:
        return next((e for e in self.environments if e.name == name), None)

    def service(self, name: str) -> Optional[Service]:
        return next((s for s in self.services if s.name == name), None)


def get_config_path(settings: Optional[DavitSettings] = None) -> Path:
    """DAVIT_CONFIG, else $XDG_CONFIG_HOME/davit/config.toml, else ~/.config/davit/config.toml."""
    settings = settings or DavitSettings()
    if settings.config:
        return settings.config.expanduser()
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "davit" / "config.toml"


def load_config(path: Optional[Path] = None) -> Config:
    config_path = path or get_config_path()
    if not config_path.exists():
        raise ConfigError(
            f"Config file not found at {config_path}. Please create it based on documentation."
        )
    try:
        with config_path.open("rb") as fh:
            raw = tomllib.load(fh)
    except OSError as exc:
        raise ConfigError(f"Failed to read config file at {config_path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse TOML config at {config_path}: {exc}") from exc
    try:
        return Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {config_path}: {exc}") from exc
