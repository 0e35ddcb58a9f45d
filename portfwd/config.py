import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from .rules import Rule

DEFAULT_CONFIG_PATH = "config.yaml"


class ConfigError(Exception):
    pass


class PortForward(BaseModel):
    local_port: int = Field(ge=1, le=65535)
    remote_addr: str = Field(min_length=1)
    remote_port: int = Field(ge=1, le=65535)
    protocol_type: Literal["tcp"] = "tcp"

    def to_rule(self) -> Rule:
        return Rule(
            local_port=self.local_port,
            remote_host=self.remote_addr,
            remote_port=self.remote_port,
            protocol=self.protocol_type,
        )


class ForwarderConfig(BaseModel):
    port_forwards: list[PortForward] = Field(default_factory=list)

    def rules(self) -> list[Rule]:
        return [pf.to_rule() for pf in self.port_forwards]


def parse_config(text: str) -> ForwarderConfig:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse config: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")
    try:
        return ForwarderConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc


def load_config(path: str | Path) -> ForwarderConfig:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed to read file {path}: {exc}") from exc
    return parse_config(text)


@dataclass(frozen=True)
class Settings:
    config_path: Path
    bind_host: str
    log_level: str
    api_host: str
    api_port: int | None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    api_port = os.getenv("PORTFWD_API_PORT")
    if api_port and not api_port.isdigit():
        raise ConfigError(f"PORTFWD_API_PORT must be an integer, got {api_port!r}")
    return Settings(
        config_path=Path(os.getenv("PORTFWD_CONFIG", DEFAULT_CONFIG_PATH)),
        bind_host=os.getenv("PORTFWD_BIND_HOST", "0.0.0.0"),
        log_level=os.getenv("PORTFWD_LOG_LEVEL", "INFO").upper(),
        api_host=os.getenv("PORTFWD_API_HOST", "127.0.0.1"),
        api_port=int(api_port) if api_port else None,
    )
