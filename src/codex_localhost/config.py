"""Configuration for the codex localhost bridge."""

import os
from pathlib import Path
from typing import Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field

from .executor.logging import get_logger

MODEL_ID = "codex-exec"
CONFIG_FILE_ENV = "CODEX_LOCALHOST_CONFIG"

# Settings field -> environment variables, first one set wins
_ENV_FIELDS: dict[str, tuple[str, ...]] = {
    "host": ("HOST",),
    "port": ("PORT",),
    "codex_bin": ("CODEX_BIN",),
    "workdir": ("CODEX_WORKDIR",),
    "timeout_ms": ("EXEC_TIMEOUT_MS",),
    "prompt_mode": ("PROMPT_MODE",),
    "api_key": ("API_KEY",),
}

# Flags are on when any of their variables is set to a non-empty value
_ENV_FLAGS: dict[str, tuple[str, ...]] = {
    "require_api_key": ("REQUIRE_API_KEY",),
    "force_non_stream": ("FORCE_NON_STREAM", "DISABLE_STREAM"),
    "force_stream": ("FORCE_STREAM",),
}


class Settings(BaseModel):
    """Runtime settings for one bridge process."""

    host: str = Field(default="127.0.0.1", description="Interface to listen on")
    port: Optional[int] = Field(
        default=None,
        description="Port to listen on. None means the server's own default",
    )
    codex_bin: str = Field(default="codex", description="Agent executable name or path")
    workdir: Path = Field(
        default_factory=Path.cwd,
        description="Working directory for the agent process",
    )
    timeout_ms: int = Field(
        default=120_000, gt=0,
        description="Per-request wall-clock limit in milliseconds",
    )
    prompt_mode: Literal["raw_last", "transcript"] = Field(
        default="raw_last",
        description="How chat messages are flattened into a prompt",
    )
    require_api_key: bool = Field(default=False, description="Require a bearer token on chat requests")
    api_key: str = Field(default="", description="Expected bearer token")
    force_non_stream: bool = Field(default=False, description="Never answer with SSE")
    force_stream: bool = Field(default=False, description="Always answer with SSE")
    model_id: str = Field(default=MODEL_ID, description="The single model name served")


def _read_config_file(config_file: Path) -> dict:
    """Read settings overrides from a YAML file."""
    logger = get_logger()
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse config YAML in {config_file}: {e}")
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {config_file}: top level must be a mapping")
        return {}
    return data


def _env_overrides(env: Mapping[str, str]) -> dict:
    overrides: dict = {}
    for name, keys in _ENV_FIELDS.items():
        for key in keys:
            value = env.get(key)
            if value:
                overrides[name] = value
                break
    for name, keys in _ENV_FLAGS.items():
        if any(env.get(key) for key in keys):
            overrides[name] = True
    return overrides


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
) -> Settings:
    """Load settings from defaults, an optional YAML file and the environment.

    Args:
        env: Environment mapping. Defaults to os.environ.
        config_file: YAML file with overrides. Defaults to the path in
            CODEX_LOCALHOST_CONFIG, if set.

    Returns:
        Validated Settings. Environment values win over the file.
    """
    if env is None:
        env = os.environ

    if config_file is None and env.get(CONFIG_FILE_ENV):
        config_file = Path(env[CONFIG_FILE_ENV])

    values: dict = {}
    if config_file is not None:
        values.update(_read_config_file(config_file))
    values.update(_env_overrides(env))

    return Settings(**values)
