# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import dotenv_values

from .cascade import CascadePolicy
from .errors import ConfigError
from .model import PipelineVariable

VARIABLE_PREFIX = "VARIABLE_"
DEFAULT_PROJECTS_FILE = "projects.json"
REQUIRED_VARS = ("GITLAB_HOST", "GITLAB_PRIVATE_TOKEN")

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    """Configuration resolved once at startup and passed explicitly to the core."""
    host: str
    token: str = field(repr=False)
    auto_run_manual_jobs: bool = False
    variables: Tuple[PipelineVariable, ...] = ()
    projects_file: Path = Path(DEFAULT_PROJECTS_FILE)
    http_timeout: float = 30.0
    policy: CascadePolicy = field(default_factory=CascadePolicy)


def extract_variables(
    environ: Mapping[str, Optional[str]],
    prefix: str = VARIABLE_PREFIX,
) -> Tuple[PipelineVariable, ...]:
    """
    Turn prefixed keys into pipeline variables.

    The prefix is stripped exactly once (VARIABLE_VARIABLE_X -> VARIABLE_X) and
    the mapping's iteration order is kept.
    """
    variables = []
    for key, value in environ.items():
        if value is None or not key.startswith(prefix):
            continue
        name = key[len(prefix):]
        if not name:
            continue
        variables.append(PipelineVariable(key=name, value=value))
    return tuple(variables)


def read_environment(
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[str | Path] = ".env",
) -> Dict[str, str]:
    """
    Merge the .env file (if any) with the process environment.

    Values already in the environment win over the file.
    """
    merged: Dict[str, str] = {}
    if env_file is not None and Path(env_file).is_file():
        for key, value in dotenv_values(env_file).items():
            if value is not None:
                merged[key] = value
    merged.update(os.environ if environ is None else environ)
    return merged


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[str | Path] = ".env",
) -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ConfigError: if a required variable is missing or a value is malformed
    """
    env = read_environment(environ, env_file)

    missing = [name for name in REQUIRED_VARS if not (env.get(name) or "").strip()]
    if missing:
        raise ConfigError(
            f"Missing required environment variable: {missing[0]}",
            details={"missing": ", ".join(missing)},
        )

    host = env["GITLAB_HOST"].strip().rstrip("/")
    if not host.startswith(("http://", "https://")):
        raise ConfigError("GITLAB_HOST must start with http:// or https://", details={"GITLAB_HOST": host})

    policy = CascadePolicy(
        initial_delay=_number(env, "TRIGGERCI_INITIAL_DELAY", 5.0),
        retry_delay=_number(env, "TRIGGERCI_RETRY_DELAY", 3.0),
        max_attempts=int(_number(env, "TRIGGERCI_MAX_ATTEMPTS", 3, integer=True)),
        play_delay=_number(env, "TRIGGERCI_PLAY_DELAY", 1.0),
    )

    timeout = _number(env, "TRIGGERCI_HTTP_TIMEOUT", 30.0)
    if timeout <= 0:
        raise ConfigError("TRIGGERCI_HTTP_TIMEOUT must be positive", details={"TRIGGERCI_HTTP_TIMEOUT": timeout})

    return Settings(
        host=host,
        token=env["GITLAB_PRIVATE_TOKEN"].strip(),
        auto_run_manual_jobs=_flag(env, "AUTO_RUN_MANUAL_JOBS"),
        variables=extract_variables(env),
        projects_file=Path(env.get("TRIGGERCI_PROJECTS_FILE") or DEFAULT_PROJECTS_FILE),
        http_timeout=timeout,
        policy=policy,
    )


def _flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be true or false", details={name: raw})


def _number(env: Mapping[str, str], name: str, default: float, integer: bool = False) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw) if integer else float(raw)
    except ValueError:
        kind = "an integer" if integer else "a number"
        raise ConfigError(f"{name} must be {kind}", details={name: raw}) from None
