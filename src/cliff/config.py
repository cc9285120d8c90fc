"""
Configuration management for cliff.

Settings come from defaults, an optional YAML file and the environment,
in increasing order of precedence. Command line flags are applied last by
the CLI.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .cloudformation.changeset import CHANGE_SET_NAME
from .cloudformation.retry import RetryPolicy
from .differ import DEFAULT_DIFFER

DEFAULT_CONFIG_FILE = ".cliff.yaml"


@dataclass
class Settings:
    """Settings for one cliff run."""

    # AWS session
    region: Optional[str] = None
    profile: Optional[str] = None

    # Template diff
    differ: str = DEFAULT_DIFFER

    # Change set polling
    change_set_name: str = CHANGE_SET_NAME
    poll_interval: float = 0.5
    poll_timeout: float = 600.0
    cleanup_timeout: float = 120.0

    # Backoff for throttled calls
    retry_initial_delay: float = 0.1
    retry_max_attempts: int = 15
    retry_jitter: bool = True

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            initial_delay=self.retry_initial_delay,
            max_attempts=self.retry_max_attempts,
            jitter=self.retry_jitter,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Create settings from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(unknown)}")
        return cls(**data)


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def _from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if environ.get("CLIFF_DIFFER"):
        overrides["differ"] = environ["CLIFF_DIFFER"]
    region = environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION")
    if region:
        overrides["region"] = region
    if environ.get("AWS_PROFILE"):
        overrides["profile"] = environ["AWS_PROFILE"]
    return overrides


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings.

    Args:
        path: YAML settings file; defaults to .cliff.yaml in the working
            directory when it exists
        environ: Environment to read, os.environ by default
        **overrides: Values from the command line; None values are ignored

    Returns:
        Merged settings
    """
    data: Dict[str, Any] = {}

    if path is not None:
        data.update(_read_yaml(Path(path)))
    else:
        default_file = Path.cwd() / DEFAULT_CONFIG_FILE
        if default_file.exists():
            data.update(_read_yaml(default_file))

    data.update(_from_environ(os.environ if environ is None else environ))
    data.update({k: v for k, v in overrides.items() if v is not None})

    return Settings.from_dict(data)
