"""Installer configuration management.

Configuration is loaded from an optional YAML file:
- $STAGE_DRIVER_CONFIG: explicit path (must exist)
- {state_dir}/installer.yaml: per-install overrides

Any key not present falls back to the InstallerConfig defaults.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

CONFIG_ENV_VAR = 'STAGE_DRIVER_CONFIG'
CONFIG_FILENAME = 'installer.yaml'


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class InstallerConfig:
    """Settings for the terraform executor and reporting.

    Attributes:
        terraform_binary: Executable used for init/apply/destroy/output
        terraform_dir: Root holding {platform}/{stage} terraform modules
        timeout_init: Seconds allowed for terraform init
        timeout_apply: Seconds allowed for a single apply attempt
        timeout_destroy: Seconds allowed for destroy
        apply_retries: Extra apply attempts after a failure
        retry_delay: Seconds to wait between apply attempts
        report_dir: Where pipeline reports are written (None disables)
    """
    terraform_binary: str = 'terraform'
    terraform_dir: Path = field(default_factory=lambda: get_base_dir() / 'data' / 'terraform')
    timeout_init: int = 300
    timeout_apply: int = 1800
    timeout_destroy: int = 1800
    apply_retries: int = 0
    retry_delay: int = 10
    report_dir: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.terraform_dir, str):
            self.terraform_dir = Path(self.terraform_dir)
        if isinstance(self.report_dir, str):
            self.report_dir = Path(self.report_dir)

    @classmethod
    def from_dict(cls, data: dict, source: str = '<dict>') -> 'InstallerConfig':
        """Build config from a mapping, rejecting unknown keys and bad types."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"{source}: unknown config keys: {', '.join(unknown)}")

        for key in ('timeout_init', 'timeout_apply', 'timeout_destroy', 'apply_retries', 'retry_delay'):
            if key in data:
                value = data[key]
                # bool is an int subclass; reject it explicitly
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ConfigError(f"{source}: {key} must be a non-negative integer, got {value!r}")

        for key in ('terraform_binary', 'terraform_dir', 'report_dir'):
            if key in data and data[key] is not None and not isinstance(data[key], str):
                raise ConfigError(f"{source}: {key} must be a string, got {data[key]!r}")

        return cls(**data)


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def get_base_dir() -> Path:
    """Get the stage-driver checkout directory."""
    return Path(__file__).parent.parent  # src/ -> stage-driver/


def find_config_file(state_dir: Optional[Path] = None) -> Optional[Path]:
    """Locate the installer config file.

    Resolution order:
    1. $STAGE_DRIVER_CONFIG environment variable
    2. {state_dir}/installer.yaml
    """
    if env_path := os.environ.get(CONFIG_ENV_VAR):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"{CONFIG_ENV_VAR}={env_path} does not exist")

    if state_dir is not None:
        candidate = Path(state_dir) / CONFIG_FILENAME
        if candidate.exists():
            return candidate

    return None


def load_installer_config(state_dir: Optional[Path] = None) -> InstallerConfig:
    """Load installer config, falling back to defaults when no file exists."""
    path = find_config_file(state_dir)
    if path is None:
        return InstallerConfig()
    return InstallerConfig.from_dict(_parse_yaml(path), source=str(path))
