"""
Configuration management for dfsubmit.

Loads ~/.config/dfsubmit/config.yaml (directory overridable with
DFSUBMIT_HOME) and merges it with environment variables and CLI flags into
LaunchInputs. Precedence, highest first: CLI flags, environment, config file.

Example config.yaml:

    project: my-project
    staging_location: gs://my-bucket/staging
    region: europe-west1
    labels: {team: data}
    experiments: [use_runner_v2]
    compiler: mycompany.beam:build_compiler
    translator: mycompany.dataflow:build_translator
    executor: mycompany.dataflow:build_executor
    factory_modules: [mycompany]
    env_file: ~/.config/dfsubmit/.env
    logging: {level: INFO, format: pretty}
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from dfsubmit.options import DEFAULT_REGION, LaunchInputs

DEFAULT_IMAGE_RESOLVER = "dfsubmit.collaborators:EnvImageResolver"

# LaunchInputs field -> environment variable
ENV_VARS = {
    "project": "DFSUBMIT_PROJECT",
    "staging_location": "DFSUBMIT_STAGING_LOCATION",
    "worker_image": "DFSUBMIT_WORKER_IMAGE",
    "region": "DFSUBMIT_REGION",
    "zone": "DFSUBMIT_ZONE",
    "network": "DFSUBMIT_NETWORK",
    "temp_location": "DFSUBMIT_TEMP_LOCATION",
    "endpoint": "DFSUBMIT_ENDPOINT",
}


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def get_dfsubmit_home() -> Path:
    """Config directory: $DFSUBMIT_HOME or ~/.config/dfsubmit."""
    home = os.environ.get("DFSUBMIT_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/dfsubmit").expanduser()


@dataclass
class DfsubmitConfig:
    """Contents of config.yaml."""

    project: str = ""
    staging_location: str = ""
    worker_image: str = ""
    region: str = DEFAULT_REGION
    zone: str = ""
    network: str = ""
    machine_type: str = ""
    num_workers: Optional[int] = None
    temp_location: str = ""
    teardown_policy: str = ""
    min_cpu_platform: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    experiments: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    endpoint: str = ""
    compiler: str = ""
    translator: str = ""
    executor: str = ""
    image_resolver: str = DEFAULT_IMAGE_RESOLVER
    factory_modules: list[str] = field(default_factory=list)
    env_file: Optional[str] = None
    logging: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DfsubmitConfig":
        """
        Build from parsed YAML, rejecting unknown keys.

        Raises:
            ConfigError: On unknown keys
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    def get_log_level(self) -> str:
        return str(self.logging.get("level", "INFO")).upper()

    def get_log_format(self) -> str:
        return self.logging.get("format", "pretty")

    def get_log_file(self) -> Optional[Path]:
        output = self.logging.get("file")
        return Path(output).expanduser() if output else None


def load_config(config_path: Optional[Path] = None) -> DfsubmitConfig:
    """
    Load dfsubmit configuration from YAML file.

    Loads env_file (if set) into the process environment before returning.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        DfsubmitConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the YAML is invalid or has unknown keys
    """
    if config_path is None:
        config_path = get_dfsubmit_home() / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"dfsubmit config.yaml not found at {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")

    config = DfsubmitConfig.from_dict(data)

    if config.env_file:
        load_dotenv(Path(config.env_file).expanduser())

    return config


def build_launch_inputs(
    config: Optional[DfsubmitConfig] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> LaunchInputs:
    """
    Merge config file, environment and CLI overrides into LaunchInputs.

    Override values of None (flag not given) are ignored. Experiments from
    config and overrides are concatenated, config first.

    Args:
        config: Loaded config, or None for environment/flags only
        overrides: LaunchInputs field name -> value from CLI flags

    Returns:
        LaunchInputs ready for resolve()
    """
    config = config or DfsubmitConfig()
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    inputs = LaunchInputs(
        project=config.project,
        staging_location=config.staging_location,
        worker_image=config.worker_image,
        region=config.region,
        zone=config.zone,
        network=config.network,
        machine_type=config.machine_type,
        num_workers=config.num_workers,
        temp_location=config.temp_location,
        teardown_policy=config.teardown_policy,
        min_cpu_platform=config.min_cpu_platform,
        labels=json.dumps(config.labels) if config.labels else "",
        experiments=list(config.experiments),
        options=dict(config.options),
        endpoint=config.endpoint,
    )

    for name, env_var in ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            setattr(inputs, name, value)
    if not inputs.project:
        inputs.project = os.environ.get("GOOGLE_CLOUD_PROJECT", "")

    extra_experiments = overrides.pop("experiments", None) or []
    for name, value in overrides.items():
        if not hasattr(inputs, name):
            raise ConfigError(f"Unknown launch option: {name}")
        setattr(inputs, name, value)
    inputs.experiments.extend(extra_experiments)

    return inputs
