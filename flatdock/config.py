"""Configuration loading and validation.

All validation happens here, before any cloud call is made.
"""

import logging
import os
from dataclasses import dataclass, field, fields

import yaml

from flatdock.errors import ConfigError
from flatdock.provisioning.hcloud import DEFAULT_API_URL
from flatdock.provisioning.rescue import DEFAULT_SETTLE_DELAY
from flatdock.provisioning.ssh_session import DEFAULT_CONNECT_RETRIES, DEFAULT_RETRY_DELAY
from flatdock.redact import register_secret

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


@dataclass
class HCloudConfig:
    token: str = ""
    ssh_key: str = ""
    ssh_key_private_path: str = ""
    private_network: str = ""
    server_type: str = ""
    location: str = ""
    image: str = "debian-11"
    api_url: str = DEFAULT_API_URL


@dataclass
class RescueConfig:
    settle_delay: float = DEFAULT_SETTLE_DELAY
    connect_retries: int = DEFAULT_CONNECT_RETRIES
    connect_retry_delay: float = DEFAULT_RETRY_DELAY
    host_key_checking: bool = False


@dataclass
class FlatcarConfig:
    version: str = ""
    config_template: str = "ignition.yml.j2"
    template_static: dict[str, str] = field(default_factory=dict)
    template_command: str = ""
    install_script: str = ""
    install_device: str = ""
    install_args: str = ""
    butane: str = "butane"


@dataclass
class Config:
    hcloud: HCloudConfig = field(default_factory=HCloudConfig)
    rescue: RescueConfig = field(default_factory=RescueConfig)
    flatcar: FlatcarConfig = field(default_factory=FlatcarConfig)


def _expand_path(path: str) -> str:
    """Expand user home directory and environment variables in path."""
    return os.path.expanduser(os.path.expandvars(path))


def _build_section(cls, name, raw):
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ConfigError(f"unknown key(s) in '{name}' section: {', '.join(unknown)}")

    values = {}
    for key, value in raw.items():
        default = known[key].default
        if value is None:
            continue
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"'{name}.{key}' must be true or false")
        elif isinstance(default, (int, float)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"'{name}.{key}' must be a number")
        elif isinstance(default, str):
            value = str(value)
        elif key == "template_static":
            if not isinstance(value, dict):
                raise ConfigError(f"'{name}.{key}' must be a mapping")
            value = {str(k): str(v) for k, v in value.items()}
        values[key] = value
    return cls(**values)


def validate_config(config: Config) -> None:
    """Check required settings; raise ConfigError on the first missing one."""
    required = [
        (config.hcloud.token, "hcloud token missing (set hcloud.token or HCLOUD_TOKEN)"),
        (config.hcloud.ssh_key, "hcloud.ssh_key missing"),
        (config.hcloud.private_network, "hcloud.private_network missing"),
        (config.hcloud.server_type, "hcloud.server_type missing"),
        (config.hcloud.location, "hcloud.location missing"),
        (config.flatcar.version, "flatcar.version missing"),
    ]
    for value, message in required:
        if not value:
            raise ConfigError(message)
    if config.rescue.connect_retries < 1:
        raise ConfigError("rescue.connect_retries must be at least 1")
    if not config.flatcar.template_command and not config.flatcar.config_template:
        raise ConfigError("flatcar.config_template missing")


def parse_config(raw: dict) -> Config:
    """Build and validate a Config from a loaded YAML mapping."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config file must contain a mapping")
    unknown = sorted(set(raw) - {"hcloud", "rescue", "flatcar"})
    if unknown:
        raise ConfigError(f"unknown section(s): {', '.join(unknown)}")

    config = Config(
        hcloud=_build_section(HCloudConfig, "hcloud", raw.get("hcloud")),
        rescue=_build_section(RescueConfig, "rescue", raw.get("rescue")),
        flatcar=_build_section(FlatcarConfig, "flatcar", raw.get("flatcar")),
    )
    if not config.hcloud.token:
        config.hcloud.token = os.environ.get("HCLOUD_TOKEN", "")
    register_secret(config.hcloud.token)

    if config.hcloud.ssh_key_private_path:
        config.hcloud.ssh_key_private_path = _expand_path(config.hcloud.ssh_key_private_path)
    if config.flatcar.install_script:
        config.flatcar.install_script = _expand_path(config.flatcar.install_script)
    if config.flatcar.config_template:
        config.flatcar.config_template = _expand_path(config.flatcar.config_template)

    validate_config(config)
    return config


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Config:
    """Load and validate configuration from a YAML file.

    Raises:
        ConfigError: missing file, invalid YAML or invalid settings.
    """
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file '{config_path}' not found") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing YAML config: {e}") from e
    logger.debug(f"Loaded config from {config_path}")
    return parse_config(raw)
