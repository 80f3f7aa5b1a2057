"""Adapter configuration management.

Configuration is loaded from a YAML file and environment variables:
- $MESH_ADAPTER_CONFIG: explicit config file path
- ~/.config/mesh-adapter/config.yaml: per-user config file

The merge order is: defaults → config file → MESH_ADAPTER_* environment
variables.

Example config.yaml:

    kubeconfig: ~/.kube/config
    context: kind-mesh
    events:
      queue_size: 100
      poll_interval: 0.5
    reconcile:
      recreate_delay: 1
      max_recreate_attempts: 3
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

CONFIG_ENV_VAR = 'MESH_ADAPTER_CONFIG'
ENV_PREFIX = 'MESH_ADAPTER_'


class ConfigError(Exception):
    """Configuration error."""


def default_templates_dir() -> Path:
    return Path(__file__).parent / 'operations' / 'templates'


@dataclass
class AdapterConfig:
    """Settings for cluster access, event delivery and reconciliation.

    Attributes:
        kubeconfig: Path to a kubeconfig file (None: default location or in-cluster)
        context: kubeconfig context name ('' for current context)
        templates_dir: Directory holding operation templates
        event_queue_size: Capacity of the per-session event channel
        event_poll_interval: Seconds between stream consumer polls
        event_push_timeout: Seconds a publisher waits on a full channel
        recreate_delay: Seconds between delete and create for custom operations
        max_recreate_attempts: Delete/recreate cycles on immutable updates
        fetch_timeout: Seconds allowed for remote manifest downloads
    """
    kubeconfig: Optional[Path] = None
    context: str = ''
    templates_dir: Path = field(default_factory=default_templates_dir)
    event_queue_size: int = 100
    event_poll_interval: float = 0.5
    event_push_timeout: float = 5.0
    recreate_delay: float = 1.0
    max_recreate_attempts: int = 3
    fetch_timeout: float = 30.0

    def __post_init__(self):
        if isinstance(self.kubeconfig, str):
            self.kubeconfig = Path(self.kubeconfig).expanduser()
        if isinstance(self.templates_dir, str):
            self.templates_dir = Path(self.templates_dir).expanduser()
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError on out-of-range values."""
        if self.event_queue_size < 1:
            raise ConfigError(f"event_queue_size must be >= 1, got {self.event_queue_size}")
        if self.event_poll_interval <= 0:
            raise ConfigError(f"event_poll_interval must be > 0, got {self.event_poll_interval}")
        if self.event_push_timeout < 0:
            raise ConfigError(f"event_push_timeout must be >= 0, got {self.event_push_timeout}")
        if self.recreate_delay < 0:
            raise ConfigError(f"recreate_delay must be >= 0, got {self.recreate_delay}")
        if self.max_recreate_attempts < 0:
            raise ConfigError(
                f"max_recreate_attempts must be >= 0, got {self.max_recreate_attempts}")
        if self.fetch_timeout <= 0:
            raise ConfigError(f"fetch_timeout must be > 0, got {self.fetch_timeout}")

    @classmethod
    def from_dict(cls, data: dict) -> 'AdapterConfig':
        """Create AdapterConfig from a parsed config file."""
        events = data.get('events') or {}
        reconcile = data.get('reconcile') or {}
        kwargs: dict[str, Any] = {}
        if data.get('kubeconfig'):
            kwargs['kubeconfig'] = data['kubeconfig']
        if data.get('context'):
            kwargs['context'] = str(data['context'])
        if data.get('templates_dir'):
            kwargs['templates_dir'] = data['templates_dir']
        if data.get('fetch_timeout') is not None:
            kwargs['fetch_timeout'] = _number(data['fetch_timeout'], 'fetch_timeout', float)
        if events.get('queue_size') is not None:
            kwargs['event_queue_size'] = _number(events['queue_size'], 'events.queue_size', int)
        if events.get('poll_interval') is not None:
            kwargs['event_poll_interval'] = _number(
                events['poll_interval'], 'events.poll_interval', float)
        if events.get('push_timeout') is not None:
            kwargs['event_push_timeout'] = _number(
                events['push_timeout'], 'events.push_timeout', float)
        if reconcile.get('recreate_delay') is not None:
            kwargs['recreate_delay'] = _number(
                reconcile['recreate_delay'], 'reconcile.recreate_delay', float)
        if reconcile.get('max_recreate_attempts') is not None:
            kwargs['max_recreate_attempts'] = _number(
                reconcile['max_recreate_attempts'], 'reconcile.max_recreate_attempts', int)
        return cls(**kwargs)


# Environment overrides: variable suffix -> (field, type)
_ENV_FIELDS = {
    'KUBECONFIG': ('kubeconfig', str),
    'CONTEXT': ('context', str),
    'TEMPLATES_DIR': ('templates_dir', str),
    'EVENT_QUEUE_SIZE': ('event_queue_size', int),
    'EVENT_POLL_INTERVAL': ('event_poll_interval', float),
    'EVENT_PUSH_TIMEOUT': ('event_push_timeout', float),
    'RECREATE_DELAY': ('recreate_delay', float),
    'MAX_RECREATE_ATTEMPTS': ('max_recreate_attempts', int),
    'FETCH_TIMEOUT': ('fetch_timeout', float),
}


def _number(value: Any, name: str, kind: type) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name}: expected {kind.__name__}, got {value!r}") from e


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def find_config_file() -> Optional[Path]:
    """Discover the config file.

    Resolution order:
    1. $MESH_ADAPTER_CONFIG environment variable
    2. ~/.config/mesh-adapter/config.yaml
    """
    if env_path := os.environ.get(CONFIG_ENV_VAR):
        path = Path(env_path).expanduser()
        if path.exists():
            return path
        raise ConfigError(f"{CONFIG_ENV_VAR}={env_path} does not exist")

    user_file = Path.home() / '.config' / 'mesh-adapter' / 'config.yaml'
    if user_file.exists():
        return user_file
    return None


def load_config(path: Optional[Path] = None) -> AdapterConfig:
    """Load configuration from file and environment.

    Args:
        path: Explicit config file; discovered when None

    Raises:
        ConfigError: On unreadable files or invalid values
    """
    if path is None:
        path = find_config_file()
    data = _parse_yaml(Path(path)) if path is not None else {}
    config = AdapterConfig.from_dict(data)

    for suffix, (attr, kind) in _ENV_FIELDS.items():
        raw = os.environ.get(ENV_PREFIX + suffix)
        if raw is None or raw == '':
            continue
        value = _number(raw, ENV_PREFIX + suffix, kind)
        if attr in ('kubeconfig', 'templates_dir'):
            value = Path(value).expanduser()
        setattr(config, attr, value)

    config.validate()
    return config
