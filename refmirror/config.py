"""
Configuration management for refmirror.

Loads config.yaml with validation and environment overrides (.env supported
through python-dotenv). The resulting MirrorConfig is passed explicitly into
the synchronization protocol and transports.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from refmirror.crypto import MIN_ITERATIONS


class ConfigError(Exception):
    """Raised when configuration is invalid."""
    pass


DEFAULT_RELAYS = (
    'wss://relay.damus.io',
    'wss://relay.snort.social',
    'wss://nos.lol',
    'wss://relay.nostr.band',
)


@dataclass(frozen=True)
class EventKinds:
    """Numeric kinds of the three network event variants."""

    public: int = 50000
    private: int = 50001
    retraction: int = 5

    def __post_init__(self):
        if len({self.public, self.private, self.retraction}) != 3:
            raise ConfigError(f"Event kinds must be distinct: {self}")


@dataclass(frozen=True)
class MirrorConfig:
    """Runtime settings for network mirroring and local storage."""

    kinds: EventKinds = field(default_factory=EventKinds)
    relays: Tuple[str, ...] = DEFAULT_RELAYS
    send_timeout: float = 10.0
    query_timeout: float = 5.0
    query_limit: int = 50
    kdf_iterations: int = MIN_ITERATIONS
    identity_key: Optional[str] = None
    library_path: str = './library.json'
    audit_log: Dict[str, Any] = field(
        default_factory=lambda: {'enabled': False, 'file': './audit.log', 'level': 'INFO'}
    )


class RefMirrorConfig:
    """
    Configuration loader with strict validation.

    Enforces:
    - Known top-level sections only
    - Positive timeouts and limits
    - PBKDF2 iteration floor
    - Distinct event kinds
    """

    KNOWN_SECTIONS = ['network', 'crypto', 'library', 'audit_log']

    def __init__(self, config_path: Optional[str] = None, env_file: Optional[str] = None):
        """
        Load and validate configuration.

        Args:
            config_path: Path to config.yaml. Defaults to ./configs/config.yaml;
                a missing default file falls back to built-in defaults
            env_file: Optional .env file to load before reading overrides

        Raises:
            ConfigError: If config invalid or an explicit path is missing
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))

        explicit = config_path is not None or 'REFMIRROR_CONFIG_PATH' in os.environ
        if config_path is None:
            config_path = os.getenv("REFMIRROR_CONFIG_PATH", "./configs/config.yaml")

        self.config_path = Path(config_path)
        self.data: Dict[str, Any] = {}

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    self.data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML: {e}")
        elif explicit:
            raise ConfigError(f"Config file not found: {self.config_path}")

        if not isinstance(self.data, dict):
            raise ConfigError("Config root must be a mapping")

        self._validate()

    def _validate(self):
        """Validate configuration structure and values."""
        for key in self.data:
            if key not in self.KNOWN_SECTIONS:
                raise ConfigError(f"Unknown config section: {key}")

        for key in ('network.send_timeout', 'network.query_timeout'):
            value = self.get(key)
            if value is not None and (not isinstance(value, (int, float)) or value <= 0):
                raise ConfigError(f"{key} must be a positive number, got {value!r}")

        limit = self.get('network.query_limit')
        if limit is not None and (not isinstance(limit, int) or limit <= 0):
            raise ConfigError(f"network.query_limit must be a positive integer, got {limit!r}")

        iterations = self.get('crypto.kdf_iterations')
        if iterations is not None and (not isinstance(iterations, int) or iterations < MIN_ITERATIONS):
            raise ConfigError(f"crypto.kdf_iterations must be >= {MIN_ITERATIONS}")

        relays = self.get('network.relays')
        if relays is not None and not isinstance(relays, list):
            raise ConfigError("network.relays must be a list of relay URLs")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value by dot-notation path.

        Args:
            key: Key path (e.g., 'network.query_limit', 'crypto.kdf_iterations')
            default: Default value if not found

        Returns:
            Configuration value
        """
        value = self.data
        for k in key.split('.'):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def get_audit_config(self) -> Dict[str, Any]:
        """Get audit logging configuration section."""
        return self.data.get('audit_log', {'enabled': False, 'file': './audit.log', 'level': 'INFO'})

    def get_relays(self) -> Tuple[str, ...]:
        """Relay URLs, REFMIRROR_RELAYS (comma-separated) taking precedence."""
        env_relays = os.getenv('REFMIRROR_RELAYS')
        if env_relays:
            return tuple(r.strip() for r in env_relays.split(',') if r.strip())
        return tuple(self.get('network.relays', DEFAULT_RELAYS))

    def get_library_path(self) -> str:
        return os.getenv('REFMIRROR_LIBRARY_PATH') or self.get('library.path', './library.json')

    def get_identity_key(self) -> Optional[str]:
        return os.getenv('REFMIRROR_IDENTITY_KEY') or self.get('crypto.identity_key')

    def to_mirror_config(self) -> MirrorConfig:
        """Build the immutable runtime settings."""
        try:
            kinds = EventKinds(**self.get('network.kinds', {}))
        except TypeError as e:
            raise ConfigError(f"Invalid network.kinds: {e}")

        return MirrorConfig(
            kinds=kinds,
            relays=self.get_relays(),
            send_timeout=float(self.get('network.send_timeout', 10.0)),
            query_timeout=float(self.get('network.query_timeout', 5.0)),
            query_limit=self.get('network.query_limit', 50),
            kdf_iterations=self.get('crypto.kdf_iterations', MIN_ITERATIONS),
            identity_key=self.get_identity_key(),
            library_path=self.get_library_path(),
            audit_log=self.get_audit_config(),
        )


def load_config(config_path: Optional[str] = None, env_file: Optional[str] = None) -> MirrorConfig:
    """
    Load configuration from file and environment.

    Args:
        config_path: Optional override path
        env_file: Optional .env file

    Returns:
        MirrorConfig instance
    """
    return RefMirrorConfig(config_path, env_file).to_mirror_config()
