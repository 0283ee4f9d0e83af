"""
Configuration management for the UDP transport relay.

Configuration is loaded from config.yaml file.
"""

import os
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import yaml

from .exceptions import ConfigurationError


class Role(Enum):
    """Which side of the point-to-point link this relay is."""
    INITIATOR = "initiator"
    RESPONDER = "responder"

    @classmethod
    def from_server_flag(cls, server: bool) -> 'Role':
        return cls.INITIATOR if server else cls.RESPONDER


@dataclass(frozen=True)
class RoleAddressing:
    local_port: int
    peer_host: str
    peer_port: int


# Each role binds its own port and sends to the other side's port
ROLE_TABLE = {
    Role.INITIATOR: RoleAddressing(local_port=49153, peer_host="192.168.4.10", peer_port=49154),
    Role.RESPONDER: RoleAddressing(local_port=49154, peer_host="192.168.4.1", peer_port=49153),
}

ADDRESS_FAMILIES = {
    'any': socket.AF_UNSPEC,
    'ipv4': socket.AF_INET,
    'ipv6': socket.AF_INET6,
}

DEFAULT_CONFIG_PATH = "udp_transport/config.yaml"

TRUE_WORDS = ("true", "yes", "on", "1")
FALSE_WORDS = ("false", "no", "off", "0")

# Largest UDP payload over IPv4
MAX_DATAGRAM_SIZE = 65507


def parse_flag(value, name: str) -> bool:
    """
    Interpret a boolean configuration value.

    Accepts real booleans, 0/1 and the usual words (true/yes/on, false/no/off)
    in any case.

    Raises:
        ConfigurationError: If the value is not recognised
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    raise ConfigurationError(f"Invalid {name}: {value!r}. Expected true or false")


@dataclass
class RelayConfig:
    """
    Configuration for the UDP transport relay.
    """

    # Link settings
    role: Role = Role.RESPONDER
    local_port: int = ROLE_TABLE[Role.RESPONDER].local_port
    peer_host: str = ROLE_TABLE[Role.RESPONDER].peer_host
    peer_port: int = ROLE_TABLE[Role.RESPONDER].peer_port

    # Socket settings
    buffer_size: int = 4096
    address_family: str = "any"
    addrconfig: bool = True
    peer_only: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None

    # Telemetry - InfluxDB
    telemetry_enabled: bool = False
    influxdb_host: str = "localhost:8086"
    influxdb_database: str = "relay_telemetry"
    influxdb_token: str = ""
    telemetry_interval: float = 2.0

    @classmethod
    def for_role(cls, role: Role, **overrides) -> 'RelayConfig':
        """
        Build a configuration using the fixed addressing of a role.

        Args:
            role: Initiator or responder
            **overrides: Any other RelayConfig field

        Returns:
            RelayConfig instance
        """
        addressing = ROLE_TABLE[role]
        values = {
            'role': role,
            'local_port': addressing.local_port,
            'peer_host': addressing.peer_host,
            'peer_port': addressing.peer_port,
        }
        values.update(overrides)
        return cls(**values)

    @property
    def family(self) -> int:
        return ADDRESS_FAMILIES[self.address_family]

    def validate(self):
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(self.role, Role):
            raise ConfigurationError(f"Invalid role: {self.role}")

        # Validate ports, 0 lets the kernel pick the local one
        if not (0 <= self.local_port <= 65535):
            raise ConfigurationError(f"Invalid local_port: {self.local_port}")
        if not (1 <= self.peer_port <= 65535):
            raise ConfigurationError(f"Invalid peer_port: {self.peer_port}")
        if not self.peer_host:
            raise ConfigurationError("peer_host must not be empty")

        if not (1 <= self.buffer_size <= MAX_DATAGRAM_SIZE):
            raise ConfigurationError(
                f"Invalid buffer_size: {self.buffer_size}. Must be between 1 and {MAX_DATAGRAM_SIZE}"
            )

        if self.address_family not in ADDRESS_FAMILIES:
            raise ConfigurationError(
                f"Invalid address_family: {self.address_family}. Must be one of {list(ADDRESS_FAMILIES)}"
            )

        # Validate log level
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.log_level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log_level: {self.log_level}. Must be one of {valid_levels}")

        if self.telemetry_interval <= 0:
            raise ConfigurationError(f"Invalid telemetry_interval: {self.telemetry_interval}")

    @classmethod
    def from_yaml(cls, path: str, server: Optional[bool] = None) -> 'RelayConfig':
        """
        Load configuration from YAML file.

        The role is taken from relay.server; its addressing comes from the
        matching entry under roles, falling back to the built-in role table.

        Args:
            path: Path to YAML config file
            server: Overrides relay.server when not None

        Returns:
            RelayConfig instance

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)

            data = data or {}

            relay = data.get('relay') or {}
            if server is None:
                server = parse_flag(relay.get('server', False), 'relay.server')
            role = Role.from_server_flag(server)

            addressing = ROLE_TABLE[role]
            role_data = (data.get('roles') or {}).get(role.value) or {}

            config_dict = {
                'role': role,
                'local_port': role_data.get('local_port', addressing.local_port),
                'peer_host': role_data.get('peer_host', addressing.peer_host),
                'peer_port': role_data.get('peer_port', addressing.peer_port),
                'buffer_size': relay.get('buffer_size', cls.buffer_size),
                'address_family': relay.get('address_family', cls.address_family),
                'addrconfig': parse_flag(relay.get('addrconfig', cls.addrconfig), 'relay.addrconfig'),
                'peer_only': parse_flag(relay.get('peer_only', cls.peer_only), 'relay.peer_only'),
            }

            if 'logging' in data:
                config_dict['log_level'] = data['logging'].get('level', cls.log_level)
                config_dict['log_format'] = data['logging'].get('format', cls.log_format)
                config_dict['log_file'] = data['logging'].get('file', cls.log_file)

            if 'telemetry' in data:
                config_dict['telemetry_enabled'] = parse_flag(
                    data['telemetry'].get('enabled', cls.telemetry_enabled), 'telemetry.enabled'
                )
                config_dict['influxdb_host'] = data['telemetry'].get('influxdb_host', cls.influxdb_host)
                config_dict['influxdb_database'] = data['telemetry'].get('influxdb_database', cls.influxdb_database)
                config_dict['influxdb_token'] = data['telemetry'].get('influxdb_token', cls.influxdb_token)
                config_dict['telemetry_interval'] = data['telemetry'].get('interval', cls.telemetry_interval)

            return cls(**config_dict)

        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {path}")
        except ConfigurationError:
            raise
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML config: {e}")
        except Exception as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}")

    def __str__(self) -> str:
        """String representation for logging."""
        return (
            f"RelayConfig("
            f"role={self.role.value}, "
            f"local_port={self.local_port}, "
            f"peer={self.peer_host}:{self.peer_port}, "
            f"buffer_size={self.buffer_size}, "
            f"log_level={self.log_level})"
        )


def load_configuration(config_path: str = DEFAULT_CONFIG_PATH,
                       server: Optional[bool] = None) -> RelayConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config.yaml file (default: udp_transport/config.yaml)
        server: Force the initiator (True) or responder (False) role

    Returns:
        Validated RelayConfig

    Raises:
        ConfigurationError: If configuration file is missing or invalid
    """
    # Only the default path falls back to the packaged file
    if config_path == DEFAULT_CONFIG_PATH and not os.path.exists(config_path):
        package_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(package_dir, "config.yaml")

    config = RelayConfig.from_yaml(config_path, server=server)
    config.validate()

    return config
