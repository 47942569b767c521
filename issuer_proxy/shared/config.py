"""Centralized configuration management for the issuer proxy."""

import os
from functools import lru_cache
from typing import List


def _parse_ports(value: str) -> List[int]:
    """Parse a comma-separated port list, keeping the given order."""
    ports = []
    for item in value.split(','):
        item = item.strip()
        if item:
            ports.append(int(item))
    return ports


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# Malformed environment values, reported by Config.validate()
_ENV_ERRORS: List[str] = []


def _env_int(name: str, default: int) -> int:
    """Read an integer variable; a malformed value keeps the default and is recorded."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        _ENV_ERRORS.append(f"{name} must be an integer, got {raw!r}")
        return default


def _env_ports(name: str, default: str) -> List[int]:
    raw = os.getenv(name, default)
    try:
        return _parse_ports(raw)
    except ValueError:
        _ENV_ERRORS.append(f"{name} must be a comma-separated list of ports, got {raw!r}")
        return _parse_ports(default)


class Config:
    """Configuration class with all environment variables.

    Class attributes hold the environment defaults. Keyword arguments given
    to the constructor override them for that instance only, which is how
    tests and embedding code build isolated configurations.
    """

    # Server Configuration
    SERVER_HOST: str = os.getenv('SERVER_HOST', '0.0.0.0')
    HTTPS_PORT: int = _env_int('HTTPS_PORT', 443)
    HTTP_PORT: int = _env_int('HTTP_PORT', 80)

    # Admin API
    ADMIN_HOSTNAME: str = os.getenv('ADMIN_HOSTNAME', 'localhost').lower()
    ADMIN_PREFIX: str = os.getenv('ADMIN_PREFIX', '/proxy-admin')
    ADMIN_LOOPBACK_ONLY: bool = _parse_bool(os.getenv('ADMIN_LOOPBACK_ONLY', 'true'))
    ADMIN_URL: str = os.getenv('ADMIN_URL', 'https://localhost/proxy-admin')

    # Routing table storage
    ROUTES_FILE: str = os.getenv('ROUTES_FILE', 'issuers-config.json')

    # TLS material
    CERTS_DIR: str = os.getenv('CERTS_DIR', 'certs')
    CERT_FILE: str = os.getenv('CERT_FILE', os.path.join(CERTS_DIR, 'cert.pem'))
    KEY_FILE: str = os.getenv('KEY_FILE', os.path.join(CERTS_DIR, 'key.pem'))

    # Discovery
    DISCOVERY_PORTS: List[int] = _env_ports(
        'DISCOVERY_PORTS', '5000,5001,5002,5003,5004,5005,8080,8081,8082,8000,8001'
    )
    DISCOVERY_PROBE_TIMEOUT_MS: int = _env_int('DISCOVERY_PROBE_TIMEOUT_MS', 1000)
    DISCOVERY_HOST: str = os.getenv('DISCOVERY_HOST', 'localhost')
    DISCOVERY_SCHEME: str = os.getenv('DISCOVERY_SCHEME', 'https')
    DISCOVERY_MODE: str = os.getenv('DISCOVERY_MODE', 'sequential').lower()
    DISCOVERY_PATH: str = '/.well-known/openid-credential-issuer'

    # Proxy Configuration
    BACKEND_VERIFY_TLS: bool = _parse_bool(os.getenv('BACKEND_VERIFY_TLS', 'false'))
    PROXY_REQUEST_TIMEOUT: int = _env_int('PROXY_REQUEST_TIMEOUT', 120)
    PROXY_CONNECT_TIMEOUT: int = _env_int('PROXY_CONNECT_TIMEOUT', 30)

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FORMAT: str = os.getenv('LOG_FORMAT', 'console')
    LOG_CORRELATION_ID_HEADER: str = os.getenv('LOG_CORRELATION_ID_HEADER', 'X-Correlation-ID')

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not key.isupper() or not hasattr(type(self), key):
                raise AttributeError(f"Unknown configuration key: {key}")
            setattr(self, key, value)

    @property
    def probe_timeout(self) -> float:
        """Per-probe discovery timeout in seconds."""
        return self.DISCOVERY_PROBE_TIMEOUT_MS / 1000.0

    def validate(self) -> None:
        """Validate configuration values."""
        errors = list(_ENV_ERRORS)

        if not self.SERVER_HOST:
            errors.append("SERVER_HOST is required")

        if not self.ADMIN_HOSTNAME:
            errors.append("ADMIN_HOSTNAME is required")

        if not self.ADMIN_PREFIX.startswith('/'):
            errors.append(f"ADMIN_PREFIX must start with '/', got {self.ADMIN_PREFIX!r}")

        # Check port ranges
        if not (1 <= self.HTTP_PORT <= 65535):
            errors.append(f"HTTP_PORT must be between 1 and 65535, got {self.HTTP_PORT}")

        if not (1 <= self.HTTPS_PORT <= 65535):
            errors.append(f"HTTPS_PORT must be between 1 and 65535, got {self.HTTPS_PORT}")

        if not self.DISCOVERY_PORTS:
            errors.append("DISCOVERY_PORTS must list at least one port")

        for port in self.DISCOVERY_PORTS:
            if not (1 <= port <= 65535):
                errors.append(f"DISCOVERY_PORTS entry out of range: {port}")

        if self.DISCOVERY_PROBE_TIMEOUT_MS <= 0:
            errors.append("DISCOVERY_PROBE_TIMEOUT_MS must be positive")

        if self.DISCOVERY_MODE not in ('sequential', 'concurrent'):
            errors.append(f"DISCOVERY_MODE must be 'sequential' or 'concurrent', got {self.DISCOVERY_MODE!r}")

        # Check timeout hierarchy
        if self.PROXY_CONNECT_TIMEOUT >= self.PROXY_REQUEST_TIMEOUT:
            errors.append("PROXY_CONNECT_TIMEOUT must be less than PROXY_REQUEST_TIMEOUT")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")


@lru_cache()
def get_config() -> Config:
    """Get validated configuration instance."""
    config = Config()
    config.validate()
    return config
