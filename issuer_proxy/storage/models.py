"""Routing table models."""

from typing import Dict, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator, model_validator


def normalize_hostname(host: Optional[str]) -> str:
    """Normalize a Host header value into a routing key.

    Strips the port suffix and lowercases. Bracketed IPv6 literals keep
    their brackets so ``[::1]:443`` becomes ``[::1]``.
    """
    if not host:
        return ""
    host = host.strip()
    if host.startswith("["):
        end = host.find("]")
        if end != -1:
            return host[:end + 1].lower()
        return host.lower()
    return host.split(":")[0].lower()


class Route(BaseModel):
    """A hostname to backend origin mapping."""
    hostname: str = Field(..., description="Normalized hostname, the lookup key")
    target: str = Field(..., description="Backend origin, scheme://host[:port]")
    name: str = Field("", description="Human-readable label")

    @field_validator('hostname')
    @classmethod
    def validate_hostname(cls, v: str) -> str:
        v = normalize_hostname(v)
        if not v:
            raise ValueError("hostname cannot be empty")
        return v

    @field_validator('target')
    @classmethod
    def validate_target(cls, v: str) -> str:
        """Accept only http(s) origins; a trailing slash is dropped."""
        v = v.strip()
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("target must be an http:// or https:// origin")
        if parts.path not in ("", "/") or parts.query or parts.fragment:
            raise ValueError("target must not carry a path, query or fragment")
        return f"{parts.scheme}://{parts.netloc}"

    @model_validator(mode='after')
    def default_name(self) -> 'Route':
        if not self.name or not self.name.strip():
            self.name = self.hostname
        return self

    def to_record(self) -> Dict[str, str]:
        """Durable representation stored under the hostname key."""
        return {"target": self.target, "name": self.name}

    @classmethod
    def from_record(cls, hostname: str, record: Dict[str, str]) -> 'Route':
        return cls(hostname=hostname, target=record.get("target", ""), name=record.get("name") or "")


# Seeded when no routing table exists on disk
DEFAULT_ROUTES = [
    {
        "hostname": "fido.moi.gov.tw",
        "target": "https://localhost:5000",
        "name": "MOI Citizen Digital Certificate",
    },
    {
        "hostname": "land.moi.gov.tw",
        "target": "https://localhost:5001",
        "name": "MOI Land Title Credential",
    },
    {
        "hostname": "zuvi.io",
        "target": "https://localhost:5002",
        "name": "Zuvi Rental Dapp",
    },
]


def default_table() -> Dict[str, Route]:
    """Build the built-in default routing table."""
    return {entry["hostname"]: Route(**entry) for entry in DEFAULT_ROUTES}
