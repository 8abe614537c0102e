from __future__ import annotations

from dataclasses import dataclass, field
from dataclasses import fields as dataclass_fields
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

DEFAULT_CONFIG_PATH = "config/config.yml"
ADMIN_PROFILE = "admin"


class ConfigError(Exception):
    """Raised when the settings file or command line options are invalid."""


@dataclass(frozen=True)
class Profile:
    """API credentials of one user role."""

    name: str
    api_key: str
    secret_key: str
    expires: int = 600
    signature_version: int = 3


@dataclass(frozen=True)
class ProvisionSettings:
    """Parameters of the fixtures created by ``--create``."""

    parent_domain_id: str = ""
    num_domains: int = 0
    zone_id: str = ""
    network_offering_id: str = ""
    network_cidr: str = "10.0.0.0/8"
    vlan_start: int = 100
    service_offering_id: str = ""
    template_id: str = ""
    num_vms: int = 1
    disk_offering_id: str = ""
    num_volumes: int = 1


@dataclass(frozen=True)
class Settings:
    url: str
    profiles: dict[str, Profile]
    iterations: int = 10
    page: int = 0
    pagesize: int = 500
    timeout: float = 60.0
    async_timeout: float = 3600.0
    provision: ProvisionSettings = field(default_factory=ProvisionSettings)

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or self.url

    def profile(self, name: str) -> Profile:
        if name not in self.profiles:
            raise ConfigError(f"Profile '{name}' is not defined in the configuration")
        return self.profiles[name]


@dataclass(frozen=True)
class RunOptions:
    """Validated command line options for one invocation."""

    create: bool = False
    benchmark: bool = False
    teardown: bool = False
    domain: bool = False
    limits: bool = False
    network: bool = False
    vm: bool = False
    volume: bool = False
    workers: int = 10
    report_format: str = "table"
    output_file: str | None = None
    chart_path: str | None = None
    dbprofile: int = 0

    @property
    def resource_flags(self) -> tuple[bool, ...]:
        return (self.domain, self.limits, self.network, self.vm, self.volume)


_TOP_LEVEL_KEYS = {
    "url",
    "iterations",
    "page",
    "pagesize",
    "timeout",
    "async_timeout",
    "profiles",
    "provision",
}
_PROFILE_KEYS = {"apikey", "secretkey", "expires", "signatureversion"}


def load_settings(path: str | Path) -> Settings:
    pure_path = Path(path).expanduser().resolve()

    if not pure_path.exists():
        raise ConfigError(f"Config file not found: {pure_path}")

    if not pure_path.is_file():
        raise ConfigError(f"Config path is not a file: {pure_path}")

    try:
        raw = yaml.safe_load(pure_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{pure_path}: invalid YAML") from exc

    if not isinstance(raw, Mapping):
        raise ConfigError(f"{pure_path}: top-level value is not a mapping: {type(raw)}")

    return build_settings(raw)


def build_settings(raw: Mapping[str, Any]) -> Settings:
    for key in raw:
        if key not in _TOP_LEVEL_KEYS:
            raise ConfigError(f"Unknown configuration key: {key}")

    url = raw.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ConfigError("'url' must be a non-empty string")

    profiles = _build_profiles(raw.get("profiles"))

    return Settings(
        url=url.strip(),
        profiles=profiles,
        iterations=_int(raw, "iterations", 10, minimum=1),
        page=_int(raw, "page", 0, minimum=0),
        pagesize=_int(raw, "pagesize", 500, minimum=1),
        timeout=_number(raw, "timeout", 60.0),
        async_timeout=_number(raw, "async_timeout", 3600.0),
        provision=_build_provision(raw.get("provision") or {}),
    )


def _build_profiles(raw: Any) -> dict[str, Profile]:
    if not isinstance(raw, Mapping) or len(raw) < 1:
        raise ConfigError("'profiles' must be a mapping with at least one profile")

    profiles: dict[str, Profile] = {}
    for name, fields in raw.items():
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"Profile name must be a non-empty string, got {name!r}")
        if not isinstance(fields, Mapping):
            raise ConfigError(f"Profile '{name}' must be a mapping")
        for key in fields:
            if key not in _PROFILE_KEYS:
                raise ConfigError(f"Profile '{name}': unknown key '{key}'")

        api_key = fields.get("apikey")
        secret_key = fields.get("secretkey")
        if not isinstance(api_key, str) or not api_key:
            raise ConfigError(f"Profile '{name}': missing 'apikey'")
        if not isinstance(secret_key, str) or not secret_key:
            raise ConfigError(f"Profile '{name}': missing 'secretkey'")

        signature_version = _int(fields, "signatureversion", 3)
        if signature_version not in (2, 3):
            raise ConfigError(f"Profile '{name}': signatureversion must be 2 or 3")

        profiles[name.strip()] = Profile(
            name=name.strip(),
            api_key=api_key,
            secret_key=secret_key,
            expires=_int(fields, "expires", 600, minimum=1),
            signature_version=signature_version,
        )
    return profiles


def _build_provision(raw: Any) -> ProvisionSettings:
    if not isinstance(raw, Mapping):
        raise ConfigError("'provision' must be a mapping")

    defaults = ProvisionSettings()
    known = {f.name for f in dataclass_fields(ProvisionSettings)}
    values: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            raise ConfigError(f"provision: unknown key '{key}'")
        default = getattr(defaults, key)
        if isinstance(default, int):
            values[key] = _int(raw, key, default, minimum=0)
        else:
            if not isinstance(value, str):
                raise ConfigError(f"provision: '{key}' must be a string")
            values[key] = value.strip()
    return ProvisionSettings(**values)


def _int(raw: Mapping[str, Any], key: str, default: int, minimum: int | None = None) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise ConfigError(f"'{key}' must be >= {minimum}, got {value}")
    return value


def _number(raw: Mapping[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"'{key}' must be > 0, got {value}")
    return float(value)
