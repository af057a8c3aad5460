"""
Pydantic models for application configuration, plus the static table of every
user-settable field. The table drives the INI loader, the JSON schema and the
--config-help output.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hashget.media.hashing import HashAlgo, is_hex
from hashget.utils.secrets import SecretBuffer


class PeerRequestOption(str, Enum):
    """Per-request tuning of the peer-cache lookup."""

    PERMANENT_CACHE = "permanent_cache"
    NO_HEAD_FIRST = "no_head_first"
    NO_MINIMAL_SIZE = "no_minimal_size"
    TRY_LAST_PEER = "try_last_peer"
    BROADCAST_NOT_ALONE = "broadcast_not_alone"


class TlsSettings(BaseModel):
    """Certificate material for one TLS role."""

    ca_file: str = ""
    cert_file: str = ""
    key_file: str = ""
    ignore_certificate_errors: bool = False

    def is_set(self) -> bool:
        return bool(
            self.ca_file
            or self.cert_file
            or self.key_file
            or self.ignore_certificate_errors
        )


class PeerCacheSettings(BaseModel):
    """Settings handed to the peer-cache service when it is created."""

    backend: str = ""
    port: int = 8008
    interface_name: str = ""
    cache_temp_path: str = ""
    cache_perm_path: str = ""
    limit_mb_per_sec: int = 10
    broadcast_timeout_ms: int = 10
    http_timeout_ms: int = 500

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("Peer port must be between 1 and 65535.")
        return v

    @field_validator("limit_mb_per_sec", "broadcast_timeout_ms", "http_timeout_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Peer timings and limits cannot be negative.")
        return v


class RequestOptions(BaseModel):
    """Options applied to the outbound HTTP request and its connection."""

    model_config = ConfigDict(frozen=True)

    proxy: str = ""
    redirect_max: int = 5
    connect_timeout: int = 0  # seconds, 0 = aiohttp default
    whole_request_timeout: int = 0  # seconds, 0 = no limit
    limit_bandwidth_mb: int = 0  # MB/s, 0 = no limit

    @field_validator("redirect_max")
    @classmethod
    def validate_redirects(cls, v: int) -> int:
        if v < 0 or v > 20:
            raise ValueError("Max redirects must be between 0 and 20.")
        return v

    @field_validator("connect_timeout", "whole_request_timeout", "limit_bandwidth_mb")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Timeouts and bandwidth limits cannot be negative.")
        return v


class ProcessConfig(BaseModel):
    """A validated configuration model for one orchestrator instance."""

    model_config = ConfigDict(
        validate_assignment=True,
        str_strip_whitespace=True,
        arbitrary_types_allowed=True,
    )

    # Behaviour flags
    silent: bool = False
    no_resume: bool = False
    cache: bool = False
    peer: bool = False
    log_steps: bool = False
    track_network: bool = False

    # Files
    dest_file: str = ""
    cache_folder: str = ""
    cache_max_age_days: int = 0

    # Request
    header: str = ""
    options: RequestOptions = Field(default_factory=RequestOptions)

    # Verification
    hash_algo: HashAlgo = HashAlgo.AUTO
    hash_value: str = ""

    # Peer cache
    peer_settings: PeerCacheSettings = Field(default_factory=PeerCacheSettings)
    peer_secret: SecretBuffer = Field(default_factory=SecretBuffer, repr=False)
    peer_secret_hex: SecretBuffer = Field(default_factory=SecretBuffer, repr=False)
    peer_request: set[PeerRequestOption] = Field(default_factory=set)

    # TLS
    server_tls: TlsSettings = Field(default_factory=TlsSettings)
    client_tls: TlsSettings = Field(default_factory=TlsSettings)

    # Internal field not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("hash_value")
    @classmethod
    def validate_hash_value(cls, v: str) -> str:
        if v and not is_hex(v):
            raise ValueError("Hash value must be a hexadecimal digest.")
        return v.lower()

    @field_validator("peer_secret", "peer_secret_hex", mode="before")
    @classmethod
    def wrap_secret(cls, v: Any) -> Any:
        if isinstance(v, (str, bytes, bytearray)):
            return SecretBuffer(v)
        return v

    @field_validator("peer_secret_hex")
    @classmethod
    def validate_secret_hex(cls, v: SecretBuffer) -> SecretBuffer:
        if v and not is_hex(v.raw.decode("ascii", errors="replace")):
            raise ValueError("Peer secret (hex) must be an even-length hex string.")
        return v

    @field_validator("cache_max_age_days")
    @classmethod
    def validate_cache_max_age(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Cache max age cannot be negative.")
        return v

    @field_validator("header")
    @classmethod
    def validate_header(cls, v: str) -> str:
        for line in filter(None, v.split("\r\n")):
            if ":" not in line:
                raise ValueError(f"Custom header line '{line}' must be 'Name: value'.")
        return v

    @model_validator(mode="after")
    def validate_cache_folder(self) -> "ProcessConfig":
        if self.cache and not self.cache_folder:
            raise ValueError("Caching is enabled but no cache folder is set.")
        return self


@dataclass(frozen=True)
class ConfigField:
    """One user-settable configuration field."""

    key: str
    path: tuple[str, ...]
    kind: type
    default: Any
    help: str
    section: str = "DEFAULT"
    choices: tuple[str, ...] = ()
    secret: bool = False

    @property
    def flag(self) -> str:
        return "--" + self.key.replace("_", "-")


_ALGO_CHOICES = tuple(a.value for a in HashAlgo)
_PEER_REQUEST_CHOICES = tuple(o.value for o in PeerRequestOption)

CONFIG_FIELDS: tuple[ConfigField, ...] = (
    # Flags
    ConfigField("silent", ("silent",), bool, False, "Suppress all console output except the result."),
    ConfigField("no_resume", ("no_resume",), bool, False, "Do not resume partially downloaded files."),
    ConfigField("cache", ("cache",), bool, False, "Keep verified downloads in a local hash cache."),
    ConfigField("peer", ("peer",), bool, False, "Fetch through the local peer-cache service."),
    ConfigField("log_steps", ("log_steps",), bool, False, "Log each transfer phase at debug level."),
    ConfigField("track_network", ("track_network",), bool, False, "Restart the peer cache when network interfaces change."),
    # Files
    ConfigField("dest_file", ("dest_file",), str, "", "Destination file (default: name taken from the URL)."),
    ConfigField("cache_folder", ("cache_folder",), str, "", "Folder of the local hash cache."),
    ConfigField("cache_max_age_days", ("cache_max_age_days",), int, 0, "Days before cached entries expire (0 = never)."),
    # Request
    ConfigField("header", ("header",), str, "", "Custom HTTP header lines, 'Name: value'."),
    ConfigField("proxy", ("options", "proxy"), str, "", "Proxy URI for the outbound connection."),
    ConfigField("redirect_max", ("options", "redirect_max"), int, 5, "Maximum number of redirects to follow."),
    ConfigField("connect_timeout", ("options", "connect_timeout"), int, 0, "Per-connection timeout in seconds (0 = default)."),
    ConfigField("whole_request_timeout", ("options", "whole_request_timeout"), int, 0, "Whole-request timeout in seconds (0 = none)."),
    ConfigField("limit_bandwidth_mb", ("options", "limit_bandwidth_mb"), int, 0, "Bandwidth cap in MB/s (0 = none)."),
    # Verification
    ConfigField("hash_algo", ("hash_algo",), str, "auto", "Digest algorithm, or 'auto' to guess from the digest.", choices=_ALGO_CHOICES),
    ConfigField("hash_value", ("hash_value",), str, "", "Expected hexadecimal digest of the resource."),
    # Peer cache
    ConfigField("peer_secret", ("peer_secret",), str, "", "Shared secret of the peer-cache network.", secret=True),
    ConfigField("peer_secret_hex", ("peer_secret_hex",), str, "", "Shared secret, hex encoded.", secret=True),
    ConfigField("peer_request", ("peer_request",), list, [], "Peer request options, comma separated.", choices=_PEER_REQUEST_CHOICES),
    ConfigField("peer_backend", ("peer_settings", "backend"), str, "", "Peer-cache backend as 'module:factory'.", section="peer"),
    ConfigField("peer_port", ("peer_settings", "port"), int, 8008, "Port of the peer-cache service.", section="peer"),
    ConfigField("peer_interface", ("peer_settings", "interface_name"), str, "", "Network interface used by the peer cache.", section="peer"),
    ConfigField("peer_cache_temp_path", ("peer_settings", "cache_temp_path"), str, "", "Temporary folder of the peer cache.", section="peer"),
    ConfigField("peer_cache_perm_path", ("peer_settings", "cache_perm_path"), str, "", "Permanent folder of the peer cache.", section="peer"),
    ConfigField("peer_limit_mb_per_sec", ("peer_settings", "limit_mb_per_sec"), int, 10, "Bandwidth cap of the peer cache in MB/s.", section="peer"),
    ConfigField("peer_broadcast_timeout_ms", ("peer_settings", "broadcast_timeout_ms"), int, 10, "Peer discovery timeout in ms.", section="peer"),
    ConfigField("peer_http_timeout_ms", ("peer_settings", "http_timeout_ms"), int, 500, "Peer HTTP timeout in ms.", section="peer"),
    # TLS
    ConfigField("client_ca_file", ("client_tls", "ca_file"), str, "", "CA bundle for outbound TLS.", section="tls"),
    ConfigField("client_cert_file", ("client_tls", "cert_file"), str, "", "Client certificate for outbound TLS.", section="tls"),
    ConfigField("client_key_file", ("client_tls", "key_file"), str, "", "Client private key for outbound TLS.", section="tls"),
    ConfigField("client_insecure", ("client_tls", "ignore_certificate_errors"), bool, False, "Skip certificate verification for outbound TLS.", section="tls"),
    ConfigField("server_ca_file", ("server_tls", "ca_file"), str, "", "CA bundle used by the peer-cache server.", section="tls"),
    ConfigField("server_cert_file", ("server_tls", "cert_file"), str, "", "Certificate of the peer-cache server.", section="tls"),
    ConfigField("server_key_file", ("server_tls", "key_file"), str, "", "Private key of the peer-cache server.", section="tls"),
)

FIELDS_BY_KEY = {f.key: f for f in CONFIG_FIELDS}


def build_config(values: dict[str, Any], **internal: Any) -> ProcessConfig:
    """
    Builds a ProcessConfig from flat field values keyed by `ConfigField.key`.

    Unknown keys raise a ValueError. Missing keys keep the model defaults.
    """
    nested: dict[str, Any] = dict(internal)
    for key, value in values.items():
        field = FIELDS_BY_KEY.get(key)
        if field is None:
            raise ValueError(f"Unknown configuration key '{key}'.")
        target = nested
        for part in field.path[:-1]:
            target = target.setdefault(part, {})
        target[field.path[-1]] = value
    return ProcessConfig(**nested)
