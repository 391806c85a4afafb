"""
Configuration dataclasses for the certificate renewal orchestrator.

This module defines all configuration structures used throughout the system,
including the external tool invocation, status probing, coordination
timeouts, retry behavior, persistence, logging and event delivery.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


DEFAULT_CERT_PATH_TEMPLATES = [
    "/etc/letsencrypt/live/{domain}/fullchain.pem",
    "/etc/ssl/acme/{domain}/fullchain.pem",
    "/root/.acme.sh/{domain}/fullchain.cer",
    "/etc/ssl/certs/{domain}.pem",
]

DEFAULT_TOOL_LOCK_FILES = [
    "/var/lib/letsencrypt/.certbot.lock",
    "/etc/letsencrypt/.certbot.lock",
    "/var/log/letsencrypt/.certbot.lock",
]


@dataclass
class ToolConfig:
    """External certificate tool configuration."""

    certbot_binary: str = "certbot"
    acme_sh_binary: str = "acme.sh"
    dns_hook: str = "dns_cloudns"
    email: Optional[str] = None
    command_timeout_seconds: float = 300.0
    live_dir: Path = Path("/etc/letsencrypt/live")
    lock_files: list[str] = field(
        default_factory=lambda: list(DEFAULT_TOOL_LOCK_FILES)
    )
    process_names: list[str] = field(default_factory=lambda: ["certbot", "acme.sh"])


@dataclass
class ProbeConfig:
    """Certificate status probing configuration."""

    timeout_seconds: float = 5.0
    port: int = 443
    cache_ttl_seconds: float = 300.0
    cert_path_templates: list[str] = field(
        default_factory=lambda: list(DEFAULT_CERT_PATH_TEMPLATES)
    )


@dataclass
class CoordinationConfig:
    """Timeouts and delays for the tool coordinator, executor and run lock."""

    processing_stale_seconds: float = 300.0
    processing_poll_seconds: float = 2.0
    busy_retry_count: int = 5
    busy_retry_delay_seconds: float = 10.0
    run_lock_stale_seconds: float = 2 * 60 * 60
    chunk_pause_seconds: float = 5.0


@dataclass
class RetryConfig:
    """Retry behavior for transient tool failures."""

    max_retries: int = 2
    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 60.0


@dataclass
class PersistenceConfig:
    """Persistence and state storage configuration."""

    data_dir: Path
    hmac_secret: str

    @property
    def state_file_path(self) -> Path:
        return self.data_dir / "autorenewal.json"

    @property
    def activity_log_path(self) -> Path:
        return self.data_dir / "autorenewal.log"

    @property
    def lock_file_path(self) -> Path:
        return self.data_dir / "autorenewal.lock"


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class EventSinkConfig:
    """Optional HTTP webhook receiving orchestrator events."""

    webhook_url: Optional[str] = None
    webhook_headers: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = 10.0


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    persistence: PersistenceConfig
    tool: ToolConfig = field(default_factory=ToolConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    coordination: CoordinationConfig = field(default_factory=CoordinationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    events: EventSinkConfig = field(default_factory=EventSinkConfig)
    domains: list[str] = field(default_factory=list)
    language: str = "de"  # 'de' or 'en'
    simulation_mode: bool = False
    startup_self_test: bool = False
