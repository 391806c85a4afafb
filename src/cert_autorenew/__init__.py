"""
Cert AutoRenew - Automatic TLS certificate renewal orchestrator.

This package periodically inspects the certificates of managed domains,
decides which are due for renewal and drives an external ACME tool under
bounded concurrency, with coordination against concurrent tool runs.
"""

__version__ = "0.1.0"
__author__ = "Cert AutoRenew Team"

from cert_autorenew.exceptions import (
    CertAutoRenewError,
    ValidationError,
    PersistenceError,
    ConfigCorruptError,
    ToolBusyError,
    ProbeUnavailableError,
    RenewalFailedError,
    EventDeliveryError,
)
from cert_autorenew.enums import (
    ActivityKind,
    CheckFrequency,
    DomainValidationErrorCode,
    InstallMethod,
    LogLevel,
    ProbeSource,
    RenewalStatus,
)
from cert_autorenew.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
)
from cert_autorenew.config import (
    ToolConfig,
    ProbeConfig,
    CoordinationConfig,
    RetryConfig,
    PersistenceConfig,
    LoggingConfig,
    EventSinkConfig,
    SystemConfig,
)
from cert_autorenew.models import (
    ActivityLogEntry,
    CycleResult,
    DiscoveredHost,
    DomainRenewalState,
    EligibilityDecision,
    GlobalPolicy,
    RenewalDetail,
    RenewalStatistics,
    RunLockRecord,
    SSLStatus,
    TickResult,
    ToolResult,
)
from cert_autorenew.audit_logger import (
    AuditLogger,
    LogEntry,
)
from cert_autorenew.retry_manager import (
    RetryManager,
    RetryResult,
)
from cert_autorenew.activity_log import ActivityLog
from cert_autorenew.state_store import ConfigStore
from cert_autorenew.run_lock import RunLock
from cert_autorenew.prober import StatusProber
from cert_autorenew.status_cache import StatusCache
from cert_autorenew.cert_tool import (
    CertTool,
    CertbotTool,
    DnsChallengeMethod,
    SimulatedCertTool,
    ToolActivityProbe,
)
from cert_autorenew.tool_coordinator import (
    ProcessingSet,
    ToolCoordinator,
)
from cert_autorenew.events import (
    CallbackSink,
    Event,
    EventBus,
    EventSink,
    LoggingSink,
    WebhookSink,
)
from cert_autorenew.eligibility import EligibilityEvaluator
from cert_autorenew.executor import BatchRenewalExecutor
from cert_autorenew.scheduler import (
    PeriodicTask,
    RenewalScheduler,
)
from cert_autorenew.discovery import (
    HostDiscovery,
    StaticHostDiscovery,
)
from cert_autorenew.service import AutoRenewalService
from cert_autorenew.i18n import (
    get_message,
    get_missing_translations,
    validate_translations,
    TRANSLATIONS,
    SUPPORTED_LANGUAGES,
    DEFAULT_LANGUAGE,
)
from cert_autorenew.self_test import (
    SelfTest,
    SelfTestResult,
    CheckResult,
    ConfigValidationResult,
    run_self_test,
)
from cert_autorenew.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "CertAutoRenewError",
    "ValidationError",
    "PersistenceError",
    "ConfigCorruptError",
    "ToolBusyError",
    "ProbeUnavailableError",
    "RenewalFailedError",
    "EventDeliveryError",
    # Enums
    "ActivityKind",
    "CheckFrequency",
    "DomainValidationErrorCode",
    "InstallMethod",
    "LogLevel",
    "ProbeSource",
    "RenewalStatus",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    # Config
    "ToolConfig",
    "ProbeConfig",
    "CoordinationConfig",
    "RetryConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "EventSinkConfig",
    "SystemConfig",
    # Models
    "ActivityLogEntry",
    "CycleResult",
    "DiscoveredHost",
    "DomainRenewalState",
    "EligibilityDecision",
    "GlobalPolicy",
    "RenewalDetail",
    "RenewalStatistics",
    "RunLockRecord",
    "SSLStatus",
    "TickResult",
    "ToolResult",
    # Logging
    "AuditLogger",
    "LogEntry",
    # Retry
    "RetryManager",
    "RetryResult",
    # Persistence and coordination
    "ActivityLog",
    "ConfigStore",
    "RunLock",
    "ProcessingSet",
    "ToolCoordinator",
    # Status
    "StatusProber",
    "StatusCache",
    # Certificate tool
    "CertTool",
    "CertbotTool",
    "DnsChallengeMethod",
    "SimulatedCertTool",
    "ToolActivityProbe",
    # Events
    "CallbackSink",
    "Event",
    "EventBus",
    "EventSink",
    "LoggingSink",
    "WebhookSink",
    # Renewal
    "EligibilityEvaluator",
    "BatchRenewalExecutor",
    "PeriodicTask",
    "RenewalScheduler",
    "HostDiscovery",
    "StaticHostDiscovery",
    "AutoRenewalService",
    # i18n
    "get_message",
    "get_missing_translations",
    "validate_translations",
    "TRANSLATIONS",
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    # Self-test
    "SelfTest",
    "SelfTestResult",
    "CheckResult",
    "ConfigValidationResult",
    "run_self_test",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
