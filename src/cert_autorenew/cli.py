"""
Command-line interface for the certificate renewal orchestrator.

This module provides the main CLI entry point with commands for:
- run: Run the renewal scheduler until interrupted
- check: Run one renewal check now
- renew / install: Manual certificate operations for one domain
- status / activity: Renewal overview and recent activity
- settings / toggle: Global policy and per-domain switches
- config: Configuration management
- self-test: Verify configuration, data directory and tool availability

Environment variables (also read from a ``.env`` file):
- CERT_AUTORENEW_CONFIG: default configuration file path
- CERT_AUTORENEW_HMAC_SECRET: overrides the state file HMAC secret
- CERT_AUTORENEW_DATA_DIR: overrides the data directory
"""

import argparse
import asyncio
import json
import os
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    CoordinationConfig,
    EventSinkConfig,
    LoggingConfig,
    PersistenceConfig,
    ProbeConfig,
    RetryConfig,
    SystemConfig,
    ToolConfig,
)
from .enums import CheckFrequency, InstallMethod
from .exceptions import CertAutoRenewError
from .i18n import SUPPORTED_LANGUAGES, get_message
from .self_test import DEFAULT_HMAC_SECRET, SelfTest, run_self_test
from .service import AutoRenewalService


DEFAULT_HOME = Path.home() / ".cert_autorenew"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.json"

ENV_CONFIG = "CERT_AUTORENEW_CONFIG"
ENV_HMAC_SECRET = "CERT_AUTORENEW_HMAC_SECRET"
ENV_DATA_DIR = "CERT_AUTORENEW_DATA_DIR"


def create_default_config(
    simulation_mode: bool = False,
    language: str = "de",
    data_dir: Optional[Path] = None,
    hmac_secret: str = DEFAULT_HMAC_SECRET,
    domains: Optional[list[str]] = None,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        simulation_mode: Enable simulation mode (no certificate tool runs)
        language: Output language ('de' or 'en')
        data_dir: Directory for the state file, activity log and run lock
        hmac_secret: Secret for HMAC protection of the state file
        domains: Domains whose certificates are managed

    Returns:
        SystemConfig with default settings
    """
    if data_dir is None:
        data_dir = DEFAULT_HOME / "data"

    return SystemConfig(
        persistence=PersistenceConfig(data_dir=data_dir, hmac_secret=hmac_secret),
        tool=ToolConfig(),
        probe=ProbeConfig(),
        coordination=CoordinationConfig(),
        retry=RetryConfig(),
        logging=LoggingConfig(level="info", output_format="text"),
        events=EventSinkConfig(),
        domains=list(domains or []),
        language=language,
        simulation_mode=simulation_mode,
        startup_self_test=False,
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        defaults = create_default_config()

        persistence_data = data.get("persistence", {})
        data_dir = persistence_data.get("data_dir")
        persistence = PersistenceConfig(
            data_dir=Path(data_dir) if data_dir else defaults.persistence.data_dir,
            hmac_secret=persistence_data.get("hmac_secret", DEFAULT_HMAC_SECRET),
        )

        tool_data = data.get("tool", {})
        tool_defaults = defaults.tool
        tool = ToolConfig(
            certbot_binary=tool_data.get("certbot_binary", tool_defaults.certbot_binary),
            acme_sh_binary=tool_data.get("acme_sh_binary", tool_defaults.acme_sh_binary),
            dns_hook=tool_data.get("dns_hook", tool_defaults.dns_hook),
            email=tool_data.get("email"),
            command_timeout_seconds=tool_data.get(
                "command_timeout_seconds", tool_defaults.command_timeout_seconds
            ),
            live_dir=Path(tool_data.get("live_dir", str(tool_defaults.live_dir))),
            lock_files=tool_data.get("lock_files", tool_defaults.lock_files),
            process_names=tool_data.get("process_names", tool_defaults.process_names),
        )

        probe_data = data.get("probe", {})
        probe_defaults = defaults.probe
        probe = ProbeConfig(
            timeout_seconds=probe_data.get("timeout_seconds", probe_defaults.timeout_seconds),
            port=probe_data.get("port", probe_defaults.port),
            cache_ttl_seconds=probe_data.get("cache_ttl_seconds", probe_defaults.cache_ttl_seconds),
            cert_path_templates=probe_data.get(
                "cert_path_templates", probe_defaults.cert_path_templates
            ),
        )

        coordination_data = data.get("coordination", {})
        coordination = CoordinationConfig(**{
            key: coordination_data[key]
            for key in CoordinationConfig.__dataclass_fields__
            if key in coordination_data
        })

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=retry_data.get("max_retries", 2),
            base_delay_seconds=retry_data.get("base_delay_seconds", 5.0),
            max_delay_seconds=retry_data.get("max_delay_seconds", 60.0),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            audit_mode=logging_data.get("audit_mode", False),
            audit_signing_key=logging_data.get("audit_signing_key"),
            output_format=logging_data.get("output_format", "text"),
        )

        events_data = data.get("events", {})
        events = EventSinkConfig(
            webhook_url=events_data.get("webhook_url"),
            webhook_headers=events_data.get("webhook_headers", {}),
            timeout_seconds=events_data.get("timeout_seconds", 10.0),
        )

        return SystemConfig(
            persistence=persistence,
            tool=tool,
            probe=probe,
            coordination=coordination,
            retry=retry,
            logging=logging_config,
            events=events,
            domains=list(data.get("domains", [])),
            language=data.get("language", "de"),
            simulation_mode=data.get("simulation_mode", False),
            startup_self_test=data.get("startup_self_test", False),
        )

    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "persistence": {
                "data_dir": str(config.persistence.data_dir),
                "hmac_secret": config.persistence.hmac_secret,
            },
            "tool": {
                "certbot_binary": config.tool.certbot_binary,
                "acme_sh_binary": config.tool.acme_sh_binary,
                "dns_hook": config.tool.dns_hook,
                "email": config.tool.email,
                "command_timeout_seconds": config.tool.command_timeout_seconds,
                "live_dir": str(config.tool.live_dir),
                "lock_files": config.tool.lock_files,
                "process_names": config.tool.process_names,
            },
            "probe": {
                "timeout_seconds": config.probe.timeout_seconds,
                "port": config.probe.port,
                "cache_ttl_seconds": config.probe.cache_ttl_seconds,
                "cert_path_templates": config.probe.cert_path_templates,
            },
            "coordination": {
                "processing_stale_seconds": config.coordination.processing_stale_seconds,
                "processing_poll_seconds": config.coordination.processing_poll_seconds,
                "busy_retry_count": config.coordination.busy_retry_count,
                "busy_retry_delay_seconds": config.coordination.busy_retry_delay_seconds,
                "run_lock_stale_seconds": config.coordination.run_lock_stale_seconds,
                "chunk_pause_seconds": config.coordination.chunk_pause_seconds,
            },
            "retry": {
                "max_retries": config.retry.max_retries,
                "base_delay_seconds": config.retry.base_delay_seconds,
                "max_delay_seconds": config.retry.max_delay_seconds,
            },
            "logging": {
                "level": config.logging.level,
                "audit_mode": config.logging.audit_mode,
                "audit_signing_key": config.logging.audit_signing_key,
                "output_format": config.logging.output_format,
            },
            "events": {
                "webhook_url": config.events.webhook_url,
                "webhook_headers": config.events.webhook_headers,
                "timeout_seconds": config.events.timeout_seconds,
            },
            "domains": config.domains,
            "language": config.language,
            "simulation_mode": config.simulation_mode,
            "startup_self_test": config.startup_self_test,
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def apply_env_overrides(config: SystemConfig) -> SystemConfig:
    """Apply CERT_AUTORENEW_* environment variables to a configuration."""
    hmac_secret = os.getenv(ENV_HMAC_SECRET)
    data_dir = os.getenv(ENV_DATA_DIR)
    if not hmac_secret and not data_dir:
        return config
    persistence = PersistenceConfig(
        data_dir=Path(data_dir) if data_dir else config.persistence.data_dir,
        hmac_secret=hmac_secret or config.persistence.hmac_secret,
    )
    return replace(config, persistence=persistence)


def resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """
    Build the effective configuration for a command.

    Order: config file (``--config`` or CERT_AUTORENEW_CONFIG) or defaults,
    then environment overrides, then ``--dry-run`` and ``--language``.
    """
    load_dotenv()

    config_path = args.config or os.getenv(ENV_CONFIG)
    if config_path:
        config = load_config_from_file(Path(config_path))
        if config is None:
            print(
                get_message("cli.config_load_failed", args.language, path=config_path),
                file=sys.stderr,
            )
            return None
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config_from_file(DEFAULT_CONFIG_PATH)
        if config is None:
            return None
    else:
        config = create_default_config(language=args.language or "de")

    config = apply_env_overrides(config)
    if args.dry_run:
        config = replace(config, simulation_mode=True)
    if args.language:
        config = replace(config, language=args.language)
    return config


def _create_logger(config: SystemConfig, verbose: bool) -> Optional[AuditLogger]:
    if not verbose:
        return None
    return AuditLogger.from_config(config.logging, output_stream=sys.stderr)


def _print_error(error: CertAutoRenewError, language: str) -> None:
    print(get_message("cli.invalid_input", language, error=error.message), file=sys.stderr)


async def run_daemon(config: SystemConfig, verbose: bool = False) -> int:
    """
    Run the renewal scheduler until SIGINT or SIGTERM.

    Returns:
        Exit code
    """
    language = config.language

    if config.startup_self_test:
        self_test_result = await run_self_test(
            config=config,
            print_output=verbose,
            language=language,
        )
        if not self_test_result.success:
            print(get_message("selftest.failed", language), file=sys.stderr)
            return 1

    if config.simulation_mode:
        print(get_message("simulation.enabled", language))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Platforms without signal support fall back to KeyboardInterrupt
            pass

    async with AutoRenewalService(config, logger=_create_logger(config, verbose)) as service:
        policy = service.store.load_policy()
        if not policy.global_enabled:
            print(get_message("cli.scheduler_disabled", language))
            return 0
        print(get_message(
            "cli.scheduler_started", language, frequency=policy.check_frequency.value
        ))
        await stop.wait()
    return 0


async def run_check(config: SystemConfig, verbose: bool = False) -> int:
    """Run one renewal check and print its summary."""
    language = config.language
    if config.simulation_mode:
        print(get_message("simulation.enabled", language))
    print(get_message("cli.check_started", language))

    service = AutoRenewalService(config, logger=_create_logger(config, verbose))
    try:
        tick = await service.run_check_now()
    finally:
        await service.shutdown()

    if tick.skipped:
        print(get_message("cli.check_skipped", language, reason=tick.message))
        return 0

    cycle = tick.result
    print(get_message(
        "cli.check_summary",
        language,
        checked=cycle.checked,
        eligible=cycle.eligible,
        renewed=cycle.renewed,
        failed=cycle.failed,
        skipped=cycle.skipped,
        check_errors=cycle.check_errors,
    ))
    if verbose:
        for detail in cycle.details:
            status = "✓" if detail.success else "✗"
            text = detail.message if detail.success else detail.error
            print(f"  {status} {detail.domain} [{detail.action}] {text or ''}")
    return 1 if cycle.failed or cycle.check_errors else 0


async def renew_single_domain(config: SystemConfig, domain: str, verbose: bool = False) -> int:
    language = config.language
    if config.simulation_mode:
        print(get_message("simulation.enabled", language))
    print(get_message("cli.renewing_domain", language, domain=domain))

    service = AutoRenewalService(config, logger=_create_logger(config, verbose))
    try:
        detail = await service.renew_domain(domain)
    finally:
        await service.shutdown()

    if detail.success:
        print(get_message("cli.success", language, message=detail.message or domain))
        return 0
    print(get_message("cli.failure", language, error=detail.error), file=sys.stderr)
    return 1


async def install_single_domain(
    config: SystemConfig,
    domain: str,
    email: str,
    method: InstallMethod,
    verbose: bool = False,
) -> int:
    language = config.language
    if config.simulation_mode:
        print(get_message("simulation.enabled", language))
    print(get_message("cli.installing_domain", language, domain=domain, method=method.value))

    service = AutoRenewalService(config, logger=_create_logger(config, verbose))
    try:
        result = await service.install_certificate(domain, email, method)
    finally:
        await service.shutdown()

    if result.success:
        print(get_message("cli.success", language, message=result.message))
        return 0
    print(get_message("cli.failure", language, error=result.message), file=sys.stderr)
    if verbose and result.output:
        print(result.output, file=sys.stderr)
    return 1


def print_status(status: dict, language: str) -> None:
    """Print the renewal status overview as a table."""
    global_config = status["global_config"]
    stats = status["statistics"]

    print(get_message("report.header", language))
    print("=" * 60)
    print(f"  {get_message('report.global_enabled', language)}: {global_config['global_enabled']}")
    print(f"  {get_message('report.window', language, days=global_config['renewal_window_days'])}")
    print(f"  {get_message('report.frequency', language, frequency=global_config['check_frequency'])}")
    print(
        f"  checks={stats['total_checks']} attempted={stats['renewals_attempted']} "
        f"succeeded={stats['renewals_succeeded']} failed={stats['renewals_failed']}"
    )
    print("-" * 60)

    if not status["domains"]:
        print(get_message("cli.no_domains", language))
        return

    for row in status["domains"]:
        marker = "✓" if row["enabled"] else "-"
        if row["has_ssl"]:
            expiry = get_message("report.days_left", language, days=row["days_until_expiry"])
        else:
            expiry = get_message("report.no_certificate", language)
        flags = []
        if row["renewal_needed"]:
            flags.append(get_message("report.renewal_needed", language))
        if row["in_progress"]:
            flags.append(get_message("report.in_progress", language))
        state = get_message(f"status.{row['status']}", language)
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"  {marker} {row['domain']:<40} {expiry:<22} {state}{suffix}")
        if row["last_error"]:
            print(f"      {row['last_error']}")


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    try:
        return asyncio.run(run_daemon(config, verbose=args.verbose))
    except KeyboardInterrupt:
        return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(run_check(config, verbose=args.verbose))


def cmd_renew(args: argparse.Namespace) -> int:
    """Handle the 'renew' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    try:
        return asyncio.run(renew_single_domain(config, args.domain, verbose=args.verbose))
    except CertAutoRenewError as e:
        _print_error(e, config.language)
        return 1


def cmd_install(args: argparse.Namespace) -> int:
    """Handle the 'install' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    email = args.email or config.tool.email or ""
    try:
        return asyncio.run(install_single_domain(
            config,
            args.domain,
            email,
            InstallMethod(args.method),
            verbose=args.verbose,
        ))
    except CertAutoRenewError as e:
        _print_error(e, config.language)
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Handle the 'status' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    async def _status() -> dict:
        service = AutoRenewalService(config, logger=_create_logger(config, args.verbose))
        try:
            return await service.get_renewal_status()
        finally:
            await service.shutdown()

    status = asyncio.run(_status())
    if args.json:
        print(json.dumps(status, indent=2, ensure_ascii=False))
    else:
        print_status(status, config.language)
    return 0


def cmd_activity(args: argparse.Namespace) -> int:
    """Handle the 'activity' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    service = AutoRenewalService(config)
    entries = service.get_activity(args.limit)
    if not entries:
        print(get_message("cli.no_activity", config.language))
        return 0
    for entry in entries:
        print(f"{entry.timestamp.isoformat()} [{entry.event_kind}] {entry.domain}: {entry.message}")
        if args.verbose and entry.details:
            print(f"    {json.dumps(entry.details, ensure_ascii=False)}")
    return 0


def cmd_settings(args: argparse.Namespace) -> int:
    """Handle the 'settings' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    language = config.language

    async def _update() -> None:
        service = AutoRenewalService(config, logger=_create_logger(config, args.verbose))
        try:
            await service.update_settings(
                global_enabled=args.enabled,
                renewal_window_days=args.window,
                check_frequency=CheckFrequency(args.frequency) if args.frequency else None,
                max_concurrent_renewals=args.max_concurrent,
                retry_failed_after_hours=args.retry_hours,
            )
        finally:
            await service.shutdown()

    if args.action == "set":
        try:
            asyncio.run(_update())
        except CertAutoRenewError as e:
            _print_error(e, language)
            return 1
        print(get_message("cli.settings_saved", language))

    policy = AutoRenewalService(config).store.load_policy()
    print(f"  global_enabled: {policy.global_enabled}")
    print(f"  renewal_window_days: {policy.renewal_window_days}")
    print(f"  check_frequency: {policy.check_frequency.value}")
    print(f"  max_concurrent_renewals: {policy.max_concurrent_renewals}")
    print(f"  retry_failed_after_hours: {policy.retry_failed_after_hours}")
    return 0


def cmd_toggle(args: argparse.Namespace) -> int:
    """Handle the 'toggle' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    enabled = args.state == "on"
    try:
        state = AutoRenewalService(config).set_domain_enabled(args.domain, enabled)
    except CertAutoRenewError as e:
        _print_error(e, config.language)
        return 1
    key = "cli.domain_enabled" if enabled else "cli.domain_disabled"
    print(get_message(key, config.language, domain=state.domain))
    return 0


def cmd_self_test(args: argparse.Namespace) -> int:
    """Handle the 'self-test' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    result = asyncio.run(run_self_test(
        config=config,
        print_output=True,
        language=config.language,
    ))

    return 0 if result.success else 1


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    load_dotenv()
    path = args.path or args.config or os.getenv(ENV_CONFIG)
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    language = args.language or "de"

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Language: {config.language}")
        print(f"  Simulation mode: {config.simulation_mode}")
        print(f"  Domains: {', '.join(config.domains) or '-'}")
        print(f"  Data directory: {config.persistence.data_dir}")
        print(f"  Certbot: {config.tool.certbot_binary}")
        print(f"  Webhook: {config.events.webhook_url or '-'}")
        print(f"  Log level: {config.logging.level}")
        print(f"  Audit mode: {config.logging.audit_mode}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        config = create_default_config(language=language)
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(get_message("cli.config_load_failed", language, path=config_path), file=sys.stderr)
            return 1

        validation = SelfTest(config).validate_config()
        for warning in validation.warnings:
            print(f"  Warning: {warning}")
        if not validation.valid:
            for error in validation.errors:
                print(f"  Error: {error}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _optional_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("on", "true", "yes", "1"):
        return True
    if lowered in ("off", "false", "no", "0"):
        return False
    raise argparse.ArgumentTypeError(f"expected on/off, got {value!r}")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        help=f"Path to configuration file (env: {ENV_CONFIG})",
    )
    common.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - the certificate tool is never invoked",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    common.add_argument(
        "--language", "-l",
        choices=sorted(SUPPORTED_LANGUAGES),
        default=None,
        help="Output language (default: from config, else de)",
    )

    parser = argparse.ArgumentParser(
        prog="cert-autorenew",
        description="Automatic TLS certificate renewal orchestrator",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run the renewal scheduler until interrupted",
    )
    run_parser.set_defaults(func=cmd_run)

    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Run one renewal check now",
    )
    check_parser.set_defaults(func=cmd_check)

    renew_parser = subparsers.add_parser(
        "renew",
        parents=[common],
        help="Renew the certificate of one domain now",
    )
    renew_parser.add_argument("domain", help="Domain to renew (e.g., example.com)")
    renew_parser.set_defaults(func=cmd_renew)

    install_parser = subparsers.add_parser(
        "install",
        parents=[common],
        help="Obtain a first certificate for a domain",
    )
    install_parser.add_argument("domain", help="Domain to install a certificate for")
    install_parser.add_argument(
        "--email", "-e",
        help="ACME account e-mail (default: tool.email from config)",
    )
    install_parser.add_argument(
        "--method", "-m",
        choices=[m.value for m in InstallMethod],
        default=InstallMethod.HTTP_CHALLENGE.value,
        help="Challenge method (default: http)",
    )
    install_parser.set_defaults(func=cmd_install)

    status_parser = subparsers.add_parser(
        "status",
        parents=[common],
        help="Show the renewal status of all domains",
    )
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    activity_parser = subparsers.add_parser(
        "activity",
        parents=[common],
        help="Show recent activity, newest first",
    )
    activity_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=20,
        help="Number of entries to show (default: 20)",
    )
    activity_parser.set_defaults(func=cmd_activity)

    settings_parser = subparsers.add_parser(
        "settings",
        parents=[common],
        help="Show or change the global renewal policy",
    )
    settings_parser.add_argument("action", choices=["show", "set"], help="Settings action")
    settings_parser.add_argument(
        "--enabled",
        type=_optional_bool,
        default=None,
        help="Enable or disable automatic renewal (on/off)",
    )
    settings_parser.add_argument("--window", type=int, help="Renewal window in days")
    settings_parser.add_argument(
        "--frequency",
        choices=[f.value for f in CheckFrequency],
        help="Check frequency",
    )
    settings_parser.add_argument(
        "--max-concurrent",
        type=int,
        help="Maximum number of concurrent renewals",
    )
    settings_parser.add_argument(
        "--retry-hours",
        type=int,
        help="Hours to wait before retrying a failed renewal",
    )
    settings_parser.set_defaults(func=cmd_settings)

    toggle_parser = subparsers.add_parser(
        "toggle",
        parents=[common],
        help="Enable or disable automatic renewal for one domain",
    )
    toggle_parser.add_argument("domain", help="Domain to toggle")
    toggle_parser.add_argument("state", choices=["on", "off"], help="New state")
    toggle_parser.set_defaults(func=cmd_toggle)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    self_test_parser = subparsers.add_parser(
        "self-test",
        parents=[common],
        help="Verify configuration, data directory and tool availability",
    )
    self_test_parser.set_defaults(func=cmd_self_test)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
