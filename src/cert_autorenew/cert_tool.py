"""
Certificate tool adapters.

The external tool is treated as a pass/fail subprocess per domain per
installation method. certbot handles the HTTP challenge; the DNS challenge
is delegated to acme.sh with a DNS provider hook. Commands are run without a
shell and are bounded by a timeout.
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

from .audit_logger import AuditLogger
from .config import ToolConfig
from .enums import InstallMethod, LogLevel
from .exceptions import RenewalFailedError
from .models import ToolResult


@dataclass
class CommandOutput:
    """Exit status and decoded output of one subprocess run."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def combined(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


CommandRunner = Callable[[list[str], float, Optional[dict]], Awaitable[CommandOutput]]


async def run_command(
    argv: list[str], timeout: float, env: Optional[dict] = None
) -> CommandOutput:
    """
    Run ``argv`` and collect its output.

    Raises:
        RenewalFailedError: (transient) if the binary cannot be started or
            the process does not finish within ``timeout``
    """
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=full_env,
        )
    except OSError as e:
        raise RenewalFailedError(
            code="tool_unavailable",
            message=f"Failed to start {argv[0]}: {e}",
            details={"command": argv[0]},
            transient=True,
        )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise RenewalFailedError(
            code="tool_timeout",
            message=f"{argv[0]} timed out after {timeout}s",
            details={"command": argv[0], "timeout": timeout},
            transient=True,
        )

    return CommandOutput(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
        stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
    )


class CertTool(Protocol):
    """Interface of a certificate issuance tool."""

    async def install(
        self, domain: str, email: str, method: InstallMethod
    ) -> ToolResult: ...

    async def renew(self, domain: str, method: InstallMethod) -> ToolResult: ...

    async def version(self) -> Optional[str]: ...


def _check_exit(argv: list[str], output: CommandOutput, domain: str) -> None:
    if output.returncode != 0:
        raise RenewalFailedError(
            code="tool_failed",
            message=(output.stderr or output.stdout or "Unknown error").strip()[:500],
            details={
                "domain": domain,
                "command": " ".join(argv),
                "exit_code": output.returncode,
            },
        )


class DnsChallengeMethod:
    """
    DNS challenge through acme.sh and a DNS provider hook.

    Provider credentials are passed to acme.sh through ``env``
    (for example ``CLOUDNS_AUTH_ID`` and ``CLOUDNS_AUTH_PASSWORD``).
    """

    def __init__(
        self,
        binary: str = "acme.sh",
        hook: str = "dns_cloudns",
        env: Optional[dict] = None,
        timeout_seconds: float = 300.0,
        runner: CommandRunner = run_command,
    ) -> None:
        self._binary = binary
        self._hook = hook
        self._env = dict(env or {})
        self._timeout_seconds = timeout_seconds
        self._runner = runner

    def issue_command(self, domain: str, email: Optional[str]) -> list[str]:
        argv = [self._binary, "--issue", "--dns", self._hook, "-d", domain]
        if email:
            argv += ["--accountemail", email]
        return argv

    def renew_command(self, domain: str) -> list[str]:
        return [self._binary, "--renew", "-d", domain, "--force"]

    async def issue(self, domain: str, email: Optional[str]) -> ToolResult:
        argv = self.issue_command(domain, email)
        output = await self._runner(argv, self._timeout_seconds, self._env or None)
        _check_exit(argv, output, domain)
        return ToolResult(
            success=True,
            method=InstallMethod.DNS_CHALLENGE,
            message=f"Certificate issued for {domain} via DNS challenge",
            output=output.combined,
        )

    async def renew(self, domain: str) -> ToolResult:
        argv = self.renew_command(domain)
        output = await self._runner(argv, self._timeout_seconds, self._env or None)
        _check_exit(argv, output, domain)
        return ToolResult(
            success=True,
            method=InstallMethod.DNS_CHALLENGE,
            message=f"Certificate renewed for {domain} via DNS challenge",
            output=output.combined,
        )


class CertbotTool:
    """certbot with the nginx plugin; DNS challenges go to ``dns_method``."""

    def __init__(
        self,
        config: ToolConfig,
        dns_method: Optional[DnsChallengeMethod] = None,
        logger: Optional[AuditLogger] = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self._config = config
        self._logger = logger
        self._runner = runner
        self._dns_method = dns_method or DnsChallengeMethod(
            binary=config.acme_sh_binary,
            hook=config.dns_hook,
            timeout_seconds=config.command_timeout_seconds,
            runner=runner,
        )

    def install_command(self, domain: str, email: str) -> list[str]:
        return [
            self._config.certbot_binary, "certonly", "--nginx",
            "--non-interactive", "--agree-tos",
            "--email", email,
            "-d", domain,
            "--expand",
        ]

    def renew_command(self, domain: str) -> list[str]:
        return [
            self._config.certbot_binary, "renew",
            "--cert-name", domain,
            "--nginx", "--non-interactive",
        ]

    def live_certificate_path(self, domain: str) -> Path:
        return Path(self._config.live_dir) / domain / "fullchain.pem"

    async def install(
        self, domain: str, email: str, method: InstallMethod
    ) -> ToolResult:
        """
        Obtain a new certificate for ``domain``.

        Raises:
            RenewalFailedError: If the tool failed or could not be run
        """
        self._log_info(f"Installing certificate for {domain}", {"domain": domain, "method": method.value})

        if method == InstallMethod.DNS_CHALLENGE:
            return await self._dns_method.issue(domain, email)

        argv = self.install_command(domain, email)
        output = await self._runner(argv, self._config.command_timeout_seconds, None)
        _check_exit(argv, output, domain)

        cert_path = self.live_certificate_path(domain)
        if not cert_path.exists():
            return ToolResult(
                success=False,
                method=method,
                message=f"certbot finished but no certificate was found at {cert_path}",
                output=output.combined,
            )
        return ToolResult(
            success=True,
            method=method,
            message=f"Certificate installed for {domain}",
            output=output.combined,
            certificate_path=str(cert_path),
        )

    async def renew(self, domain: str, method: InstallMethod) -> ToolResult:
        """
        Renew the certificate of ``domain`` with the method it was installed with.

        Raises:
            RenewalFailedError: If the tool failed or could not be run
        """
        if method == InstallMethod.DNS_CHALLENGE:
            return await self._dns_method.renew(domain)

        argv = self.renew_command(domain)
        output = await self._runner(argv, self._config.command_timeout_seconds, None)
        _check_exit(argv, output, domain)
        return ToolResult(
            success=True,
            method=method,
            message=f"Certificate renewed for {domain}",
            output=output.combined,
        )

    async def version(self) -> Optional[str]:
        """certbot's version string, or None when it is not available."""
        try:
            output = await self._runner(
                [self._config.certbot_binary, "--version"], 30.0, None
            )
        except RenewalFailedError:
            return None
        if output.returncode != 0:
            return None
        return output.combined.strip() or None

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "CertbotTool", message, data)


class SimulatedCertTool:
    """
    Certificate tool that never touches the system.

    Every call is recorded in ``calls``. Domains listed in ``fail_domains``
    report failure.
    """

    def __init__(
        self,
        fail_domains: Optional[set[str]] = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.fail_domains = set(fail_domains or ())
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[str, str, InstallMethod]] = []

    async def install(
        self, domain: str, email: str, method: InstallMethod
    ) -> ToolResult:
        return await self._run("install", domain, method)

    async def renew(self, domain: str, method: InstallMethod) -> ToolResult:
        return await self._run("renew", domain, method)

    async def version(self) -> Optional[str]:
        return "simulated"

    async def _run(self, action: str, domain: str, method: InstallMethod) -> ToolResult:
        self.calls.append((action, domain, method))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if domain in self.fail_domains:
            return ToolResult(
                success=False,
                method=method,
                message=f"Simulated {action} failure for {domain}",
            )
        return ToolResult(
            success=True,
            method=method,
            message=f"Simulated {action} for {domain}",
        )


class ToolActivityProbe:
    """Detects whether the external tool is running anywhere on the host."""

    def __init__(
        self,
        lock_files: list[str],
        process_names: list[str],
        runner: CommandRunner = run_command,
    ) -> None:
        self._lock_files = [Path(p) for p in lock_files]
        self._process_names = list(process_names)
        self._runner = runner

    async def is_busy(self) -> bool:
        """True if a tool lock artifact exists or a tool process is running."""
        if any(path.exists() for path in self._lock_files):
            return True

        for name in self._process_names:
            try:
                output = await self._runner(["pgrep", "-x", name], 5.0, None)
            except RenewalFailedError:
                # pgrep missing or hung: process detection is unavailable
                return False
            if output.returncode == 0:
                return True
        return False
