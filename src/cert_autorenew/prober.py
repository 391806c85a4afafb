"""
Status Prober for certificate expiry.

Determines a domain's certificate state from a locally stored certificate
file or, failing that, from a live TLS handshake. Both channels run in the
default executor and are bounded by a timeout. A channel that gives no result
raises ProbeUnavailableError and the next channel gets a chance.
"""

import asyncio
import socket
import ssl
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from .audit_logger import AuditLogger
from .config import ProbeConfig
from .enums import LogLevel, ProbeSource
from .exceptions import ProbeUnavailableError
from .models import SSLStatus

# (host, port, timeout) -> DER-encoded peer certificate
LiveFetcher = Callable[[str, int, float], Optional[bytes]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def fetch_peer_certificate(host: str, port: int, timeout: float) -> Optional[bytes]:
    """
    Fetch the peer certificate of ``host`` in DER form.

    Verification is disabled so expired and self-signed certificates are
    still returned.
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    with socket.create_connection((host, port), timeout=timeout) as sock:
        with ctx.wrap_socket(sock, server_hostname=host) as ssock:
            return ssock.getpeercert(binary_form=True)


def issuer_name(cert: x509.Certificate) -> str:
    """Issuer organization, falling back to the RFC 4514 form of the issuer."""
    orgs = cert.issuer.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
    if orgs:
        return str(orgs[0].value)
    return cert.issuer.rfc4514_string()


class StatusProber:
    """Looks up certificate status via certificate files and live TLS."""

    def __init__(
        self,
        config: ProbeConfig,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        live_fetcher: Optional[LiveFetcher] = None,
    ) -> None:
        """
        Initialize the prober.

        Args:
            config: Probe configuration (timeout, port, path templates)
            logger: Optional audit logger
            clock: Source of the current time
            live_fetcher: Replaces the TLS handshake, mainly for tests
        """
        self._config = config
        self._logger = logger
        self._clock = clock or _utc_now
        self._live_fetcher = live_fetcher or fetch_peer_certificate

    async def probe(
        self, domain: str, certificate_path: Optional[str] = None
    ) -> Optional[SSLStatus]:
        """
        Determine the certificate status of ``domain``.

        Order: registered certificate file, path templates, live TLS on the
        domain, then live TLS on ``www.<domain>``. A result found for the
        www variant is reported under ``domain``.

        Returns:
            SSLStatus, or None when no channel produced a certificate
        """
        try:
            return await self._probe_files(domain, certificate_path)
        except ProbeUnavailableError as e:
            self._log_unavailable(e)

        try:
            return await self._probe_live(domain)
        except ProbeUnavailableError as e:
            self._log_unavailable(e)

        if not domain.startswith("www."):
            try:
                status = await self._probe_live(f"www.{domain}")
                return status.with_domain(domain)
            except ProbeUnavailableError as e:
                self._log_unavailable(e)

        self._log(LogLevel.DEBUG, f"No certificate found for {domain}", {"domain": domain})
        return None

    def candidate_paths(
        self, domain: str, certificate_path: Optional[str] = None
    ) -> list[Path]:
        paths = []
        if certificate_path:
            paths.append(Path(certificate_path))
        paths.extend(
            Path(template.format(domain=domain))
            for template in self._config.cert_path_templates
        )
        return paths

    async def _probe_files(
        self, domain: str, certificate_path: Optional[str]
    ) -> SSLStatus:
        """
        Read the first parseable certificate file.

        Raises:
            ProbeUnavailableError: If no candidate file holds a certificate
        """
        loop = asyncio.get_running_loop()
        paths = self.candidate_paths(domain, certificate_path)

        for path in paths:
            def _sync_read(p: Path = path) -> Optional[x509.Certificate]:
                if not p.is_file():
                    return None
                return x509.load_pem_x509_certificate(p.read_bytes())

            try:
                cert = await asyncio.wait_for(
                    loop.run_in_executor(None, _sync_read),
                    timeout=self._config.timeout_seconds,
                )
            except asyncio.TimeoutError:
                self._log(LogLevel.WARN, f"Reading {path} timed out", {"domain": domain})
                continue
            except Exception as e:
                self._log(
                    LogLevel.DEBUG,
                    f"Unreadable certificate file {path}: {e}",
                    {"domain": domain},
                )
                continue

            if cert is not None:
                return self._status_from_cert(domain, cert, ProbeSource.FILE)

        raise ProbeUnavailableError(
            code="no_certificate_file",
            message=f"No readable certificate file for {domain}",
            details={
                "host": domain,
                "channel": ProbeSource.FILE.value,
                "paths": [str(p) for p in paths],
            },
        )

    async def _probe_live(self, host: str) -> SSLStatus:
        """
        Fetch the certificate over a live TLS handshake.

        Raises:
            ProbeUnavailableError: On timeout, connection or parse failure
        """
        loop = asyncio.get_running_loop()
        timeout = self._config.timeout_seconds
        details = {"host": host, "channel": ProbeSource.LIVE.value}

        try:
            der = await asyncio.wait_for(
                loop.run_in_executor(
                    None, self._live_fetcher, host, self._config.port, timeout
                ),
                timeout=timeout,
            )
            if not der:
                raise ProbeUnavailableError(
                    code="no_peer_certificate",
                    message=f"{host} presented no certificate",
                    details=details,
                )
            cert = x509.load_der_x509_certificate(der)
        except ProbeUnavailableError:
            raise
        except asyncio.TimeoutError as e:
            raise ProbeUnavailableError(
                code="probe_timeout",
                message=f"TLS probe of {host} timed out",
                details=details,
            ) from e
        except Exception as e:
            raise ProbeUnavailableError(
                code="tls_failed",
                message=f"TLS probe of {host} failed: {e}",
                details=details,
            ) from e

        return self._status_from_cert(host, cert, ProbeSource.LIVE)

    def _status_from_cert(
        self, domain: str, cert: x509.Certificate, source: ProbeSource
    ) -> SSLStatus:
        return SSLStatus.from_expiry(
            domain=domain,
            expiry=cert.not_valid_after_utc,
            issuer=issuer_name(cert),
            source=source,
            now=self._clock(),
        )

    def _log_unavailable(self, error: ProbeUnavailableError) -> None:
        self._log(LogLevel.DEBUG, error.message, {**error.details, "reason": error.code})

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "StatusProber", message, data)
