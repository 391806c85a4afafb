"""
Host discovery interface.

Discovery reports the virtual hosts whose certificates are managed. Parsing
web server configuration is left to external collaborators; the static
implementation serves the configured domain list.
"""

from typing import Optional, Protocol, runtime_checkable

from .domain_validator import DomainValidator
from .models import DiscoveredHost


@runtime_checkable
class HostDiscovery(Protocol):
    """Source of the hosts to evaluate in a renewal cycle."""

    async def discover(self) -> list[DiscoveredHost]:
        ...


class StaticHostDiscovery:
    """Serves a fixed list of domains, normalized and de-duplicated."""

    def __init__(
        self,
        domains: list[str],
        certificate_paths: Optional[dict[str, str]] = None,
        validator: Optional[DomainValidator] = None,
    ) -> None:
        """
        Raises:
            ValidationError: If a configured domain is not a valid host name
        """
        validator = validator or DomainValidator()
        paths = certificate_paths or {}
        self._hosts: list[DiscoveredHost] = []
        seen: set[str] = set()
        for raw in domains:
            domain = validator.require_valid(raw)
            if domain in seen:
                continue
            seen.add(domain)
            self._hosts.append(
                DiscoveredHost(
                    domain=domain,
                    certificate_path=paths.get(raw) or paths.get(domain),
                )
            )

    async def discover(self) -> list[DiscoveredHost]:
        return list(self._hosts)

    @property
    def domains(self) -> list[str]:
        return [host.domain for host in self._hosts]
