"""
Event Bus for orchestrator progress events.

Events are fanned out to every subscribed sink on a best-effort basis.
Synchronous sinks run inline; asynchronous sinks run as background tasks.
A failing sink is logged and never affects the emitter or the other sinks.

Event names: check_started, check_analysis, domain_started, domain_success,
domain_failed, check_completed, check_skipped, check_error, tool_waiting.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .config import EventSinkConfig
from .enums import LogLevel
from .exceptions import EventDeliveryError
from .retry_manager import RetryManager


@dataclass(frozen=True)
class Event:
    """A named progress event with its payload."""

    name: str
    payload: dict = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {"event": self.name, "payload": self.payload, "timestamp": self.timestamp}


@runtime_checkable
class EventSink(Protocol):
    """Receives events from the bus. ``deliver`` may be sync or async."""

    def deliver(self, event: Event) -> Union[None, Awaitable[None]]:
        ...

    def get_name(self) -> str:
        ...


class CallbackSink:
    """Calls an in-process function for every event."""

    def __init__(self, callback: Callable[[Event], Any], name: str = "callback") -> None:
        self._callback = callback
        self._name = name

    def deliver(self, event: Event) -> Union[None, Awaitable[None]]:
        return self._callback(event)

    def get_name(self) -> str:
        return self._name


class LoggingSink:
    """Writes every event to the audit logger."""

    def __init__(self, logger: AuditLogger, level: LogLevel = LogLevel.DEBUG) -> None:
        self._logger = logger
        self._level = level

    def deliver(self, event: Event) -> None:
        self._logger.log(self._level, "EventBus", f"event {event.name}", event.payload)

    def get_name(self) -> str:
        return "log"


class WebhookSink:
    """Posts ``{"event", "payload", "timestamp"}`` to an HTTP endpoint."""

    def __init__(
        self,
        config: EventSinkConfig,
        retry_manager: Optional[RetryManager] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        simulation_mode: bool = False,
    ) -> None:
        """
        Initialize the webhook sink.

        Args:
            config: Webhook URL, extra headers and timeout
            retry_manager: Retries failed deliveries with backoff
            transport: Custom httpx transport (used by tests)
            simulation_mode: If True, no real network requests are made
        """
        if not config.webhook_url:
            raise ValueError("webhook_url is required")
        self._url = config.webhook_url
        self._headers = dict(config.webhook_headers)
        self._timeout = config.timeout_seconds
        self._retry_manager = retry_manager
        self._transport = transport
        self._simulation_mode = simulation_mode

    async def deliver(self, event: Event) -> None:
        """
        Raises:
            EventDeliveryError: If the endpoint did not accept the event
        """
        if self._simulation_mode:
            return
        if self._retry_manager is None:
            await self._post(event)
            return

        result = await self._retry_manager.execute_with_retry(
            lambda: self._post(event),
            is_retryable=lambda e: isinstance(e, EventDeliveryError),
        )
        if not result.success and result.last_error is not None:
            raise result.last_error

    def get_name(self) -> str:
        return "webhook"

    async def _post(self, event: Event) -> None:
        headers = {"Content-Type": "application/json"}
        headers.update(self._headers)

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.post(
                    self._url,
                    json=event.to_dict(),
                    headers=headers,
                    timeout=self._timeout,
                )
            except httpx.HTTPError as e:
                raise EventDeliveryError(
                    code="network_error",
                    message=f"Webhook request failed: {e}",
                    details={"event": event.name},
                )
        if not 200 <= response.status_code < 300:
            raise EventDeliveryError(
                code="http_error",
                message=f"Webhook returned HTTP {response.status_code}",
                details={"event": event.name, "status_code": response.status_code},
            )


class EventBus:
    """Fan-out of events to registered sinks."""

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._sinks: list[EventSink] = []
        self._logger = logger
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def unsubscribe(self, sink_name: str) -> bool:
        """
        Remove a sink by name.

        Returns:
            True if a sink was found and removed
        """
        for i, sink in enumerate(self._sinks):
            if sink.get_name() == sink_name:
                self._sinks.pop(i)
                return True
        return False

    @property
    def sinks(self) -> list[EventSink]:
        return self._sinks.copy()

    def emit(self, name: str, payload: Optional[dict] = None) -> Event:
        """Deliver an event to all sinks without waiting on async ones."""
        event = Event(name=name, payload=dict(payload or {}))
        for sink in self._sinks:
            try:
                outcome = sink.deliver(event)
            except Exception as e:
                self._log_failure(sink, event, e)
                continue
            if inspect.isawaitable(outcome):
                self._schedule(sink, event, outcome)
        return event

    async def drain(self) -> None:
        """Wait for all outstanding asynchronous deliveries."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, sink: EventSink, event: Event, outcome: Awaitable) -> None:
        async def _run() -> None:
            try:
                await outcome
            except Exception as e:
                self._log_failure(sink, event, e)

        try:
            task = asyncio.get_running_loop().create_task(_run())
        except RuntimeError:
            # No running loop: the coroutine can never be delivered
            if inspect.iscoroutine(outcome):
                outcome.close()
            self._log_failure(
                sink, event, RuntimeError("no running event loop for async sink")
            )
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _log_failure(self, sink: EventSink, event: Event, error: Exception) -> None:
        if self._logger is None:
            return
        self._logger.log_error(
            "EventBus",
            f"Event sink '{sink.get_name()}' failed to deliver '{event.name}'",
            error,
            {"sink": sink.get_name(), "event": event.name},
        )
