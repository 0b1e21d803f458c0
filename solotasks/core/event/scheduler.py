"""
EventScheduler: tiered execution of event listeners.

Execution Model
---------------
- CRITICAL: sequential, awaited, timeout-protected
- HIGH: sequential, awaited, timeout-protected
- NORMAL: concurrent (asyncio.gather), awaited
- LOW: fire-and-forget, tracked so tasks are not garbage collected early

Each listener runs inside its own error boundary. A listener failure is
logged with full context and never reaches the publisher, so a broken
notification sink cannot roll back or fail a progression write.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from solotasks.core.event.types import EventListener, EventPayload, ListenerPriority


def handle_listener_error(
    *,
    logger: Logger,
    event_name: str,
    listener: EventListener,
    exc: BaseException,
) -> None:
    """Log a listener failure with its event, listener id and priority."""
    logger.error(
        "EventBus listener error",
        extra={
            "event_name": event_name,
            "listener_id": listener.identifier,
            "priority": listener.priority.name,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=exc,
    )


class EventScheduler:
    """Executes listeners according to the tiered concurrency model."""

    def __init__(self) -> None:
        self._background_tasks: set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> list[Any]:
        """
        Run `listeners` for one published event.

        Returns
        -------
        list[Any]:
            Results of CRITICAL, HIGH and NORMAL listeners in that order.
            LOW listeners are not awaited and contribute nothing.
        """
        results: list[Any] = []

        for listener in listeners:
            if listener.priority is ListenerPriority.CRITICAL:
                results.append(
                    await self._run_with_timeout(
                        listener, event_name, payload, logger, critical_timeout
                    )
                )
        for listener in listeners:
            if listener.priority is ListenerPriority.HIGH:
                results.append(
                    await self._run_with_timeout(
                        listener, event_name, payload, logger, high_timeout
                    )
                )

        normal = [lst for lst in listeners if lst.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *(self._run_listener(lst, event_name, payload, logger) for lst in normal)
                )
            )

        loop = asyncio.get_running_loop()
        for listener in listeners:
            if listener.priority is not ListenerPriority.LOW:
                continue
            task = loop.create_task(
                self._run_listener(listener, event_name, payload, logger),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload, logger)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload, logger),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": timeout,
                },
            )
            handle_listener_error(
                logger=logger, event_name=event_name, listener=listener, exc=exc
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
    ) -> Any:
        """Run one listener; sync callbacks go to the default executor."""
        try:
            logger.debug(
                "EventBus: executing listener",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                },
            )
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, listener.callback, payload)

        except Exception as exc:
            handle_listener_error(
                logger=logger, event_name=event_name, listener=listener, exc=exc
            )
            return None

    async def drain(self) -> None:
        """Wait for all outstanding LOW-tier tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))
