"""Hegel amplifier control.

HegelAmplifier is what a home-automation integration talks to. It:
- Creates and owns the HegelConnection and CommandDispatcher
- Turns power/mute reads and writes into queued protocol commands
- Skips a query while an identical one is still in flight
- Keeps the last-known state and notifies listeners when a response updates it
- Optionally polls power and mute on a heartbeat

Nothing here raises transport errors to the caller: a request either leads to
a state notification or, after retries are exhausted, to nothing but a log line.
"""

import asyncio
import logging
from asyncio import Task
from typing import Any, Callable, Optional, Set

from pyhegel.config import AmplifierConfig
from pyhegel.connection import HegelConnection
from pyhegel.dispatcher import CommandDispatcher
from pyhegel.listener import AmplifierListener, CallbackListener, MultiplexingListener
from pyhegel.protocol import (
    CommandType,
    HegelCommand,
    command_query,
    command_set_mute,
    command_set_power,
)
from pyhegel.state import StateStore


class HegelAmplifier:
    """High-level control of one Hegel amplifier."""

    def __init__(self, config: AmplifierConfig, session=None):
        """Initialize amplifier.

        Args:
            config: Connection and identity settings
            session: Transport to use instead of a HegelConnection built from
                ``config`` (must offer ensure_connected/send_line/close)
        """
        self._logger = logging.getLogger(__name__)
        self._config = config

        # Internal listener fans out to everything registered from outside
        self._multiplex_callback = MultiplexingListener()

        if session is None:
            session = HegelConnection(
                config.host,
                config.port,
                banner=config.readiness_banner,
                timeout=config.timeout,
                listener=self._multiplex_callback,
            )
        self._session = session
        self._state = StateStore(self._multiplex_callback)
        self._dispatcher = CommandDispatcher(
            session,
            on_response=self._handle_response,
            on_dropped=self._handle_dropped,
            on_error=self._multiplex_callback.error,
            max_attempts=config.max_attempts,
            retry_delay=config.retry_delay,
        )

        # Tags of queries that are queued or awaiting their answer
        self._pending_queries: Set[CommandType] = set()
        self._heartbeat_task: Optional[Task[Any]] = None

    # ========== Public API ==========

    @property
    def config(self) -> AmplifierConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def serial_number(self) -> str:
        return self._config.serial_number

    @property
    def power(self) -> bool:
        """Last-known power state, no I/O."""
        return self._state.power

    @property
    def mute(self) -> bool:
        """Last-known mute state, no I/O."""
        return self._state.mute

    @property
    def volume(self) -> int:
        return self._state.volume

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    def request_power_write(self, on: bool):
        """Switch the amplifier on or off. State follows once the amplifier answers."""
        self._logger.info(f"Power request: {'on' if on else 'off'}")
        self._dispatcher.enqueue(command_set_power(on))

    def request_power_read(self) -> bool:
        """Return the last-known power state and queue a refresh in the background."""
        self._request_query(CommandType.POWER)
        return self._state.power

    def request_mute_write(self, muted: bool):
        """Mute or unmute. State follows once the amplifier answers."""
        self._logger.info(f"Mute request: {'on' if muted else 'off'}")
        self._dispatcher.enqueue(command_set_mute(muted))

    def request_mute_read(self) -> bool:
        """Return the last-known mute state and queue a refresh in the background."""
        self._request_query(CommandType.MUTE)
        return self._state.mute

    def on_power_changed(self, callback: Callable[[bool], None]) -> AmplifierListener:
        """Call ``callback(power)`` whenever a response reports the power state."""
        listener = CallbackListener(power_callback=callback)
        self.register_listener(listener)
        return listener

    def on_mute_changed(self, callback: Callable[[bool], None]) -> AmplifierListener:
        """Call ``callback(mute)`` whenever a response reports the mute state."""
        listener = CallbackListener(mute_callback=callback)
        self.register_listener(listener)
        return listener

    def register_listener(self, listener: AmplifierListener):
        """Register external listener for amplifier events."""
        self._multiplex_callback.register_listener(listener)

    def unregister_listener(self, listener: AmplifierListener):
        """Unregister external listener."""
        self._multiplex_callback.unregister_listener(listener)

    async def async_start(self):
        """Ask for the current state and start the heartbeat if enabled."""
        self._logger.info(
            f"Starting {self._config.name} ({self._config.model}) at {self._config.host}:{self._config.port}"
        )
        self.request_power_read()
        self.request_mute_read()
        if self._config.enable_heartbeat and (self._heartbeat_task is None or self._heartbeat_task.done()):
            self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat())
            self._logger.info(f"Heartbeat task started (interval={self._config.heartbeat_interval}s)")

    async def wait_idle(self):
        """Wait until every queued command has been answered or dropped."""
        await self._dispatcher.wait_idle()

    async def close(self):
        """Stop polling, discard queued commands and close the connection."""
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
        self._heartbeat_task = None
        await self._dispatcher.close()
        self._pending_queries.clear()

    # ========== Queries ==========

    def _request_query(self, command_type: CommandType):
        if command_type in self._pending_queries:
            self._logger.debug(f"{command_type.name.title()} query already queued")
            return
        self._pending_queries.add(command_type)
        self._dispatcher.enqueue(command_query(command_type))

    def _clear_pending_query(self, command: HegelCommand):
        """Release the dedup slot for a query once it has been answered or dropped."""
        if command.is_query:
            self._pending_queries.discard(command.type)

    # ========== Dispatcher callbacks ==========

    def _handle_response(self, command: HegelCommand, response: HegelCommand):
        self._clear_pending_query(command)
        self._state.apply(response)

    def _handle_dropped(self, command: HegelCommand):
        self._clear_pending_query(command)
        self._multiplex_callback.command_dropped(str(command))

    # ========== Heartbeat ==========

    async def _heartbeat(self):
        """Periodically re-read power and mute to follow front-panel and remote changes."""
        while True:
            await asyncio.sleep(self._config.heartbeat_interval)
            self._logger.debug("heartbeat - polling power and mute")
            self._request_query(CommandType.POWER)
            self._request_query(CommandType.MUTE)
