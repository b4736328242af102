"""Serialized command dispatch over a single amplifier connection.

All device I/O goes through one worker task. Callers only append to the
queue; the worker drains it one exchange at a time:

- connect on demand (the connection is opened lazily and reopened after failures)
- send the head command, wait for its response, hand the response on, and
  only then remove the head
- on a transport failure close the connection and retry from the same head,
  up to ``max_attempts`` tries before the head is dropped

The protocol has no request IDs, so a response is assumed to belong to the
command sent just before it. That only holds because at most one command is
ever outstanding.
"""

import asyncio
import logging
from asyncio import Task
from collections import deque
from typing import Any, Callable, Deque, Optional

from pyhegel.connection import HegelConnectionError
from pyhegel.protocol import HegelCommand, decode, encode

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 0.5  # seconds between attempts

ResponseCallback = Callable[[HegelCommand, HegelCommand], None]
DroppedCallback = Callable[[HegelCommand], None]
ErrorCallback = Callable[[str], None]


class CommandDispatcher:
    """Single-flight FIFO command queue owning one connection.

    ``session`` must provide ``ensure_connected()``, ``send_line(text)`` and
    ``close()`` coroutines (see HegelConnection).
    """

    _worker_task: Optional[Task[Any]]

    def __init__(
        self,
        session,
        on_response: Optional[ResponseCallback] = None,
        on_dropped: Optional[DroppedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._logger = logging.getLogger(__name__)
        self._session = session
        self._on_response = on_response
        self._on_dropped = on_dropped
        self._on_error = on_error
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

        self._queue: Deque[HegelCommand] = deque()
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._draining = False
        self._closed = False
        self._worker_task = None
        # Head command currently being exchanged, None between exchanges
        self._in_flight: Optional[HegelCommand] = None

    @property
    def draining(self) -> bool:
        """Whether a drain is in progress."""
        return self._draining

    @property
    def pending(self) -> tuple:
        """Snapshot of the queued commands, head first."""
        return tuple(self._queue)

    def __len__(self):
        return len(self._queue)

    def enqueue(self, command: HegelCommand):
        """Append a command and make sure the worker will drain it.

        Returns immediately; the exchange happens in the background. Must be
        called from within the running event loop.
        """
        if not command.is_valid:
            raise ValueError(f"Refusing to queue invalid command {command}")
        if self._closed:
            self._logger.warning(f"QUEUE: Dispatcher closed, not queueing {command}")
            return

        self._queue.append(command)
        self._idle.clear()
        self._logger.debug(f"QUEUE: Added {command}, queue size = {len(self._queue)}")

        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.get_running_loop().create_task(self._command_worker())
        self._wakeup.set()

    async def wait_idle(self):
        """Wait until the queue is empty and no drain is running."""
        await self._idle.wait()

    async def close(self):
        """Stop the worker, drop anything still queued and close the connection."""
        self._closed = True
        if self._worker_task is not None and not self._worker_task.done():
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None
        if self._queue:
            self._logger.info(f"Discarding {len(self._queue)} queued commands on close")
            self._queue.clear()
        self._draining = False
        self._idle.set()
        await self._session.close()

    # ========== Worker ==========

    async def _command_worker(self):
        """The only task that ever drains the queue."""
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            try:
                await self._drain()
            except asyncio.CancelledError:
                self._logger.debug("Command worker cancelled")
                raise
            except Exception as e:
                self._logger.error(f"Unexpected error in command worker loop: {e}", exc_info=True)
                self._notify_error(f"Unexpected error while sending {self._in_flight}: {e!r}")
                await self._session.close()
                # Only the command that was being exchanged is dropped, never one behind it
                failed = self._in_flight
                if failed is not None and self._queue and self._queue[0] is failed:
                    self._queue.popleft()
                    self._logger.error(f"Dropping {failed} after unexpected error")
                    self._notify_dropped(failed)
                if self._queue:
                    self._wakeup.set()
            finally:
                self._in_flight = None
                self._draining = False
                if not self._queue:
                    self._idle.set()

    async def _drain(self):
        self._draining = True
        attempt = 1
        while self._queue:
            self._in_flight = self._queue[0]
            try:
                await self._session.ensure_connected()
                while self._queue:
                    self._in_flight = self._queue[0]
                    await self._exchange(self._in_flight)
                    self._queue.popleft()
                    self._in_flight = None
                    attempt = 1
            except HegelConnectionError as e:
                await self._session.close()
                head = self._queue[0]
                if attempt >= self._max_attempts:
                    self._logger.error(
                        f"Giving up on {head} after {attempt} attempts: {e}"
                    )
                    self._queue.popleft()
                    self._in_flight = None
                    attempt = 1
                    self._notify_dropped(head)
                    continue
                self._logger.warning(
                    f"Attempt {attempt}/{self._max_attempts} for {head} failed: {e}, retrying"
                )
                attempt += 1
                if self._retry_delay > 0:
                    await asyncio.sleep(self._retry_delay)

    async def _exchange(self, command: HegelCommand):
        line = encode(command)
        self._logger.debug(f"Sending: {line}")
        response_line = await self._session.send_line(line)
        response = decode(response_line)
        self._logger.debug(f"Received: {response_line!r} for {line}")
        self._notify_response(command, response)

    # ========== Callbacks ==========

    # Callback failures are logged and never reach the worker loop, so a broken
    # hook cannot drop or stall other queued commands.

    def _notify_response(self, command: HegelCommand, response: HegelCommand):
        if self._on_response is None:
            return
        try:
            self._on_response(command, response)
        except Exception as e:
            self._logger.error(f"Response handler failed for {command}: {e}", exc_info=True)

    def _notify_dropped(self, command: HegelCommand):
        if self._on_dropped is None:
            return
        try:
            self._on_dropped(command)
        except Exception as e:
            self._logger.error(f"Dropped handler failed for {command}: {e}", exc_info=True)

    def _notify_error(self, error_message: str):
        if self._on_error is None:
            return
        try:
            self._on_error(error_message)
        except Exception as e:
            self._logger.error(f"Error handler failed: {e}", exc_info=True)
