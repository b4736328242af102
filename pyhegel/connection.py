import asyncio
import logging
from enum import Enum
from typing import Optional

from pyhegel.listener import AmplifierListener
from pyhegel.protocol import DEFAULT_PORT, DEFAULT_TIMEOUT, LINE_TERMINATOR


class HegelConnectionError(Exception):
    """Raised for any transport failure: refused, timed out, closed or not connected."""


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class HegelConnection:
    """One TCP session to the amplifier.

    The stream pair lives exactly as long as the CONNECTED state. Any I/O error
    force-closes the session before being raised as HegelConnectionError; the
    session never retries on its own.
    """

    _reader: Optional[asyncio.StreamReader]
    _writer: Optional[asyncio.StreamWriter]

    def __init__(
        self,
        hostname: str,
        port: int = DEFAULT_PORT,
        banner: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        listener: Optional[AmplifierListener] = None,
    ):
        self._logger = logging.getLogger(__name__)
        self._hostname = hostname
        self._port = port
        self._banner = banner
        self._timeout = timeout
        self._listener = listener
        self._state = ConnectionState.DISCONNECTED
        self._reader = None
        self._writer = None
        self.peer_name = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def ensure_connected(self):
        """Open the connection and wait for the readiness banner, unless already connected."""
        if self._state is ConnectionState.CONNECTED:
            return

        self._state = ConnectionState.CONNECTING
        self._logger.debug(f"Connecting to {self._hostname}:{self._port}")
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._hostname, self._port), timeout=self._timeout
            )
            if self._banner:
                self._logger.debug(f"Waiting for {self._banner!r}")
                await asyncio.wait_for(
                    self._reader.readuntil(self._banner.encode()), timeout=self._timeout
                )
        except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as e:
            await self._force_close()
            raise HegelConnectionError(
                f"Could not connect to {self._hostname}:{self._port}: {e!r}"
            ) from e

        self._state = ConnectionState.CONNECTED
        self.peer_name = self._writer.get_extra_info("peername")
        self._logger.info(f"Connection Made: {self.peer_name}")
        if self._listener is not None:
            self._listener.connected()

    async def send_line(self, text: str) -> str:
        """Write one line and return the next non-blank line from the amplifier."""
        if self._state is not ConnectionState.CONNECTED:
            raise HegelConnectionError("Not connected")

        self._logger.debug(f"SEND: {text!r}")
        try:
            self._writer.write(text.encode() + LINE_TERMINATOR)
            await asyncio.wait_for(self._writer.drain(), timeout=self._timeout)
            response = await asyncio.wait_for(self._read_line(), timeout=self._timeout)
        except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as e:
            await self.close()
            raise HegelConnectionError(f"Exchange of {text!r} failed: {e!r}") from e

        self._logger.debug(f"RECV: {response!r}")
        return response

    async def _read_line(self) -> str:
        while True:
            data = await self._reader.readuntil(LINE_TERMINATOR)
            line = data.decode(errors="replace").strip()
            # The tail of the banner line arrives as an empty line
            if line:
                return line

    async def close(self):
        """Release the socket. Safe to call when already disconnected."""
        was_connected = self._state is ConnectionState.CONNECTED
        await self._force_close()
        if was_connected:
            self._logger.info(f"Disconnected from {self._hostname}")
            if self._listener is not None:
                self._listener.disconnected()

    async def _force_close(self):
        writer = self._writer
        self._reader = None
        self._writer = None
        self._state = ConnectionState.DISCONNECTED
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            self._logger.debug(f"Error while closing connection: {e!r}")
