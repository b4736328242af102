#!/usr/bin/env python3
"""pytest fixtures"""

import asyncio
import logging

import pytest
import pytest_asyncio

from pyhegel.connection import HegelConnectionError
from pyhegel.protocol import CommandType, decode


class FakeAmplifierDevice:
    """Minimal Hegel command handling shared by the fake session and fake server"""

    def __init__(self, echo=True):
        self.echo = echo
        self.values = {"p": "0", "m": "0", "v": "20", "i": "1"}

    def respond(self, line: str) -> str:
        command = decode(line)
        if command.type is CommandType.INVALID:
            return "-e.1"
        tag = command.type.value
        if command.is_query:
            return f"-{tag}.{self.values[tag]}"
        self.values[tag] = command.value
        if not self.echo:
            return ""
        return f"-{tag}.{command.value}"


class FakeSession:
    """Scripted stand-in for HegelConnection"""

    def __init__(self, device=None, connect_failures=0, send_failures=0):
        self.device = device or FakeAmplifierDevice()
        self.connect_failures = connect_failures
        self.send_failures = send_failures
        self.connected = False
        self.connect_calls = 0
        self.close_calls = 0
        self.sent = []
        self.in_flight = 0
        self.max_in_flight = 0
        # Cleared to hold every exchange until the test releases it
        self.gate = asyncio.Event()
        self.gate.set()

    async def ensure_connected(self):
        if self.connected:
            return
        self.connect_calls += 1
        await asyncio.sleep(0)
        if self.connect_failures:
            self.connect_failures -= 1
            raise HegelConnectionError("connection refused")
        self.connected = True

    async def send_line(self, text: str) -> str:
        if not self.connected:
            raise HegelConnectionError("Not connected")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.sent.append(text)
            await self.gate.wait()
            await asyncio.sleep(0)
            if self.send_failures:
                self.send_failures -= 1
                self.connected = False
                raise HegelConnectionError("connection reset")
            return self.device.respond(text)
        finally:
            self.in_flight -= 1

    async def close(self):
        self.close_calls += 1
        self.connected = False


class FakeAmplifierServer:
    """In-process TCP server speaking the Hegel line protocol"""

    def __init__(self, model="H120", send_banner=True, respond=True):
        self.model = model
        self.send_banner = send_banner
        self.respond = respond
        self.device = FakeAmplifierDevice()
        self.received = []
        self.connections = 0
        self.host = "127.0.0.1"
        self.port = None
        self._server = None
        self._writers = []

    async def start(self):
        self._server = await asyncio.start_server(self._handle_client, self.host, 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self):
        for writer in self._writers:
            writer.close()
        self._writers.clear()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    def drop_clients(self):
        for writer in self._writers:
            writer.close()
        self._writers.clear()

    async def _handle_client(self, reader, writer):
        self.connections += 1
        self._writers.append(writer)
        if self.send_banner:
            writer.write(f"-Main.Model={self.model}\r\n".encode())
            await writer.drain()
        try:
            while True:
                data = await reader.readuntil(b"\r")
                line = data.decode().strip()
                self.received.append(line)
                if self.respond:
                    writer.write(f"{self.device.respond(line)}\r".encode())
                    await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()


@pytest.fixture
def fake_session():
    """A session that echoes writes and answers queries"""
    yield FakeSession()


@pytest_asyncio.fixture
async def fake_amplifier():
    """A fake amplifier listening on localhost"""
    server = FakeAmplifierServer()
    await server.start()
    yield server
    await server.stop()


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    """Capture pyhegel debug output for every test"""
    caplog.set_level(logging.DEBUG, logger="pyhegel")
    yield caplog
