#!/usr/bin/env python3
"""Tests for the collaborator-facing amplifier API"""
# pylint: disable=protected-access,redefined-outer-name

import asyncio
import unittest.mock

import pytest
import pytest_asyncio

from conftest import FakeAmplifierDevice, FakeSession
from pyhegel.amplifier import HegelAmplifier
from pyhegel.config import AmplifierConfig
from pyhegel.protocol import CommandType


def make_amplifier(session, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return HegelAmplifier(AmplifierConfig(host="192.0.2.10", **kwargs), session=session)


@pytest_asyncio.fixture
async def amplifier(fake_session):
    """An amplifier wired to the fake session"""
    amp = make_amplifier(fake_session)
    yield amp
    await amp.close()


@pytest.mark.asyncio
async def test_power_read_converges(amplifier, fake_session):
    """Test a power query answered with 1 turns power on and notifies once"""
    fake_session.device.values["p"] = "1"
    callback = unittest.mock.Mock()
    amplifier.on_power_changed(callback)

    assert amplifier.request_power_read() is False
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)

    assert fake_session.sent == ["-p.?"]
    assert amplifier.request_power_read() is True
    callback.assert_called_once_with(True)
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)


@pytest.mark.asyncio
async def test_power_write_on_non_echoing_device():
    """Test a write only changes state when the device answers with the new value"""
    session = FakeSession(device=FakeAmplifierDevice(echo=False))
    amp = make_amplifier(session)
    callback = unittest.mock.Mock()
    amp.on_power_changed(callback)

    amp.request_power_write(True)
    await asyncio.wait_for(amp.wait_idle(), timeout=1)

    assert session.connect_calls == 1
    assert session.sent == ["-p.1"]
    assert len(amp.dispatcher) == 0
    assert amp.power is False
    callback.assert_not_called()
    await amp.close()


@pytest.mark.asyncio
async def test_power_write_echo_updates_state(amplifier, fake_session):
    """Test the device's echo of a write is what changes state"""
    callback = unittest.mock.Mock()
    amplifier.on_power_changed(callback)

    amplifier.request_power_write(True)
    assert amplifier.power is False
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)

    assert amplifier.power is True
    callback.assert_called_once_with(True)


@pytest.mark.asyncio
async def test_mute_round_trip(amplifier, fake_session):
    """Test mute writes and reads flow through to the mute callback only"""
    mute_callback = unittest.mock.Mock()
    power_callback = unittest.mock.Mock()
    amplifier.on_mute_changed(mute_callback)
    amplifier.on_power_changed(power_callback)

    amplifier.request_mute_write(True)
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)
    assert amplifier.request_mute_read() is True
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)

    assert fake_session.sent == ["-m.1", "-m.?"]
    assert mute_callback.call_args_list == [unittest.mock.call(True), unittest.mock.call(True)]
    power_callback.assert_not_called()
    assert amplifier.power is False


@pytest.mark.asyncio
async def test_duplicate_query_suppressed(amplifier, fake_session):
    """Test two mute reads before an answer produce one query on the wire"""
    fake_session.gate.clear()
    amplifier.request_mute_read()
    amplifier.request_mute_read()
    await asyncio.sleep(0.01)
    amplifier.request_mute_read()
    fake_session.gate.set()
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)

    assert fake_session.sent == ["-m.?"]

    # Answered, so the next read queries again
    amplifier.request_mute_read()
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)
    assert fake_session.sent == ["-m.?", "-m.?"]


@pytest.mark.asyncio
async def test_writes_are_never_deduplicated(amplifier, fake_session):
    """Test back-to-back writes for the same tag are all sent in order"""
    amplifier.request_power_write(True)
    amplifier.request_power_write(False)
    amplifier.request_power_write(True)
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)
    assert fake_session.sent == ["-p.1", "-p.0", "-p.1"]
    assert amplifier.power is True


@pytest.mark.asyncio
async def test_dropped_query_can_be_reissued():
    """Test a query given up on releases its dedup slot"""
    session = FakeSession(connect_failures=5)
    amp = make_amplifier(session)
    dropped = unittest.mock.Mock()
    listener = unittest.mock.Mock()
    amp.register_listener(listener)
    listener.command_dropped = dropped

    amp.request_power_read()
    await asyncio.wait_for(amp.wait_idle(), timeout=1)
    assert session.connect_calls == 5
    dropped.assert_called_once_with("-p.?")
    assert CommandType.POWER not in amp._pending_queries

    amp.request_power_read()
    await asyncio.wait_for(amp.wait_idle(), timeout=1)
    assert session.sent == ["-p.?"]
    await amp.close()


@pytest.mark.asyncio
async def test_unregistered_callback_not_called(amplifier, fake_session):
    """Test callbacks can be removed again"""
    callback = unittest.mock.Mock()
    listener = amplifier.on_power_changed(callback)
    amplifier.unregister_listener(listener)

    amplifier.request_power_write(True)
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)
    callback.assert_not_called()


@pytest.mark.asyncio
async def test_start_queries_power_and_mute(amplifier, fake_session):
    """Test start-up reads the current state"""
    fake_session.device.values["m"] = "1"
    await amplifier.async_start()
    await asyncio.wait_for(amplifier.wait_idle(), timeout=1)
    assert fake_session.sent == ["-p.?", "-m.?"]
    assert amplifier.mute is True


@pytest.mark.asyncio
async def test_heartbeat_polls(fake_session):
    """Test the heartbeat keeps re-reading power and mute"""
    amp = make_amplifier(fake_session, enable_heartbeat=True, heartbeat_interval=0.02)
    await amp.async_start()
    await asyncio.sleep(0.1)
    await amp.close()

    assert fake_session.sent.count("-p.?") >= 2
    assert fake_session.sent.count("-m.?") >= 2
    assert amp._heartbeat_task is None


@pytest.mark.asyncio
async def test_no_errors_reach_caller():
    """Test an unreachable amplifier only ever produces silence"""
    session = FakeSession(connect_failures=100)
    amp = make_amplifier(session)
    callback = unittest.mock.Mock()
    amp.on_power_changed(callback)

    amp.request_power_write(True)
    assert amp.request_power_read() is False
    await asyncio.wait_for(amp.wait_idle(), timeout=1)

    callback.assert_not_called()
    assert amp.power is False
    await amp.close()


@pytest.mark.asyncio
async def test_end_to_end_over_tcp(fake_amplifier):
    """Test the real connection against the fake amplifier"""
    config = AmplifierConfig(host=fake_amplifier.host, port=fake_amplifier.port, model="H120", timeout=0.5)
    amp = HegelAmplifier(config)
    connected = unittest.mock.Mock()
    amp.register_listener(unittest.mock.Mock(connected=connected))
    power_callback = unittest.mock.Mock()
    amp.on_power_changed(power_callback)

    amp.request_power_write(True)
    amp.request_mute_write(True)
    amp.request_mute_read()
    await asyncio.wait_for(amp.wait_idle(), timeout=2)

    assert fake_amplifier.received == ["-p.1", "-m.1", "-m.?"]
    assert fake_amplifier.connections == 1
    assert amp.power is True
    assert amp.mute is True
    power_callback.assert_called_once_with(True)
    connected.assert_called_once_with()
    await amp.close()


def test_identity_comes_from_config(fake_session):
    """Test name and serial number are exposed as configured"""
    amp = make_amplifier(fake_session, name="Living room", serial_number="H190-0042")
    assert amp.name == "Living room"
    assert amp.serial_number == "H190-0042"


@pytest.mark.asyncio
async def test_unexpected_failure_reaches_listener_error():
    """Test an unexpected session failure is reported to listeners and the queue continues"""

    class BrokenOnceSession(FakeSession):
        async def send_line(self, text):
            if not self.sent:
                self.sent.append(text)
                raise RuntimeError("driver bug")
            return await super().send_line(text)

    session = BrokenOnceSession()
    amp = make_amplifier(session)
    listener = unittest.mock.Mock()
    amp.register_listener(listener)

    amp.request_power_write(True)
    amp.request_mute_write(True)
    await asyncio.wait_for(amp.wait_idle(), timeout=1)

    listener.error.assert_called_once()
    assert "driver bug" in listener.error.call_args.args[0]
    listener.command_dropped.assert_called_once_with("-p.1")
    assert session.sent == ["-p.1", "-m.1"]
    assert amp.mute is True
    await amp.close()
