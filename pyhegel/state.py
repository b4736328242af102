"""Last-known amplifier state, updated only from parsed device responses."""

import logging
from dataclasses import dataclass

from pyhegel.listener import AmplifierListener
from pyhegel.protocol import CommandType, HegelCommand, parse_bool_value


@dataclass
class DeviceState:
    power: bool = False
    mute: bool = False
    volume: int = 0  # reserved, no response updates it yet


class StateStore:
    """Holds the amplifier's last-known state and notifies on updates.

    Reads never trigger I/O and may be stale; the value is only as fresh as the
    last answered query.
    """

    def __init__(self, listener: AmplifierListener):
        self._logger = logging.getLogger(__name__)
        self._listener = listener
        self._state = DeviceState()

    @property
    def power(self) -> bool:
        return self._state.power

    @property
    def mute(self) -> bool:
        return self._state.mute

    @property
    def volume(self) -> int:
        return self._state.volume

    def read(self, field: str):
        """Return the last-known value of ``power``, ``mute`` or ``volume``."""
        if field not in ("power", "mute", "volume"):
            raise KeyError(field)
        return getattr(self._state, field)

    def apply(self, response: HegelCommand) -> bool:
        """Apply one decoded response. Returns True if a field was updated.

        Each response touches exactly the field matching its tag.
        """
        if response.type is CommandType.INVALID:
            self._logger.warning(f"Invalid response received: {response.value!r}")
            return False

        if response.type not in (CommandType.POWER, CommandType.MUTE):
            self._logger.debug(f"Ignoring response for unhandled tag: {response}")
            return False

        value = parse_bool_value(response.value)
        if value is None:
            self._logger.warning(f"Unexpected value in response: {response}")
            return False

        if response.type is CommandType.POWER:
            self._state.power = value
            self._logger.debug(f"Power is now {value}")
            self._listener.power_changed(value)
        else:
            self._state.mute = value
            self._logger.debug(f"Mute is now {value}")
            self._listener.mute_changed(value)
        return True
