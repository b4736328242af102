"""Hegel IP control line protocol.

Commands and responses share one shape: ``-{tag}.{value}`` terminated by a
carriage return, e.g. ``-p.1`` switches the amplifier on and ``-m.?`` asks
for the current mute state. The amplifier answers a query with the same tag
and the current literal value (``-m.0``).
"""

from dataclasses import dataclass
from enum import Enum

# Wire framing
LINE_PREFIX = "-"
PART_SEPARATOR = "."
QUERY_VALUE = "?"
LINE_TERMINATOR = b"\r"

# Boolean payloads for power and mute
VALUE_ON = "1"
VALUE_OFF = "0"

DEFAULT_PORT = 23
DEFAULT_TIMEOUT = 1.0  # seconds, for connect, banner and each response
DEFAULT_MODEL = "H120"

# After a connect the amplifier prints its model, e.g. "-Main.Model=H120".
# Commands must not be sent before this appears.
BANNER_PREFIX = "Main.Model="


class CommandType(Enum):
    """Single-character command tags understood by the amplifier."""
    POWER = "p"
    INPUT = "i"
    VOLUME = "v"
    MUTE = "m"
    INVALID = "invalid"


_TAGS = {
    command_type.value: command_type
    for command_type in CommandType
    if command_type is not CommandType.INVALID
}


@dataclass(frozen=True)
class HegelCommand:
    """One logical command or response.

    ``value`` is either a literal (``"1"``, ``"0"``, ``"42"``) or the query
    sentinel ``"?"``. For INVALID commands it holds the offending raw line.
    """
    type: CommandType
    value: str

    @property
    def is_query(self) -> bool:
        return self.value == QUERY_VALUE

    @property
    def is_valid(self) -> bool:
        return self.type is not CommandType.INVALID

    def __str__(self):
        if not self.is_valid:
            return f"<invalid {self.value!r}>"
        return encode(self)


def encode(command: HegelCommand) -> str:
    """Render a command as a wire line, without the terminator."""
    if not command.is_valid:
        raise ValueError(f"Cannot encode invalid command: {command.value!r}")
    return f"{LINE_PREFIX}{command.type.value}{PART_SEPARATOR}{command.value}"


def decode(line: str) -> HegelCommand:
    """Parse a wire line (already stripped of its terminator).

    Anything malformed comes back as an INVALID command.
    """
    if not line.startswith(LINE_PREFIX):
        return HegelCommand(CommandType.INVALID, line)
    parts = line[len(LINE_PREFIX):].split(PART_SEPARATOR)
    if len(parts) != 2:
        return HegelCommand(CommandType.INVALID, line)
    tag, value = parts
    command_type = _TAGS.get(tag)
    if command_type is None:
        return HegelCommand(CommandType.INVALID, line)
    return HegelCommand(command_type, value)


def _bool_value(value: bool) -> str:
    return VALUE_ON if value else VALUE_OFF


def parse_bool_value(value: str):
    """Map ``"1"``/``"0"`` to True/False, anything else to None."""
    if value == VALUE_ON:
        return True
    if value == VALUE_OFF:
        return False
    return None


# ========== Command factories ==========

def command_set_power(on: bool) -> HegelCommand:
    return HegelCommand(CommandType.POWER, _bool_value(on))


def command_query_power() -> HegelCommand:
    return HegelCommand(CommandType.POWER, QUERY_VALUE)


def command_set_mute(muted: bool) -> HegelCommand:
    return HegelCommand(CommandType.MUTE, _bool_value(muted))


def command_query_mute() -> HegelCommand:
    return HegelCommand(CommandType.MUTE, QUERY_VALUE)


def command_query(command_type: CommandType) -> HegelCommand:
    """Query command for any valid tag."""
    if command_type is CommandType.INVALID:
        raise ValueError("Cannot query an invalid command type")
    return HegelCommand(command_type, QUERY_VALUE)
