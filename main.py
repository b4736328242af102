"""
Main command-line interface for pyhegel.

This script provides a CLI to query and switch a Hegel amplifier.
"""

import argparse
import asyncio
import logging

from pyhegel.amplifier import HegelAmplifier
from pyhegel.config import AmplifierConfig
from pyhegel.listener import LoggingListener
from pyhegel.protocol import DEFAULT_MODEL, DEFAULT_PORT


def _on_off(value: bool) -> str:
    return "ON" if value else "OFF"


async def show_status(config: AmplifierConfig):
    """Query and display power and mute."""
    print(f"Connecting to {config.name} at {config.host}:{config.port}...")

    amp = HegelAmplifier(config)
    amp.register_listener(LoggingListener(logging.getLogger("pyhegel.cli")))
    await amp.async_start()
    await amp.wait_idle()

    print("-" * 40)
    print(f"{amp.name} {config.model} (serial {amp.serial_number})")
    print(f"{'Power:':10s} {_on_off(amp.power)}")
    print(f"{'Mute:':10s} {_on_off(amp.mute)}")
    print("-" * 40)

    await amp.close()


async def set_power(config: AmplifierConfig, on: bool):
    """Switch the amplifier on or off."""
    amp = HegelAmplifier(config)
    print(f"Switching {config.name} {_on_off(on)}...")
    amp.request_power_write(on)
    await amp.wait_idle()
    print(f"Power is now {_on_off(amp.power)}")
    await amp.close()


async def set_mute(config: AmplifierConfig, muted: bool):
    """Mute or unmute the amplifier."""
    amp = HegelAmplifier(config)
    print(f"Setting mute {_on_off(muted)} on {config.name}...")
    amp.request_mute_write(muted)
    await amp.wait_idle()
    print(f"Mute is now {_on_off(amp.mute)}")
    await amp.close()


def _parse_switch(value: str) -> bool:
    value = value.lower()
    if value in ("on", "1", "true"):
        return True
    if value in ("off", "0", "false"):
        return False
    raise argparse.ArgumentTypeError(f"Invalid value '{value}'. Use 'on' or 'off'")


def main():
    parser = argparse.ArgumentParser(description="Control a Hegel amplifier")
    parser.add_argument("--host", required=True, help="Amplifier hostname or IP")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Control port (default: {DEFAULT_PORT})")
    parser.add_argument("--model", default=DEFAULT_MODEL, help=f"Amplifier model (default: {DEFAULT_MODEL})")
    parser.add_argument("--name", default="Hegel", help="Display name (default: Hegel)")
    parser.add_argument("--serial", default="unknown", help="Serial number shown in the status header")
    parser.add_argument("--timeout", type=float, default=1.0, help="Connect/response timeout in seconds (default: 1.0)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Status command
    subparsers.add_parser("status", help="Show power and mute state")

    # Power command
    power_parser = subparsers.add_parser("power", help="Switch the amplifier on or off")
    power_parser.add_argument("state", type=_parse_switch, help="'on' or 'off'")

    # Mute command
    mute_parser = subparsers.add_parser("mute", help="Mute or unmute the amplifier")
    mute_parser.add_argument("state", type=_parse_switch, help="'on' or 'off'")

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)

    config = AmplifierConfig.from_dict({
        "host": args.host,
        "port": args.port,
        "model": args.model,
        "name": args.name,
        "serial_number": args.serial,
        "timeout": args.timeout,
    })

    if args.command == "status":
        asyncio.run(show_status(config))
    elif args.command == "power":
        asyncio.run(set_power(config, args.state))
    elif args.command == "mute":
        asyncio.run(set_mute(config, args.state))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
