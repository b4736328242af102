from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging


class AmplifierListener(ABC):

    @abstractmethod
    def power_changed(self, power: bool):
        pass

    @abstractmethod
    def mute_changed(self, mute: bool):
        pass

    def connected(self):
        pass

    def disconnected(self):
        pass

    def command_dropped(self, command: str):
        """Called when a command is given up on after exhausting its retries."""
        pass

    def error(self, error_message: str):
        """Called when an unexpected failure made the amplifier drop a command."""
        pass


class MultiplexingListener(AmplifierListener):

    _listeners: List[AmplifierListener]

    def __init__(self):
        self._listeners = []
        self._logger = logging.getLogger(__name__)

    def _notify(self, method: str, *args):
        # Iterate over a copy so a listener may unregister itself from its own callback
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception as e:
                self._logger.error(f"Listener {listener!r} failed in {method}: {e}", exc_info=True)

    def power_changed(self, power: bool):
        self._notify("power_changed", power)

    def mute_changed(self, mute: bool):
        self._notify("mute_changed", mute)

    def connected(self):
        self._notify("connected")

    def disconnected(self):
        self._notify("disconnected")

    def command_dropped(self, command: str):
        self._notify("command_dropped", command)

    def error(self, error_message: str):
        self._notify("error", error_message)

    def register_listener(self, listener: AmplifierListener):
        self._listeners.append(listener)

    def unregister_listener(self, listener: AmplifierListener):
        if listener in self._listeners:
            self._listeners.remove(listener)
        else:
            self._logger.info("Listener isn't registered")


class CallbackListener(AmplifierListener):
    """Adapts plain callables to the listener interface."""

    def __init__(
        self,
        power_callback: Optional[Callable[[bool], None]] = None,
        mute_callback: Optional[Callable[[bool], None]] = None,
    ):
        self._power_callback = power_callback
        self._mute_callback = mute_callback

    def power_changed(self, power: bool):
        if self._power_callback is not None:
            self._power_callback(power)

    def mute_changed(self, mute: bool):
        if self._mute_callback is not None:
            self._mute_callback(mute)


class LoggingListener(AmplifierListener):

    def __init__(self, logger=logging):
        self.logger = logger

    def connected(self):
        self.logger.info("Connected")

    def disconnected(self):
        self.logger.info("Disconnected")

    def power_changed(self, power: bool):
        self.logger.info(f"Power changed to: {'on' if power else 'off'}")

    def mute_changed(self, mute: bool):
        self.logger.info(f"Mute changed to: {'on' if mute else 'off'}")

    def command_dropped(self, command: str):
        self.logger.warning(f"Command dropped: {command}")

    def error(self, error_message: str):
        self.logger.error(error_message)
