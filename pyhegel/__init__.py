"""pyhegel Python Package

Python library for controlling Hegel amplifiers over their IP control port.
"""

from pyhegel.amplifier import HegelAmplifier
from pyhegel.config import AmplifierConfig

__all__ = ["HegelAmplifier", "AmplifierConfig"]
