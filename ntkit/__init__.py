"""
ntkit - NewtonScript toolkit pipeline

Assembles a NewtonScript program, compiles it with an embedded
interpreter, packages it and deploys it to a running Newton emulator.
"""

__version__ = "0.1.0"
__author__ = "Local Pipeline Team"


__all__ = ["ToolkitConfig", "load_config", "get_toolkit_home", "Toolkit"]

from .config import ToolkitConfig, load_config, get_toolkit_home
from .pipeline import Toolkit
