"""Battle-time character recruitment engine for a tactics RPG."""

__version__ = "0.1.0"
