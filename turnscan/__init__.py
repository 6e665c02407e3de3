"""turnscan - turntable photogrammetry capture engine."""

__version__ = "0.3.0"
