"""Remote VM agent for spuff development environments."""

__version__ = "0.4.0"
