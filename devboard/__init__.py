"""DevBoard: device reservation dashboard backend."""

__version__ = "0.1.0"
