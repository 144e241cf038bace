"""rs485lock: FIFO serial bus lock shared by unrelated processes."""

__version__ = "0.1.0"
