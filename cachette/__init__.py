"""cachette: local model lifecycle manager + structured query layer."""

__version__ = "0.1.0"
