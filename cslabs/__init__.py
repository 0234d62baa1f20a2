"""Cache simulator, transpose helpers, simulated heap allocators and their trace driver."""

__version__ = "0.1.0"