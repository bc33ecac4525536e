"""Gmail sender statistics with a persistent per-message cache."""

__version__ = "0.1.0"
