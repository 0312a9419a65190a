"""The Circuit - gym climbing tracker client."""

__version__ = "1.0.0"
