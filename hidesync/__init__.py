"""HideSync workshop client libraries."""

__version__ = "0.4.0"
