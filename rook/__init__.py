"""rook: signed webhook intake that launches local commands."""

__version__ = "0.3.0"
