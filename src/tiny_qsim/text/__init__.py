"""Text-grid front end: build circuits from text diagrams."""

from .grid import Cell, GridParseError, parse_grid, tokenize_grid

__all__ = ["Cell", "GridParseError", "parse_grid", "tokenize_grid"]
