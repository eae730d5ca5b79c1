"""Squadron — squad coordination for grid-world units."""

__version__ = "0.1.0"
