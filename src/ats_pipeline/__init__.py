"""Application pipeline engine for the recruitment dashboard."""

__version__ = "0.1.0"
