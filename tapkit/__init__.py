"""tapkit - data-driven binary installer."""

__version__ = "0.1.0"
