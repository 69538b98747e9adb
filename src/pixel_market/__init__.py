"""Price-history indexing and query tools for the PixelGrid marketplace."""

__version__ = "0.1.0"
