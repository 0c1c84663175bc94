"""Movie rating web API over a wide-column store interface, with caching and a write-load panel."""

__version__ = "0.1.0"