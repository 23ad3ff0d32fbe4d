"""Video sharing backend with chunked object-storage transfers."""

__version__ = "0.1.0"
