"""releasemeta: maintain a versioned releases JSON document with archive checksums."""

__version__ = "0.3.0"
