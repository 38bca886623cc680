"""Clock offset estimation against a reference time server."""

__version__ = "0.1.0"
