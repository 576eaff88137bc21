"""RFC-1662 style framing for storing binary data on byte-oriented media."""

__version__ = "0.1.0"
