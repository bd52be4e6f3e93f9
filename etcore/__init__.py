"""Building blocks for a persistent remote terminal: port forwarding, UUIDs and UTF conversions."""

__version__ = "0.1.0"