"""Building blocks and sample clients and servers for TCP and UDP networking."""

__version__ = "0.1.0"