"""dumpshift: convert a MySQL dump's schema and rows for a range-partitioned, interleaving store."""

__version__ = "0.1.0"
