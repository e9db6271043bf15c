"""OpenLineage proxy: sequenced, durable storage of lineage events."""

__version__ = "0.1.0"
