"""Live trip sessions and geospatial tracking."""

__version__ = "0.1.0"
