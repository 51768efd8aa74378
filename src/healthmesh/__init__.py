"""healthmesh: periodic health correlation for external diagnostic tools."""

__version__ = "0.1.0"
