"""Fabric core: workspace/artifact services shared with satellite extensions."""

__version__ = "0.1.0"
