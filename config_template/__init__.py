"""Template engine for configuration trees with embedded expressions."""

__version__ = "0.1.0"
