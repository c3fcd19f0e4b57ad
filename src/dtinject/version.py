"""Version information for dtinject."""

__version__ = "0.3.0"
