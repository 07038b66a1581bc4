"""meetgrid: find meeting times that work for a whole group."""

__version__ = "0.1.0"
