"""Family-tree graph backend: storage, validation and whole-tree sync."""

__version__ = "0.1.0"
