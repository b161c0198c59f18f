"""Keep several versions of a UI component in sync with a generated index."""

__version__ = "0.1.0"
