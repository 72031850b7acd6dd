"""listsync: fetch curated media lists and request what has not been requested yet."""

__version__ = "0.1.0"

__all__ = ["__version__"]
