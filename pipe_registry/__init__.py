"""Registry of named, versioned pipe archives."""

__version__ = "0.1.0"
