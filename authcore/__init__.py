"""Authentication core: credentials, sessions and single-use tokens."""

__version__ = "0.1.0"
