"""Schema evolution tooling for the property operations database."""

__version__ = "0.1.0"
