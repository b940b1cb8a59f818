"""brewpipe — interactive package-manager update pipeline."""

__version__ = "0.1.0"
