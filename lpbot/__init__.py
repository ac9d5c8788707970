"""LPBot: listening-party Discord bot."""

__version__ = "0.4.0"
