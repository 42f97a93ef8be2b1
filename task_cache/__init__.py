"""Quick daily task logging for developers, with GitHub backup."""

__version__ = "1.0.0"
