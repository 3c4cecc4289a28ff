"""Version of delayalloc package."""
__version__ = "0.0.1"
