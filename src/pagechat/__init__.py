"""Page-aware chat agent: snapshot store, resilient inference client and tool loop."""

__all__ = ["__version__"]

__version__ = "0.1.0"
