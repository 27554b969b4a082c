"""Auto-reloading environment holders and scope-bound object references."""

__version__ = "0.1.0"
__all__ = ["autoreload", "stackref"]