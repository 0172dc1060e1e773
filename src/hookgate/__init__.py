"""hookgate - local build/test gate for git lifecycle hooks."""

__version__ = "0.1.0"
