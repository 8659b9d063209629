"""Test environments with lifecycle hooks, features and steps, and condition polling."""

__version__ = "0.1.0"

__all__ = ["action", "conditions", "env", "wait"]