"""Remember The Milk gateway exposing lists and tasks to AI assistants."""

__version__ = "0.1.0"
