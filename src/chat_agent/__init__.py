"""Command-line chat client with a declarative task-automation agent."""

__version__ = "0.1.0"
