"""Conversational complaint-intake and tracking agent."""

__version__ = "0.1.0"
