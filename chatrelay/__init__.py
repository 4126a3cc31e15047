"""chatrelay: an authenticating gateway in front of chat-completion providers."""

__version__ = "0.1.0"
