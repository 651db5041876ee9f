"""A small TCP chat room with a broadcasting server, persistent history and a line-oriented client."""

__version__ = "0.1.0"
__all__ = ["protocol", "history", "server", "client"]