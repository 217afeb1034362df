"""Messagely: users register, log in and exchange direct messages."""

__version__ = "1.0.0"
