"""Misko - group chat AI assistant with multi-provider fallback and fact memory."""

__version__ = "0.3.0"
