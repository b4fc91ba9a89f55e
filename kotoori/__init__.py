"""Kotoori: file history backend for the Kotoori novel editor."""

__version__ = "0.1.0"
