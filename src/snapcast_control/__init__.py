"""Persistent, auto-reconnecting client for the Snapcast JSON-RPC control API."""

__version__ = "0.1.0"
