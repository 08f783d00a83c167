"""Threaded simulation of users and nodes recording payments in a shared in-memory ledger."""

__version__ = "0.1.0"