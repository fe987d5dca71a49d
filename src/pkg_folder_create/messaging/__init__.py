"""Broadcast delivery and status publishing over the shared database."""
