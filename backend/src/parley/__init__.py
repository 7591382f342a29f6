"""Realtime delivery core of the Parley chat service."""
