"""Persistence backends for reviewtask task sets."""
