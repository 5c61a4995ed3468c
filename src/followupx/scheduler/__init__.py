"""Durable job scheduling: store, registry, dispatcher and service facade."""
