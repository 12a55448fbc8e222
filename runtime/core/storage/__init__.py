"""Durable and in-memory timestamp stores."""
