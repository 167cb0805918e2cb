"""Persistence of run records."""
