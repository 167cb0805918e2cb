"""Execution primitives shared by the adapters."""
