"""Provisioning services: repository lists, version pins, verification, wrappers."""
