"""Python packaging adapters."""
