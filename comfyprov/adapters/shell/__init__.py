"""Shell and filesystem adapters."""
