"""Synchronization core: reference store, registry, action engine, session loop."""
