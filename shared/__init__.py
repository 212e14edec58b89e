"""Shared building blocks: configuration, logging, schemas, clocks and caches."""
