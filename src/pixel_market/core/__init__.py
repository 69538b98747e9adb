"""Shared building blocks: configuration, grid geometry, and unit helpers."""
