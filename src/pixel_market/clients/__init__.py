"""Clients for external services consumed by pixel-market."""
