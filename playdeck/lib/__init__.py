"""Shared building blocks for Playdeck player drivers."""
