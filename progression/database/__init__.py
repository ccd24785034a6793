"""Persistence schema for the progression engine."""
