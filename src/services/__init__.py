"""Reflection engine services."""
