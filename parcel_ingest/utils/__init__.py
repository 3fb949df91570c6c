"""Shared helpers for attribute records."""
