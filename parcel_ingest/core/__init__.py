"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants, precisions, whitelists, limits
- exceptions: Ingestion exception hierarchy
"""
