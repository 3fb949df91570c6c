"""Ingestion configuration loaded from environment variables.

All configuration values have sensible defaults. ``from_env()`` raises
``ConfigValidationError`` if any numeric value is out of its valid range,
so bad configuration is caught when the session is built rather than
halfway through an import.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from parcel_ingest.core.constants import (
    DEFAULT_PARCEL_CODE_PREFIX,
    DEFAULT_PARSE_TIMEOUT_S,
    DEFAULT_PARSE_WORKERS,
    MAX_FEATURES_PER_IMPORT,
    MAX_FILE_SIZE_BYTES,
)
from parcel_ingest.core.exceptions import IngestError


class ConfigValidationError(IngestError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(
            f"Invalid configuration {key}={value!r}: {message}",
            details={"key": key, "value": repr(value)},
        )


@dataclass(frozen=True, slots=True)
class IngestConfig:
    """Immutable ingestion configuration.

    Attributes:
        max_file_size_bytes: Largest accepted upload, in bytes.
        max_features_per_import: Largest number of features a single file may hold.
        parse_workers: Worker threads used for per-feature processing.
        parse_timeout_s: Wall-clock budget for one parse, in seconds.
        parcel_code_prefix: Prefix for generated parcel codes (``PARC-0001``).
    """

    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES
    max_features_per_import: int = MAX_FEATURES_PER_IMPORT
    parse_workers: int = DEFAULT_PARSE_WORKERS
    parse_timeout_s: float = DEFAULT_PARSE_TIMEOUT_S
    parcel_code_prefix: str = DEFAULT_PARCEL_CODE_PREFIX

    @classmethod
    def from_env(cls) -> IngestConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range
                or a required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``PARCEL_PARSE_WORKERS=abc``).
        """
        config = cls(
            max_file_size_bytes=int(
                os.getenv("PARCEL_MAX_FILE_SIZE_BYTES", str(MAX_FILE_SIZE_BYTES))
            ),
            max_features_per_import=int(
                os.getenv("PARCEL_MAX_FEATURES_PER_IMPORT", str(MAX_FEATURES_PER_IMPORT))
            ),
            parse_workers=int(os.getenv("PARCEL_PARSE_WORKERS", str(DEFAULT_PARSE_WORKERS))),
            parse_timeout_s=float(
                os.getenv("PARCEL_PARSE_TIMEOUT_S", str(DEFAULT_PARSE_TIMEOUT_S))
            ),
            parcel_code_prefix=os.getenv("PARCEL_CODE_PREFIX", DEFAULT_PARCEL_CODE_PREFIX),
        )
        _validate(config)
        return config


def _validate(config: IngestConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.max_file_size_bytes <= 0:
        raise ConfigValidationError(
            "PARCEL_MAX_FILE_SIZE_BYTES",
            config.max_file_size_bytes,
            "must be > 0 (bytes)",
        )

    if config.max_features_per_import <= 0:
        raise ConfigValidationError(
            "PARCEL_MAX_FEATURES_PER_IMPORT",
            config.max_features_per_import,
            "must be > 0",
        )

    if not 1 <= config.parse_workers <= 64:
        raise ConfigValidationError(
            "PARCEL_PARSE_WORKERS",
            config.parse_workers,
            "must be between 1 and 64",
        )

    if config.parse_timeout_s <= 0:
        raise ConfigValidationError(
            "PARCEL_PARSE_TIMEOUT_S",
            config.parse_timeout_s,
            "must be > 0 (seconds)",
        )

    if not config.parcel_code_prefix.strip():
        raise ConfigValidationError(
            "PARCEL_CODE_PREFIX",
            config.parcel_code_prefix,
            "must not be empty",
        )
