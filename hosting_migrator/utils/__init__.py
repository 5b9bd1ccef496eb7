"""
Utility modules for the Hosting Migrator.
"""

from hosting_migrator.utils.helpers import (
    utcnow,
    generate_migration_id,
    calculate_file_checksum,
    format_bytes,
    format_duration,
    directory_size,
    load_config_file,
    sanitize_dict,
    retry_async,
)
from hosting_migrator.utils.logging import (
    LogCategory,
    StructuredFormatter,
    MigrationLogger,
    setup_logging,
    get_logger,
)

__all__ = [
    "utcnow",
    "generate_migration_id",
    "calculate_file_checksum",
    "format_bytes",
    "format_duration",
    "directory_size",
    "load_config_file",
    "sanitize_dict",
    "retry_async",
    "LogCategory",
    "StructuredFormatter",
    "MigrationLogger",
    "setup_logging",
    "get_logger",
]
