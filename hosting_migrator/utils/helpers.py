"""
Helper utilities for the Hosting Migrator.

This module contains various utility functions used throughout
the application for common operations.
"""

import asyncio
import hashlib
import json
import logging
import os
import uuid
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union

import yaml

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form the status store keeps."""
    return datetime.now(UTC).replace(tzinfo=None)


def generate_migration_id() -> str:
    """Generate a unique, caller-visible migration ID."""
    timestamp = int(datetime.now(UTC).timestamp() * 1000)
    unique_id = uuid.uuid4().hex[:8].upper()
    return f"MIG-{timestamp}-{unique_id}"


def calculate_file_checksum(file_path: Union[str, Path], algorithm: str = "sha256") -> str:
    """
    Calculate checksum for a file.

    Args:
        file_path: Path to the file
        algorithm: Hash algorithm (md5, sha1, sha256, sha512)

    Returns:
        Hexadecimal checksum string
    """
    hash_obj = hashlib.new(algorithm)

    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hash_obj.update(chunk)

    return hash_obj.hexdigest()


def format_bytes(bytes_count: int) -> str:
    """Format bytes into human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024.0:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024.0
    return f"{bytes_count:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def directory_size(path: Union[str, Path]) -> int:
    """Total size in bytes of the regular files below a directory."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            file_path = os.path.join(root, name)
            if not os.path.islink(file_path):
                total += os.path.getsize(file_path)
    return total


def load_config_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Args:
        file_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, 'r', encoding='utf-8') as f:
        if file_path.suffix.lower() in ['.yaml', '.yml']:
            return yaml.safe_load(f) or {}
        elif file_path.suffix.lower() == '.json':
            return json.load(f)
        else:
            raise ValueError(f"Unsupported configuration file format: {file_path.suffix}")


def sanitize_dict(data: Dict[str, Any], sensitive_keys: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Sanitize dictionary by masking sensitive values.

    Used before a migration request is persisted, so FTP passwords and
    mailbox credentials never reach the status store.
    """
    if sensitive_keys is None:
        sensitive_keys = ['password', 'passwd', 'secret', 'token', 'private_key']

    def _sanitize_value(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return sanitize_dict(value, sensitive_keys)
        elif isinstance(value, list):
            return [_sanitize_value(key, item) for item in value]
        elif any(sensitive_key in key.lower() for sensitive_key in sensitive_keys):
            return "***MASKED***" if value else value
        else:
            return value

    return {key: _sanitize_value(key, value) for key, value in data.items()}


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> T:
    """
    Await ``func`` until it succeeds, retrying with exponential backoff.

    Args:
        func: Zero-argument coroutine factory to call on each attempt
        max_attempts: Maximum number of attempts
        delay: Initial delay between attempts
        backoff_factor: Multiplier for delay after each attempt
        exceptions: Exceptions that trigger another attempt
        description: Label used in log messages

    Returns:
        The result of the first successful attempt
    """
    current_delay = delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except exceptions as e:
            if attempt == max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): {e}; "
                f"retrying in {current_delay:.1f}s"
            )
            await asyncio.sleep(current_delay)
            current_delay *= backoff_factor

    raise RuntimeError("retry_async called with max_attempts < 1")
