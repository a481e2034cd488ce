"""cli-wrap environment configuration.

Environment variables:
    CLIWRAP_ENCODING: Default text encoding
        - Used to encode string stdin and decode stdout/stderr when the
          caller does not pick an encoding
        - Unset or unknown = locale preferred encoding

    CLIWRAP_DECODE_ERRORS: Codec error handler for output decoding
        - strict / replace (default) / ignore / backslashreplace

    CLIWRAP_LOG_DEBUG: Debug logging mode
        - true/1/yes = on (DEBUG logs written to a temp file)
        - false/0/no = off (default, INFO logs to stderr)
"""

from __future__ import annotations

import codecs
import locale
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DECODE_ERROR_HANDLERS = frozenset({"strict", "replace", "ignore", "backslashreplace"})
DEFAULT_DECODE_ERRORS = "replace"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _default_encoding() -> str:
    return codecs.lookup(locale.getpreferredencoding(False)).name


def _parse_encoding(value: str | None) -> str:
    """Parse an encoding name, falling back to the locale encoding."""
    if not value or not value.strip():
        return _default_encoding()
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return _default_encoding()


def _parse_decode_errors(value: str | None) -> str:
    if not value:
        return DEFAULT_DECODE_ERRORS
    value = value.strip().lower()
    if value in DECODE_ERROR_HANDLERS:
        return value
    return DEFAULT_DECODE_ERRORS


@dataclass
class Config:
    """cli-wrap configuration.

    Attributes:
        encoding: Default encoding for stdin strings and output decoding
        decode_errors: Codec error handler used when decoding output
        log_debug: Debug logging mode (logs to a temp file)
        log_file: Log file path (set automatically when log_debug=True)
    """

    encoding: str = "utf-8"
    decode_errors: str = DEFAULT_DECODE_ERRORS
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(encoding={self.encoding}, "
            f"decode_errors={self.decode_errors}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "cli-wrap"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cliwrap_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("CLIWRAP_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        encoding=_parse_encoding(os.environ.get("CLIWRAP_ENCODING")),
        decode_errors=_parse_decode_errors(os.environ.get("CLIWRAP_DECODE_ERRORS")),
        log_debug=log_debug,
        log_file=log_file,
    )


# Global config instance (lazy)
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
