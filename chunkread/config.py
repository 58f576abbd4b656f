#!/usr/bin/env python3
"""
Reader configuration
Settings consumed by the query builder, the row cursor and the diagnostics hooks
"""

import os
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from chunkread.errors import ConfigurationError


class FilterScope(Enum):
    """Where a user filter predicate is applied"""
    SPLIT = "SPLIT"         # once, over the unioned result
    SUBSPLIT = "SUBSPLIT"   # inside every per-chunk block


DEFAULT_IMPORT_HINT = "NO_INDEX(t)"

DEFAULT_READER_CONFIG = {
    'consistent_read': False,
    'consistent_read_scn': None,
    'filter_scope': FilterScope.SUBSPLIT.value,
    'escaping_disabled': False,
    'profiling_enabled': False,
    'import_hint': DEFAULT_IMPORT_HINT,
    'omit_lob_columns': False,
    'fetch_size': 5000,
}

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _as_scn(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid SCN for consistent read: {value!r}")


def parse_filter_scope(value: Any) -> FilterScope:
    """Accept a FilterScope or its name, case-insensitively"""
    if isinstance(value, FilterScope):
        return value
    try:
        return FilterScope(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(scope.value for scope in FilterScope)
        raise ConfigurationError(f"Unknown filter scope '{value}'. Supported: {allowed}")


@dataclass(frozen=True)
class ReaderConfig:
    """Configuration surface of one split reader"""
    consistent_read: bool = False
    consistent_read_scn: Optional[int] = None
    filter_scope: FilterScope = FilterScope.SUBSPLIT
    escaping_disabled: bool = False
    profiling_enabled: bool = False
    import_hint: str = DEFAULT_IMPORT_HINT
    omit_lob_columns: bool = False
    fetch_size: int = 5000

    def __post_init__(self):
        object.__setattr__(self, 'filter_scope', parse_filter_scope(self.filter_scope))
        if self.fetch_size < 1:
            raise ConfigurationError(f"fetch_size must be positive, got {self.fetch_size}")

    def validate_consistent_read(self):
        """Fail fast when a consistent read is requested without a usable SCN"""
        if self.consistent_read and not self.consistent_read_scn:
            raise ConfigurationError("Could not get SCN for consistent read.")

    @classmethod
    def from_dict(cls, conf: Optional[Mapping[str, Any]] = None) -> "ReaderConfig":
        """
        Build a configuration from a plain mapping

        Args:
            conf: Mapping using the keys of DEFAULT_READER_CONFIG; missing keys use defaults

        Returns:
            ReaderConfig instance
        """
        merged = dict(DEFAULT_READER_CONFIG)
        if conf:
            unknown = set(conf) - {f.name for f in fields(cls)}
            if unknown:
                raise ConfigurationError(f"Unknown reader settings: {', '.join(sorted(unknown))}")
            merged.update(conf)

        return cls(
            consistent_read=_as_bool(merged['consistent_read']),
            consistent_read_scn=_as_scn(merged['consistent_read_scn']),
            filter_scope=parse_filter_scope(merged['filter_scope']),
            escaping_disabled=_as_bool(merged['escaping_disabled']),
            profiling_enabled=_as_bool(merged['profiling_enabled']),
            import_hint=merged['import_hint'] or "",
            omit_lob_columns=_as_bool(merged['omit_lob_columns']),
            fetch_size=int(merged['fetch_size']),
        )

    @classmethod
    def from_env(cls, prefix: str = "CHUNKREAD_") -> "ReaderConfig":
        """Build a configuration from CHUNKREAD_* environment variables"""
        conf = {}
        for key in DEFAULT_READER_CONFIG:
            value = os.getenv(prefix + key.upper())
            if value is not None:
                conf[key] = value
        return cls.from_dict(conf)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'consistent_read': self.consistent_read,
            'consistent_read_scn': self.consistent_read_scn,
            'filter_scope': self.filter_scope.value,
            'escaping_disabled': self.escaping_disabled,
            'profiling_enabled': self.profiling_enabled,
            'import_hint': self.import_hint,
            'omit_lob_columns': self.omit_lob_columns,
            'fetch_size': self.fetch_size,
        }
