#!/usr/bin/env python3
"""
Structured logging for the chunked reader
Prefixes every message with split-level progress and process memory
"""

import logging
import re
import threading
import time
import psutil
from typing import Optional, Dict
from dataclasses import dataclass


@dataclass
class SplitContext:
    """Split-level context for structured logging"""
    split_id: int
    table_name: str
    start_time: float
    total_chunks: int = 0
    total_blocks: int = 0
    blocks_processed: int = 0
    rows_read: int = 0


def redact_sensitive_data(text):
    """Redact sensitive information from log messages"""
    if not isinstance(text, str):
        text = str(text)

    patterns = [
        (r'(password|pwd|pass|secret|token)\s*[:=]\s*[^\s,]+', r'\1=***REDACTED***'),
        (r'://([^:/]+):([^@]+)@', r'://\1:***REDACTED***@'),
        (r'\b([A-Za-z0-9_$#]+)/([^@\s]+)@', r'\1/***REDACTED***@'),
    ]

    redacted_text = text
    for pattern, replacement in patterns:
        redacted_text = re.sub(pattern, replacement, redacted_text, flags=re.IGNORECASE)

    return redacted_text


class SensitiveDataFilter(logging.Filter):
    """Logging filter to redact sensitive information"""
    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = redact_sensitive_data(record.msg)
        if record.args:
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class EnhancedLogger:
    """
    Structured logger with per-thread split context
    """

    def __init__(self, name: str = "CHUNKREAD"):
        self.logger = logging.getLogger(name)
        self._setup_logger()

        # Each worker thread reads its own split
        self._local = threading.local()
        self._lock = threading.Lock()
        self._split_contexts: Dict[int, SplitContext] = {}

    def _setup_logger(self):
        """Configure structured logging format"""
        if not self.logger.handlers:
            console_handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '[%(asctime)s] [%(levelname)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(formatter)
            console_handler.addFilter(SensitiveDataFilter())
            self.logger.addHandler(console_handler)
            self.logger.setLevel(logging.INFO)

    def set_split_context(self, split_id: int, table_name: str,
                          total_chunks: int = 0, total_blocks: int = 0) -> SplitContext:
        """Set split-level context for current thread"""
        context = SplitContext(
            split_id=split_id,
            table_name=table_name,
            start_time=time.time(),
            total_chunks=total_chunks,
            total_blocks=total_blocks
        )
        with self._lock:
            self._split_contexts[split_id] = context
        self._local.split_context = context
        return context

    def get_split_context(self) -> Optional[SplitContext]:
        """Get current split context"""
        return getattr(self._local, 'split_context', None)

    def clear_split_context(self):
        context = self.get_split_context()
        if context is not None:
            with self._lock:
                self._split_contexts.pop(context.split_id, None)
        self._local.split_context = None

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable form"""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            return f"{seconds/60:.1f}m"
        else:
            return f"{seconds/3600:.1f}h"

    def _format_rows(self, count: int) -> str:
        """Format row count in human-readable form"""
        if count < 1000:
            return str(count)
        elif count < 1000000:
            return f"{count/1000:.1f}K"
        elif count < 1000000000:
            return f"{count/1000000:.1f}M"
        else:
            return f"{count/1000000000:.1f}B"

    def _get_memory_usage(self) -> str:
        """Get current memory usage"""
        try:
            process = psutil.Process()
            memory_mb = process.memory_info().rss / 1024 / 1024
            return f"{memory_mb:.1f}MB"
        except psutil.Error:
            return "Unknown"

    def _build_context_prefix(self) -> str:
        """Build context prefix for log messages"""
        parts = []

        split_ctx = self.get_split_context()
        if split_ctx:
            parts.append(f"SPLIT:{split_ctx.split_id}")
            parts.append(f"TABLE:{split_ctx.table_name}")
            if split_ctx.total_blocks > 0:
                progress = (split_ctx.blocks_processed / split_ctx.total_blocks) * 100
                parts.append(f"PROGRESS:{progress:.1f}%")
                parts.append(f"BLOCKS:{split_ctx.blocks_processed}/{split_ctx.total_blocks}")
            if split_ctx.rows_read > 0:
                parts.append(f"ROWS:{self._format_rows(split_ctx.rows_read)}")

        parts.append(f"MEM:{self._get_memory_usage()}")

        return "[" + "] [".join(parts) + "]"

    def info(self, message: str, **kwargs):
        """Log info message with context"""
        self.logger.info(f"{self._build_context_prefix()} {message}", **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with context"""
        self.logger.warning(f"{self._build_context_prefix()} {message}", **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with context"""
        self.logger.error(f"{self._build_context_prefix()} {message}", **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message with context"""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"{self._build_context_prefix()} {message}", **kwargs)

    # Split-level logging methods
    def split_started(self, split_id: int, table_name: str, total_chunks: int, total_blocks: int):
        """Log the start of a split read"""
        self.set_split_context(split_id, table_name, total_chunks, total_blocks)
        self.info(f"Started reading split: {total_chunks} data-chunks, {total_blocks} blocks")

    def split_progress(self, blocks_processed: int, rows_read: int):
        """Update split progress context"""
        split_ctx = self.get_split_context()
        if split_ctx:
            split_ctx.blocks_processed = blocks_processed
            split_ctx.rows_read = rows_read

    def split_completed(self, rows_read: int, duration: float):
        """Log split completion"""
        throughput = int(rows_read / duration) if duration > 0 else 0
        self.info(f"Split read completed: {self._format_rows(rows_read)} rows "
                  f"in {self._format_duration(duration)} at {self._format_rows(throughput)}/sec")

    def split_failed(self, error: str):
        """Log split failure"""
        self.error(f"Split read failed: {error}")

    def query_failed(self, query: str, error: str):
        """Log a query that the database rejected"""
        self.error(f"Error while executing the SQL query:\n{query}\n\n{error}")

    def session_killed(self):
        """Log that the database session was terminated by a third party"""
        self.info("\n*********************************************************"
                  "\nThe database session in use has been killed by a 3rd party."
                  "\n*********************************************************")


# Global logger instance
logger = EnhancedLogger("CHUNKREAD")
