"""
Structured Logging Module
=========================
Core code emits events as (level, message, structured fields); handlers
decide how they look:
- Rich console output with timestamps and levels
- JSON lines in an optional rotating log file
- Per-step timing metrics with a summary table
- Redaction of loaded private keys from every message
"""

import json
import logging
import logging.handlers
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .utils import redact_secrets


@dataclass
class PerformanceMetrics:
    """Timing and outcome of one transaction step."""
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    success: bool = False
    error: Optional[str] = None
    gas_used: Optional[int] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    extra: Optional[Dict[str, Any]] = None

    def finalize(self, success: bool = True, error: Optional[str] = None):
        """Finalize the metrics with result."""
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'start_time': datetime.fromtimestamp(self.start_time).isoformat(),
            'duration_ms': round(self.duration_ms, 2) if self.duration_ms else None,
            'success': self.success,
            'error': self.error,
            'gas_used': self.gas_used,
            'tx_hash': self.tx_hash,
            'block_number': self.block_number,
            'extra': self.extra or {}
        }


class MetricsCollector:
    """Collects and aggregates per-operation metrics."""

    def __init__(self):
        self.metrics: List[PerformanceMetrics] = []
        self._lock = threading.Lock()

    def add_metric(self, metric: PerformanceMetrics):
        with self._lock:
            self.metrics.append(metric)

    def get_summary(self) -> Dict[str, Any]:
        """Totals, success rate and timings grouped by operation."""
        with self._lock:
            operations: Dict[str, Dict[str, Any]] = {}
            for metric in self.metrics:
                stats = operations.setdefault(metric.operation, {
                    'total': 0, 'success': 0, 'failure': 0, 'gas_used': 0, 'times': []
                })
                stats['total'] += 1
                if metric.success:
                    stats['success'] += 1
                else:
                    stats['failure'] += 1
                if metric.gas_used:
                    stats['gas_used'] += metric.gas_used
                if metric.duration_ms is not None:
                    stats['times'].append(metric.duration_ms)

            for stats in operations.values():
                times = stats.pop('times')
                stats['success_rate'] = round(stats['success'] / stats['total'] * 100, 2)
                stats['avg_duration_ms'] = round(sum(times) / len(times), 2) if times else 0

            return {
                'total_operations': len(self.metrics),
                'operations': operations,
            }

    def clear(self):
        with self._lock:
            self.metrics.clear()


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if hasattr(record, 'fields'):
            log_data['fields'] = record.fields

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """
    Structured logger used by every component of the bot.

    Usage:
        logger = StructuredLogger('roundtrip', log_file='logs/bot.log')
        logger.info('Swap sent', extra={'tx_hash': '0xabc', 'nonce': 7})

        with logger.timed_operation('swap_out', extra={'nonce': 7}) as metric:
            metric.tx_hash = send()
    """

    def __init__(
        self,
        name: str,
        log_file: Optional[str] = None,
        log_level: str = 'INFO',
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        console: Optional[Console] = None,
    ):
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.logger.handlers = []
        self.logger.propagate = False

        self.metrics = MetricsCollector()
        self.console = console or Console()
        self._secrets: set = set()

        console_handler = RichHandler(
            console=self.console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(console_handler)

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count
            )
            file_handler.setFormatter(JSONFormatter())
            self.logger.addHandler(file_handler)

    def register_secrets(self, secrets: Iterable[str]):
        """Values that must never appear in log output."""
        self._secrets.update(s for s in secrets if s)

    def _log(self, level: str, message: str, extra: Optional[Dict[str, Any]] = None, **kwargs):
        message = redact_secrets(message, self._secrets)
        fields = {
            key: redact_secrets(value, self._secrets) if isinstance(value, str) else value
            for key, value in (extra or {}).items()
        }
        getattr(self.logger, level)(message, extra={'fields': fields}, **kwargs)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log('debug', message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log('info', message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log('warning', message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: bool = False):
        self._log('error', message, extra, exc_info=exc_info)

    def critical(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: bool = False):
        self._log('critical', message, extra, exc_info=exc_info)

    class TimedOperation:
        """Context manager timing one operation into the metrics collector."""

        def __init__(self, logger: 'StructuredLogger', operation: str, extra: Optional[Dict[str, Any]] = None):
            self.logger = logger
            self.operation = operation
            self.extra = extra or {}
            self.metric: Optional[PerformanceMetrics] = None

        def __enter__(self) -> PerformanceMetrics:
            self.metric = PerformanceMetrics(
                operation=self.operation,
                start_time=time.time(),
                extra=self.extra
            )
            self.logger.debug(f"Starting {self.operation}", extra=self.extra)
            return self.metric

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_type:
                self.metric.finalize(success=False, error=str(exc_val))
            else:
                self.metric.finalize(success=True)
            self.logger.debug(
                f"{self.operation} finished in {self.metric.duration_ms:.2f}ms",
                extra={'success': self.metric.success, 'duration_ms': self.metric.duration_ms}
            )
            self.logger.metrics.add_metric(self.metric)
            return False  # Don't suppress exceptions

    def timed_operation(self, operation: str, extra: Optional[Dict[str, Any]] = None):
        return self.TimedOperation(self, operation, extra)

    def print_metrics_summary(self):
        """Print per-step metrics as a Rich table."""
        summary = self.metrics.get_summary()
        if not summary['operations']:
            return

        table = Table(title="Transaction Steps", box=box.ROUNDED)
        table.add_column("Step", style="cyan")
        table.add_column("Total", justify="right")
        table.add_column("Success", justify="right", style="green")
        table.add_column("Failure", justify="right", style="red")
        table.add_column("Success %", justify="right")
        table.add_column("Gas used", justify="right")
        table.add_column("Avg ms", justify="right")

        for op, stats in summary['operations'].items():
            table.add_row(
                op,
                str(stats['total']),
                str(stats['success']),
                str(stats['failure']),
                f"{stats['success_rate']:.1f}%",
                str(stats['gas_used']),
                f"{stats['avg_duration_ms']:.2f}",
            )

        self.console.print(table)


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = 'roundtrip_bot', log_file: Optional[str] = None, **kwargs) -> StructuredLogger:
    """Get or create the shared logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = StructuredLogger(name, log_file, **kwargs)
    return _global_logger


def configure_logger(name: str = 'roundtrip_bot', log_file: Optional[str] = None, **kwargs) -> StructuredLogger:
    """Replace the shared logger, e.g. once CLI options are known."""
    global _global_logger
    _global_logger = StructuredLogger(name, log_file, **kwargs)
    return _global_logger
