"""
Audit logging for network mirroring and library imports.

Logs ids, kinds and counts only. Titles, notes and ciphertext are never
written to the audit trail.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class AuditLogger:
    """
    Structured audit logger.

    Features:
    - JSON event logging, one event per line
    - Publish / retraction / import / fetch tracking
    - Append-only log file
    """

    def __init__(self, log_file: str = "./audit.log", level: str = "INFO"):
        """
        Initialize audit logger.

        Args:
            log_file: Path to audit log
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(f"refmirror_audit.{self.log_file.resolve()}")
        self.logger.setLevel(getattr(logging, level))
        self.logger.propagate = False

        fh = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        fh.setLevel(getattr(logging, level))
        fh.setFormatter(logging.Formatter('%(message)s'))

        # Remove existing handlers to avoid duplicates
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers = [fh]

    def log_event(self, event_dict: Dict[str, Any]):
        """
        Log a structured event as JSON.

        Args:
            event_dict: Event data to log
        """
        event_dict['timestamp'] = datetime.now(timezone.utc).isoformat()
        self.logger.info(json.dumps(event_dict))

    def log_publish(self, citation_id: str, event_id: str, kind: int,
                    visibility: str, **kwargs):
        """
        Log a successful publish.

        Args:
            citation_id: Local citation id
            event_id: Transport-assigned event id
            kind: Event kind number
            visibility: public or private
            **kwargs: Additional metadata
        """
        self.log_event({
            "event": "publish",
            "citation_id": citation_id,
            "event_id": event_id,
            "kind": kind,
            "visibility": visibility,
            **kwargs
        })

    def log_retraction(self, citation_id: str, target_event_id: str,
                       succeeded: bool, **kwargs):
        """
        Log a retraction attempt.

        Args:
            citation_id: Local citation id
            target_event_id: Event being retracted
            succeeded: Whether the retraction was sent
            **kwargs: Additional metadata (retraction_id, error)
        """
        self.log_event({
            "event": "retraction",
            "citation_id": citation_id,
            "target_event_id": target_event_id,
            "succeeded": succeeded,
            **kwargs
        })

    def log_import(self, source: str, total: int, succeeded: int, failed: int, **kwargs):
        """Log a BibTeX import batch."""
        self.log_event({
            "event": "bibtex_import",
            "source": source,
            "total": total,
            "succeeded": succeeded,
            "failed": failed,
            **kwargs
        })

    def log_fetch(self, kind: int, num_results: int, execution_time_ms: float, **kwargs):
        """Log a network query."""
        self.log_event({
            "event": "fetch",
            "kind": kind,
            "num_results": num_results,
            "execution_time_ms": execution_time_ms,
            **kwargs
        })

    def log_error(self, error_type: str, message: str, context: Optional[Dict] = None):
        """
        Log system error.

        Args:
            error_type: Type of error
            message: Error message
            context: Optional context dictionary
        """
        self.log_event({
            "event": "error",
            "error_type": error_type,
            "message": message,
            **(context or {})
        })


def get_audit_logger(config: Optional[Dict[str, Any]] = None) -> Optional[AuditLogger]:
    """
    Get configured audit logger instance.

    Args:
        config: Audit config dict with 'enabled', 'file' and 'level' keys

    Returns:
        AuditLogger instance, or None when auditing is disabled
    """
    if config is None:
        config = {'enabled': True, 'file': './audit.log', 'level': 'INFO'}
    if not config.get('enabled', True):
        return None

    return AuditLogger(
        log_file=config.get('file', './audit.log'),
        level=config.get('level', 'INFO')
    )
