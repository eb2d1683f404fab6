from __future__ import annotations

import json
import logging
from typing import Any

from autoheal.core.metadata import MarkupSummary, RecoveryResult

AUDIT_LOGGER_NAME = "autoheal.audit"


class RecoveryAuditLogger:
    """Emits one structured record per recovery attempt."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def write(
        self,
        *,
        failed_selector: str,
        target_found: bool,
        result: RecoveryResult,
        backend: str,
        fell_back: bool,
        summary: MarkupSummary | None,
        elapsed_ms: float,
    ) -> dict[str, Any]:
        record = {
            "failed_selector": failed_selector,
            "target_found": target_found,
            "candidate_count": len(result.candidates),
            "top_choice": result.top_choice,
            "backend": backend,
            "fell_back": fell_back,
            "markup_summary": summary.to_dict() if summary is not None else None,
            "elapsed_ms": round(elapsed_ms, 2),
        }
        self.logger.info(json.dumps(record, sort_keys=True))
        return record
