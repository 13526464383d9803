"""Structured pipeline events injected into request processing."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from . import metrics

logger = logging.getLogger("uvicorn.error")


class PipelineEvents:
    """Sink for stage events; subclasses decide where they go."""

    def emit(self, stage: str, outcome: str = "ok", **fields: Any) -> None:
        raise NotImplementedError


class LoggingEvents(PipelineEvents):
    """Default sink: one JSON log line plus a stage counter per event."""

    def __init__(self, request_id: Optional[str] = None) -> None:
        self.request_id = request_id

    def emit(self, stage: str, outcome: str = "ok", **fields: Any) -> None:
        message = {"request_id": self.request_id, "stage": stage, "outcome": outcome, **fields}
        level = logging.WARNING if outcome not in {"ok", "skipped"} else logging.INFO
        logger.log(level, "[PIPELINE] %s", json.dumps(message, default=str))
        metrics.record_stage(stage, outcome)


class RecordingEvents(PipelineEvents):
    """Keeps events in memory; used by tests and debugging endpoints."""

    def __init__(self) -> None:
        self.records: List[Tuple[str, str, Dict[str, Any]]] = []

    def emit(self, stage: str, outcome: str = "ok", **fields: Any) -> None:
        self.records.append((stage, outcome, fields))

    def stages(self) -> List[str]:
        return [stage for stage, _, _ in self.records]

    def find(self, stage: str) -> Optional[Dict[str, Any]]:
        for recorded_stage, outcome, fields in self.records:
            if recorded_stage == stage:
                return {"outcome": outcome, **fields}
        return None
