# src/asvflow/pipeline/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from asvflow.utils.logger import get_logger

LOG = get_logger("report")


@dataclass
class StageReport:
    stage: str
    scope: str = "all"
    processed: int = 0
    excluded: int = 0
    failed: int = 0
    notes: List[str] = field(default_factory=list)

    def log(self) -> "StageReport":
        LOG.info("[%s:%s] processed=%d excluded=%d failed=%d%s",
                 self.stage, self.scope, self.processed, self.excluded, self.failed,
                 (" (" + "; ".join(self.notes) + ")") if self.notes else "")
        return self
