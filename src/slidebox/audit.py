"""Per-phase checkpoints and decision log for slidebox runs."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

PHASES = ("resolve", "validate", "derive", "assemble")
GENESIS_HASH = "0" * 64


def canonical_json(payload: Dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _seal(payload: Dict[str, object], key: str) -> str:
    """Store the payload's hash under ``key``, then stamp it; the stamp is not hashed."""
    digest = sha256_text(canonical_json(payload))
    payload[key] = digest
    payload["timestamp_utc"] = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
    return digest


def phase_index(phase: str) -> int:
    try:
        return PHASES.index(phase)
    except ValueError:
        raise ValueError(f"Unknown pipeline phase: {phase!r}") from None


@dataclass(frozen=True)
class Checkpoint:
    phase: str
    path: Path
    payload_sha256: str


class AuditTrail:
    """One JSON checkpoint per pipeline phase plus a hash-chained decision log.

    Files land under ``artifacts_dir``: ``checkpoints/phase_NN_<phase>.json``,
    ``decision_log.jsonl`` and, after ``finalize``, ``audit_index.json``.
    """

    def __init__(self, run_id: str, artifacts_dir: Path):
        self.run_id = run_id
        self.artifacts_dir = Path(artifacts_dir)
        self.checkpoints_dir = self.artifacts_dir / "checkpoints"
        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
        self.decision_log_path = self.artifacts_dir / "decision_log.jsonl"
        self.index_path = self.artifacts_dir / "audit_index.json"
        self._last_hash = GENESIS_HASH
        self._decisions = 0
        self._checkpoints: List[Checkpoint] = []

    @property
    def checkpoints(self) -> List[Checkpoint]:
        return list(self._checkpoints)

    @property
    def decision_count(self) -> int:
        return self._decisions

    def decide(
        self,
        phase: str,
        decision_type: str,
        *,
        alternatives: Iterable[str],
        selected: str,
        reason: str,
        metadata: Optional[Dict[str, object]] = None,
    ) -> Dict[str, object]:
        """Append one decision, chained to the previous one by hash."""
        entry: Dict[str, object] = {
            "run_id": self.run_id,
            "seq": self._decisions + 1,
            "phase": phase,
            "phase_index": phase_index(phase),
            "decision_type": decision_type,
            "alternatives": list(alternatives),
            "selected": selected,
            "reason": reason,
            "metadata": metadata or {},
            "previous_hash": self._last_hash,
        }
        self._last_hash = _seal(entry, "hash")
        self._decisions += 1
        with self.decision_log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, sort_keys=True) + "\n")
        return entry

    def checkpoint(
        self,
        phase: str,
        *,
        counts: Optional[Dict[str, int]] = None,
        metrics: Optional[Dict[str, float]] = None,
        outputs: Optional[Dict[str, object]] = None,
    ) -> Checkpoint:
        index = phase_index(phase)
        payload: Dict[str, object] = {
            "run_id": self.run_id,
            "phase": phase,
            "phase_index": index,
            "counts": counts or {},
            "metrics": metrics or {},
            "outputs": outputs or {},
        }
        digest = _seal(payload, "payload_sha256")
        path = self.checkpoints_dir / f"phase_{index:02d}_{phase}.json"
        path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        logger.debug("Checkpoint %s -> %s", phase, path.name)

        record = Checkpoint(phase=phase, path=path, payload_sha256=digest)
        self._checkpoints.append(record)
        return record

    def finalize(self) -> Path:
        """Write the index of checkpoints and the head of the decision chain."""
        index = {
            "run_id": self.run_id,
            "decision_count": self._decisions,
            "final_decision_hash": self._last_hash,
            "checkpoints": [
                {"phase": c.phase, "path": c.path.name, "payload_sha256": c.payload_sha256}
                for c in self._checkpoints
            ],
        }
        self.index_path.write_text(json.dumps(index, indent=2, sort_keys=True), encoding="utf-8")
        return self.index_path
