"""Reconciliation scanner for the ``built`` invariant.

``built`` must imply a non-empty track matrix holding at least the target
number of tracks.  Aggregates written before the lifecycle manager existed,
or left behind by a crashed run, can violate that.  The scanner finds them
and, on request, clears the flag so the batch driver picks them up again.

Repair never touches track data: it moves the flag to ``staged`` (tracks
present) or ``absent`` (none) and clears ``built_at``.  The store
re-checks the violation inside the same UPDATE, so an aggregate that was
legitimately completed after the scan is left alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from src.interfaces.profile_store import IProfileStore
from src.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SCAN_LIMIT = 500
_SAMPLE_SIZE = 50


@dataclass(frozen=True)
class ScanReport:
    checked: int
    violations: int
    entity_ids: list[str] = field(default_factory=list)
    sample: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"checked": self.checked, "violations": self.violations, "sample": list(self.sample)}


class ReconciliationScanner:
    def __init__(self, store: IProfileStore) -> None:
        self._store = store

    async def scan(self, limit: int = DEFAULT_SCAN_LIMIT) -> ScanReport:
        checked, violating = await self._store.find_built_violations(limit)
        sample = []
        for entity in violating[:_SAMPLE_SIZE]:
            profile = entity.profile
            sample.append(
                {
                    "entityId": entity.entity_id,
                    "name": entity.name,
                    "trackCount": len(profile.track_matrix) if profile else 0,
                    "targetTrackCount": profile.target_track_count if profile else None,
                }
            )
        report = ScanReport(
            checked=checked,
            violations=len(violating),
            entity_ids=[e.entity_id for e in violating],
            sample=sample,
        )
        logger.info("built_invariant_scan", checked=checked, violations=report.violations)
        return report

    async def repair(self, entity_ids: list[str], dry_run: bool = False) -> int:
        """Clear ``built`` on *entity_ids* that still violate the invariant.

        Returns the number of aggregates changed (or that would change, for
        a dry run).
        """
        if dry_run:
            logger.info("built_invariant_repair_dry_run", candidates=len(entity_ids))
            return len(entity_ids)
        return await self._store.clear_built_flags(entity_ids)

    async def scan_and_repair(self, limit: int = DEFAULT_SCAN_LIMIT, dry_run: bool = False) -> dict[str, Any]:
        report = await self.scan(limit)
        cleared = await self.repair(report.entity_ids, dry_run=dry_run) if report.entity_ids else 0
        return {**report.to_dict(), "cleared": cleared, "dryRun": dry_run}
