"""Pipeline components: staged orchestration, lifecycle, reconciliation and batch coverage."""

from src.pipeline.batch_driver import BatchCoverageDriver, BatchOptions, BatchReport
from src.pipeline.lifecycle import MergeMode, ProfileLifecycleManager
from src.pipeline.orchestrator import StagedAnalysisOrchestrator
from src.pipeline.reconciliation import ReconciliationScanner, ScanReport

__all__ = [
    "BatchCoverageDriver",
    "BatchOptions",
    "BatchReport",
    "MergeMode",
    "ProfileLifecycleManager",
    "ReconciliationScanner",
    "ScanReport",
    "StagedAnalysisOrchestrator",
]
