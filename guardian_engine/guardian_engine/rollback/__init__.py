"""Rollback simulation, execution and incremental batches."""

from guardian_engine.rollback.batch import RollbackBatchExecutor, plan_chunks
from guardian_engine.rollback.engine import RollbackEngine, apply_changes

__all__ = ["RollbackBatchExecutor", "RollbackEngine", "apply_changes", "plan_chunks"]
