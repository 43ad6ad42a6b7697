"""File backup and rollback."""

from .manager import BACKUP_MARKER, BackupManager, OperationKind, RollbackOperation, SimulationResult

__all__ = ["BackupManager", "RollbackOperation", "SimulationResult", "OperationKind", "BACKUP_MARKER"]
