"""
System wiring and FastAPI dependencies
"""

from fastapi import HTTPException, status

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..directory import StorageParticipantDirectory
from ..loans import EmiManager
from ..config import get_config


class EmiSystem:
    """EMI tracker with all components initialized"""

    def __init__(self, storage: StorageInterface = None):
        config = get_config()

        # Initialize storage
        self.storage = storage or create_storage(config.database_url)

        self.audit_trail = AuditTrail(self.storage)
        self.directory = StorageParticipantDirectory(self.storage)
        self.emi_manager = EmiManager(
            self.storage,
            audit_trail=self.audit_trail,
            directory=self.directory
        )


_system = None


def get_emi_system() -> EmiSystem:
    """Get the process-wide system instance, created on first use"""
    global _system
    if _system is None:
        _system = EmiSystem()
    return _system


def http_error(error: ValueError) -> HTTPException:
    """Map a manager error to an HTTP error"""
    message = str(error)
    if message.endswith("not found"):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
