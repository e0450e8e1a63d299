"""
Participant Directory Module

Resolves participant emails to registered participant IDs. A miss is not an
error: the participant is simply treated as external.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .storage import StorageInterface


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Trim and lower-case an email, None when blank"""
    if not email or not email.strip():
        return None
    return email.strip().lower()


class ParticipantDirectory(ABC):
    """Lookup of registered participants"""

    @abstractmethod
    def resolve_email(self, email: str) -> Optional[str]:
        """Registered participant ID for an email, or None"""
        pass

    @abstractmethod
    def email_for(self, user_id: str) -> Optional[str]:
        """Email of a registered participant, or None"""
        pass


class StorageParticipantDirectory(ParticipantDirectory):
    """Directory backed by a storage table of participant profiles"""

    def __init__(self, storage: StorageInterface, table_name: str = "participants"):
        self.storage = storage
        self.table_name = table_name

    def register(self, user_id: str, email: str) -> None:
        """Register or update a participant profile"""
        normalized = normalize_email(email)
        if not normalized:
            raise ValueError("Participant email is required")
        self.storage.save(self.table_name, user_id, {"id": user_id, "email": normalized})

    def resolve_email(self, email: str) -> Optional[str]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        matches = self.storage.find(self.table_name, {"email": normalized})
        if matches:
            return matches[0]["id"]
        return None

    def email_for(self, user_id: str) -> Optional[str]:
        profile = self.storage.load(self.table_name, user_id)
        if profile:
            return profile.get("email")
        return None
