"""
Identity collaborator

Authentication is handled elsewhere; the lifecycle only needs to know which
owner it is acting for.
"""
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID


class IdentityProvider(ABC):
    """Resolves the owner (worker) id of the current caller."""

    @abstractmethod
    async def current_user_id(self) -> Optional[UUID]:
        """Return the authenticated owner id, or None if nobody is signed in."""
        pass


class StaticIdentity(IdentityProvider):
    """Identity fixed at construction time (one controller per owner)."""

    def __init__(self, user_id: Optional[UUID]):
        self.user_id = user_id

    async def current_user_id(self) -> Optional[UUID]:
        return self.user_id
