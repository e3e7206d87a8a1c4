"""
User directory interfaces consumed by the MCA endpoints and the upload manager.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..domain.users import User


class IUserService(ABC):
    """Authentication and device token issuance."""

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user for valid credentials, otherwise None."""
        pass

    @abstractmethod
    async def issue_token(self, user: User, description: str) -> str:
        """Register an MCA device for the user and return its token."""
        pass

    @abstractmethod
    async def resolve_user(self, token: str) -> Optional[User]:
        """Return the user a device token belongs to, or None."""
        pass


class IGroupService(ABC):
    """Group listing for a user."""

    @abstractmethod
    async def list_group_names(self, user: User) -> List[str]:
        """Return the user's group names in a stable order."""
        pass
