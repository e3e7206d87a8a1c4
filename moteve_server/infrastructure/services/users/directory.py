"""
In-memory user directory.

Serves as the authentication and group collaborator for the MCA endpoints.
Accounts are seeded from the ``accounts`` configuration section; device
tokens are issued at registration and live for the process lifetime.
"""

import logging
import secrets
from typing import Dict, Iterable, List, Optional

from ....core.domain.users import Device, Group, User
from ....core.exceptions import NotFound
from ....core.interfaces.users import IGroupService, IUserService
from ...config.models import AccountConfig

logger = logging.getLogger(__name__)


class UserDirectory(IUserService, IGroupService):
    """Users, their groups and their registered MCA devices."""

    def __init__(self, token_bytes: int = 16) -> None:
        self._users: Dict[str, User] = {}
        self._tokens: Dict[str, str] = {}
        self._token_bytes = token_bytes

    @classmethod
    def from_accounts(cls, accounts: Iterable[AccountConfig]) -> 'UserDirectory':
        directory = cls()
        for account in accounts:
            directory.add_user(
                email=account.email,
                password=account.password,
                display_name=account.display_name,
                enabled=account.enabled,
                groups=account.groups,
            )
        return directory

    def add_user(self, email: str, password: str, display_name: Optional[str] = None,
                 enabled: bool = True, groups: Iterable[str] = ()) -> User:
        """Register a new user with the given group names."""
        if email in self._users:
            raise ValueError(f"User {email} already exists")

        logger.info(f"Registering user {email}")
        user = User(email=email, password=password,
                    display_name=display_name, enabled=enabled)
        self._users[email] = user

        for group_name in groups:
            self.create_group(email, group_name)

        return user

    def create_group(self, email: str, group_name: str) -> Group:
        """Create a group for the user identified by email."""
        user = self.find_user_by_email(email)
        if user is None:
            raise NotFound(f"Cannot find user {email}")

        group = Group(name=group_name)
        user.groups.append(group)
        return group

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self._users.get(email)

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self._users.get(email)
        if user is None or not user.enabled:
            return None

        if not secrets.compare_digest(user.password.encode('utf-8'), password.encode('utf-8')):
            return None

        return user

    async def issue_token(self, user: User, description: str) -> str:
        token = secrets.token_hex(self._token_bytes)
        while token in self._tokens:
            token = secrets.token_hex(self._token_bytes)

        user.devices[token] = Device(token=token, description=description)
        self._tokens[token] = user.email

        logger.info(f"Registered MCA '{description}' for user {user.email}")
        return token

    async def resolve_user(self, token: str) -> Optional[User]:
        email = self._tokens.get(token)
        if email is None:
            return None

        user = self._users.get(email)
        if user is None or not user.enabled:
            return None

        return user

    async def list_group_names(self, user: User) -> List[str]:
        stored = self._users.get(user.email, user)
        return stored.group_names()

    def __len__(self) -> int:
        return len(self._users)
