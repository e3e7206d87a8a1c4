"""
Tests for the in-memory user directory.
"""

import pytest

from moteve_server.core.exceptions import NotFound
from moteve_server.core.interfaces.users import IGroupService, IUserService
from moteve_server.infrastructure.config.models import AccountConfig
from moteve_server.infrastructure.services.users.directory import UserDirectory


class TestUserDirectory:
    """Test cases for authentication, tokens and groups."""

    @pytest.fixture
    def directory(self) -> UserDirectory:
        directory = UserDirectory()
        directory.add_user("alice@example.com", "secret", display_name="Alice",
                           groups=["family", "friends"])
        directory.add_user("carol@example.com", "pw", enabled=False)
        return directory

    def test_implements_interfaces(self, directory: UserDirectory) -> None:
        assert isinstance(directory, IUserService)
        assert isinstance(directory, IGroupService)
        assert len(directory) == 2

    def test_duplicate_user(self, directory: UserDirectory) -> None:
        with pytest.raises(ValueError):
            directory.add_user("alice@example.com", "other")

    async def test_authenticate(self, directory: UserDirectory) -> None:
        user = await directory.authenticate("alice@example.com", "secret")

        assert user is not None
        assert user.display_name == "Alice"

    @pytest.mark.parametrize("email,password", [
        ("alice@example.com", "wrong"),
        ("alice@example.com", ""),
        ("nobody@example.com", "secret"),
        ("carol@example.com", "pw"),
    ])
    async def test_authenticate_rejects(self, directory: UserDirectory, email: str, password: str) -> None:
        assert await directory.authenticate(email, password) is None

    async def test_issue_and_resolve_token(self, directory: UserDirectory) -> None:
        user = await directory.authenticate("alice@example.com", "secret")
        assert user is not None

        token = await directory.issue_token(user, "Nokia N95")

        assert len(token) == 32
        assert await directory.resolve_user(token) is user
        assert user.devices[token].description == "Nokia N95"

    async def test_tokens_are_unique_per_registration(self, directory: UserDirectory) -> None:
        user = directory.find_user_by_email("alice@example.com")
        assert user is not None

        first = await directory.issue_token(user, "phone")
        second = await directory.issue_token(user, "phone")

        assert first != second
        assert await directory.resolve_user(first) is user
        assert await directory.resolve_user(second) is user

    async def test_resolve_unknown_token(self, directory: UserDirectory) -> None:
        assert await directory.resolve_user("unknown") is None

    async def test_disabled_user_token_stops_resolving(self, directory: UserDirectory) -> None:
        user = directory.find_user_by_email("alice@example.com")
        assert user is not None
        token = await directory.issue_token(user, "phone")

        user.enabled = False

        assert await directory.resolve_user(token) is None

    async def test_group_names_in_insertion_order(self, directory: UserDirectory) -> None:
        user = directory.find_user_by_email("alice@example.com")
        assert user is not None
        directory.create_group("alice@example.com", "colleagues")

        assert await directory.list_group_names(user) == ["family", "friends", "colleagues"]

    def test_create_group_for_unknown_user(self, directory: UserDirectory) -> None:
        with pytest.raises(NotFound):
            directory.create_group("nobody@example.com", "family")

    async def test_from_accounts(self) -> None:
        directory = UserDirectory.from_accounts([
            AccountConfig(email="dave@example.com", password="pw", groups=["club"]),
            AccountConfig(email="erin@example.com", password="pw2", enabled=False),
        ])

        dave = await directory.authenticate("dave@example.com", "pw")
        assert dave is not None
        assert await directory.list_group_names(dave) == ["club"]
        assert await directory.authenticate("erin@example.com", "pw2") is None
