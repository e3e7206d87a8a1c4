"""
User and group models as seen by the MCA endpoints.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class Group:
    """A named group of contacts owned by a user."""
    name: str


@dataclass
class Device:
    """An MCA installation registered by a user."""
    token: str
    description: str
    registered_at: float = field(default_factory=time.time)


@dataclass
class User:
    """A registered Moteve user."""
    email: str
    password: str
    display_name: Optional[str] = None
    enabled: bool = True
    groups: List[Group] = field(default_factory=list)
    devices: Dict[str, Device] = field(default_factory=dict)
    registration_date: float = field(default_factory=time.time)

    def group_names(self) -> List[str]:
        return [group.name for group in self.groups]
