from enum import Enum
from typing import Optional

from .base import WireModel


class Role(str, Enum):
    USER = "USER"
    MANAGER = "MANAGER"
    BOD = "BOD"          # Board of Directors, final approval authority
    ADMIN = "ADMIN"


class User(WireModel):
    """
    An application account.

    USER accounts normally carry both manager_id and bod_id; these route the
    approval chain for every request the user submits.
    """
    id: str
    name: str
    email: str
    role: Role
    department: str = ""
    manager_id: Optional[str] = None
    bod_id: Optional[str] = None
    password: Optional[str] = None

    def to_wire(self) -> dict:
        data = super().to_wire()
        data.pop("password", None)
        return data
