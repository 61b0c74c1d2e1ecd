"""The authenticated caller, as seen by the authorization layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    user_id: uuid.UUID
    is_operator: bool = False
