"""Session domain objects shared by the bridge and the repositories"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class Session:
    """A web session.

    ``token`` identifies the record; the signed cookie value only refers to
    it. ``user_id`` is derived from ``user`` when the session is saved.
    """

    token: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    user: Optional[Any] = None
    user_id: Optional[int] = None
    info: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    updated_at: Optional[datetime] = None

    def has_state(self) -> bool:
        """True when there is anything worth keeping: payload data or a user"""
        return bool(self.payload) or self.user is not None

    def detached(self) -> "Session":
        """Copy of the stored fields; the user is left to be resolved again"""
        return Session(
            token=self.token,
            payload=copy.deepcopy(self.payload),
            user_id=self.user_id,
            info=copy.deepcopy(self.info),
            id=self.id,
            updated_at=self.updated_at,
        )


@dataclass
class DecodedToken:
    """Result of decoding a cookie token; ``session`` is None when the record is gone"""

    session: Optional[Session]
    issued_at: Optional[int] = None
