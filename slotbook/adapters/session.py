"""
Signed-in customer session as returned by the identity provider.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

import pendulum


@dataclass(frozen=True)
class CustomerSession:
    user_id: str
    email: str
    access_token: str
    refresh_token: str
    expires_at: int  # unix timestamp

    def is_expired(self, leeway_seconds: int = 60) -> bool:
        return pendulum.now("UTC").int_timestamp + leeway_seconds >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomerSession":
        return cls(
            user_id=data["user_id"],
            email=data["email"],
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=int(data["expires_at"]),
        )

    @classmethod
    def from_token_response(cls, payload: Dict[str, Any]) -> "CustomerSession":
        """Build a session from an auth ``/token`` response body."""
        expires_at = payload.get("expires_at")
        if expires_at is None:
            expires_at = pendulum.now("UTC").int_timestamp + int(
                payload.get("expires_in", 3600)
            )
        user = payload["user"]
        return cls(
            user_id=user["id"],
            email=user.get("email", ""),
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_at=int(expires_at),
        )
