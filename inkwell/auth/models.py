from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Any) -> Optional[datetime]:
    """Mongo hands back naive datetimes (UTC); make them timezone-aware."""
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _public(data: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in data.items():
        out[k] = v.isoformat() if isinstance(v, datetime) else v
    return out


@dataclass
class User:
    """User record. `is_owner` and `handle` are application-specific additions."""

    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    email_verified: bool = False
    is_owner: bool = False
    handle: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "User":
        return cls(
            id=str(doc["_id"]),
            email=str(doc.get("email") or ""),
            name=doc.get("name"),
            image=doc.get("image"),
            email_verified=bool(doc.get("email_verified", False)),
            is_owner=bool(doc.get("is_owner", False)),
            handle=str(doc.get("handle") or ""),
            created_at=as_utc(doc.get("created_at")) or utcnow(),
            updated_at=as_utc(doc.get("updated_at")) or utcnow(),
        )

    def to_doc(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc["_id"] = doc.pop("id")
        return doc

    def to_public(self) -> Dict[str, Any]:
        return _public(asdict(self))


@dataclass
class Account:
    """A user's link to one social provider."""

    id: str
    user_id: str
    provider_id: str
    account_id: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None
    access_token_expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Account":
        return cls(
            id=str(doc["_id"]),
            user_id=str(doc.get("user_id") or ""),
            provider_id=str(doc.get("provider_id") or ""),
            account_id=str(doc.get("account_id") or ""),
            access_token=doc.get("access_token"),
            refresh_token=doc.get("refresh_token"),
            id_token=doc.get("id_token"),
            scope=doc.get("scope"),
            access_token_expires_at=as_utc(doc.get("access_token_expires_at")),
            created_at=as_utc(doc.get("created_at")) or utcnow(),
            updated_at=as_utc(doc.get("updated_at")) or utcnow(),
        )

    def to_doc(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc["_id"] = doc.pop("id")
        return doc

    def to_public(self) -> Dict[str, Any]:
        # Never expose provider tokens.
        return _public(
            {
                "id": self.id,
                "provider": self.provider_id,
                "account_id": self.account_id,
                "scope": self.scope,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            }
        )


@dataclass
class Session:
    """Login session. `provider` records which social provider issued it."""

    id: str
    token: str
    user_id: str
    expires_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    provider: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Session":
        return cls(
            id=str(doc["_id"]),
            token=str(doc.get("token") or ""),
            user_id=str(doc.get("user_id") or ""),
            expires_at=as_utc(doc.get("expires_at")) or utcnow(),
            ip_address=doc.get("ip_address"),
            user_agent=doc.get("user_agent"),
            provider=doc.get("provider"),
            created_at=as_utc(doc.get("created_at")) or utcnow(),
            updated_at=as_utc(doc.get("updated_at")) or utcnow(),
        )

    def to_doc(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc["_id"] = doc.pop("id")
        return doc

    def to_public(self) -> Dict[str, Any]:
        return _public(asdict(self))
