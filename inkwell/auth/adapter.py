"""
MongoDB persistence for users, accounts and sessions.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from inkwell.auth.constants import AUTH_ACCOUNT_COLLECTION, AUTH_SESSION_COLLECTION, AUTH_USER_COLLECTION
from inkwell.auth.models import Account, Session, User, utcnow


def new_id() -> str:
    return uuid.uuid4().hex


class MongoAdapter:
    def __init__(
        self,
        db: Database,
        *,
        user_collection: str = AUTH_USER_COLLECTION,
        account_collection: str = AUTH_ACCOUNT_COLLECTION,
        session_collection: str = AUTH_SESSION_COLLECTION,
    ) -> None:
        self.db = db
        self.users = db[user_collection]
        self.accounts = db[account_collection]
        self.sessions = db[session_collection]

    # Users

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        doc = self.users.find_one({"_id": user_id})
        return User.from_doc(doc) if doc else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        doc = self.users.find_one({"email": email.lower()})
        return User.from_doc(doc) if doc else None

    def create_user(self, *, email: str, name: Optional[str], image: Optional[str], email_verified: bool) -> User:
        user = User(
            id=new_id(),
            email=email.lower(),
            name=name,
            image=image,
            email_verified=email_verified,
        )
        self.users.insert_one(user.to_doc())
        return user

    def set_owner(self, email: str, is_owner: bool = True) -> bool:
        """Flag the user with `email` as site owner. Returns False if no such user."""
        result = self.users.update_one(
            {"email": email.lower()}, {"$set": {"is_owner": is_owner, "updated_at": utcnow()}}
        )
        return result.matched_count > 0

    # Accounts

    def find_account(self, provider_id: str, account_id: str) -> Optional[Account]:
        doc = self.accounts.find_one({"provider_id": provider_id, "account_id": account_id})
        return Account.from_doc(doc) if doc else None

    def list_accounts(self, user_id: str) -> List[Account]:
        return [Account.from_doc(d) for d in self.accounts.find({"user_id": user_id})]

    def create_account(self, account: Account) -> Account:
        self.accounts.insert_one(account.to_doc())
        return account

    def update_account_tokens(self, account_id: str, tokens: Dict[str, Any]) -> None:
        self.accounts.update_one({"_id": account_id}, {"$set": {**tokens, "updated_at": utcnow()}})

    # Sessions

    def create_session(
        self,
        *,
        token: str,
        user_id: str,
        expires_at: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> Session:
        session = Session(
            id=new_id(),
            token=token,
            user_id=user_id,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.sessions.insert_one(session.to_doc())
        return session

    def find_session(self, token: str) -> Optional[Session]:
        doc = self.sessions.find_one({"token": token})
        return Session.from_doc(doc) if doc else None

    def update_session(self, token: str, fields: Dict[str, Any]) -> None:
        self.sessions.update_one({"token": token}, {"$set": {**fields, "updated_at": utcnow()}})

    def delete_session(self, token: str) -> None:
        self.sessions.delete_one({"token": token})
