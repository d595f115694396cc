"""Identity resolution: users, linked accounts, sessions and verification tokens.

Users who signed up before linked accounts existed only carry
`users.identity_provider` / `users.identity_provider_id`. For those providers
(GOOGLE, SAML) `get_user_by_account` falls back to matching on that pair when
no account row exists. Drop the fallback once all legacy provider tokens have
expired.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from calavail.database.models import AccountDB, SessionDB, UserDB, VerificationTokenDB, enum_to_value, value_to_enum
from calavail.models.constants import DEFAULT_TIME_ZONE, LEGACY_FALLBACK_PROVIDERS, SESSION_MAX_AGE_DAYS
from calavail.models.user import AuthSession, IdentityProvider, LinkedAccount, User, VerificationToken

logger = logging.getLogger(__name__)

_USER_UPDATABLE_FIELDS = ("email", "name", "time_zone", "email_verified", "identity_provider", "identity_provider_id")


def _to_session(row: SessionDB) -> AuthSession:
    return AuthSession(session_token=row.session_token, user_id=row.user_id, expires=row.expires)


def _to_account(row: AccountDB) -> LinkedAccount:
    return LinkedAccount(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        provider=row.provider,
        provider_account_id=row.provider_account_id,
    )


class IdentityAdapter:
    """Persistence for the authentication layer."""

    def __init__(self, db: Session):
        self.db = db

    # Users

    def create_user(
        self,
        *,
        email: str,
        name: Optional[str] = None,
        time_zone: Optional[str] = None,
        identity_provider: IdentityProvider = IdentityProvider.CAL,
        identity_provider_id: Optional[str] = None,
        email_verified: Optional[datetime] = None,
    ) -> User:
        now = datetime.utcnow()
        user_db = UserDB(
            email=email,
            name=name,
            time_zone=time_zone or DEFAULT_TIME_ZONE,
            identity_provider=enum_to_value(identity_provider),
            identity_provider_id=identity_provider_id,
            email_verified=email_verified,
            created_at=now,
            updated_at=now,
        )
        try:
            self.db.add(user_db)
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Created user {user_db.id}")
            return user_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create user: {type(e).__name__}: {str(e)}")
            raise

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        user_db = self.db.query(UserDB).filter(UserDB.email == email).first()
        return user_db.to_pydantic() if user_db else None

    def get_user_by_account(self, provider: str, provider_account_id: str) -> Optional[User]:
        """Resolve a provider account to a user, with the legacy identity-provider fallback."""
        account = (
            self.db.query(AccountDB)
            .filter(
                AccountDB.provider == provider.lower(),
                AccountDB.provider_account_id == provider_account_id,
            )
            .first()
        )
        if account is not None:
            return account.user.to_pydantic() if account.user else None

        legacy_provider = value_to_enum(provider, IdentityProvider, None)
        if legacy_provider is None or legacy_provider.value not in LEGACY_FALLBACK_PROVIDERS:
            return None
        user_db = (
            self.db.query(UserDB)
            .filter(
                UserDB.identity_provider_id == provider_account_id,
                UserDB.identity_provider == legacy_provider.value,
            )
            .first()
        )
        if user_db is not None:
            logger.info(f"Resolved {legacy_provider.value} account to user {user_db.id} via legacy identity fields")
        return user_db.to_pydantic() if user_db else None

    def update_user(self, user_id: str, **fields) -> Optional[User]:
        unknown = set(fields) - set(_USER_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if user_db is None:
            return None
        for key, value in fields.items():
            if key == "identity_provider":
                value = enum_to_value(value)
            setattr(user_db, key, value)
        user_db.updated_at = datetime.utcnow()
        try:
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Updated user {user_id}")
            return user_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete_user(self, user_id: str) -> bool:
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if user_db is None:
            return False
        try:
            self.db.delete(user_db)
            self.db.commit()
            logger.debug(f"Deleted user {user_id}")
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    # Accounts

    def link_account(
        self,
        *,
        user_id: str,
        provider: str,
        provider_account_id: str,
        account_type: str = "oauth",
        **tokens,
    ) -> LinkedAccount:
        row = AccountDB(
            user_id=user_id,
            type=account_type,
            provider=provider.lower(),
            provider_account_id=provider_account_id,
            refresh_token=tokens.get("refresh_token"),
            access_token=tokens.get("access_token"),
            expires_at=tokens.get("expires_at"),
            token_type=tokens.get("token_type"),
            scope=tokens.get("scope"),
            id_token=tokens.get("id_token"),
            session_state=tokens.get("session_state"),
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Linked {row.provider} account to user {user_id}")
            return _to_account(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to link {provider} account to user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def unlink_account(self, provider: str, provider_account_id: str) -> bool:
        try:
            deleted = (
                self.db.query(AccountDB)
                .filter(
                    AccountDB.provider == provider.lower(),
                    AccountDB.provider_account_id == provider_account_id,
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()
            return bool(deleted)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to unlink {provider} account: {type(e).__name__}: {str(e)}")
            raise

    # Sessions

    def create_session(
        self,
        user_id: str,
        *,
        session_token: Optional[str] = None,
        expires: Optional[datetime] = None,
    ) -> AuthSession:
        row = SessionDB(
            session_token=session_token or secrets.token_urlsafe(32),
            user_id=user_id,
            expires=expires or datetime.utcnow() + timedelta(days=SESSION_MAX_AGE_DAYS),
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created session for user {user_id}")
            return _to_session(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create session for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def get_session_and_user(self, session_token: str) -> Optional[Dict]:
        """Return {"session": AuthSession, "user": User} or None."""
        row = self.db.query(SessionDB).filter(SessionDB.session_token == session_token).first()
        if row is None or row.user is None:
            return None
        return {"session": _to_session(row), "user": row.user.to_pydantic()}

    def update_session(self, session_token: str, *, expires: datetime) -> Optional[AuthSession]:
        row = self.db.query(SessionDB).filter(SessionDB.session_token == session_token).first()
        if row is None:
            return None
        row.expires = expires
        try:
            self.db.commit()
            self.db.refresh(row)
            return _to_session(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update session: {type(e).__name__}: {str(e)}")
            raise

    def delete_session(self, session_token: str) -> bool:
        try:
            deleted = (
                self.db.query(SessionDB)
                .filter(SessionDB.session_token == session_token)
                .delete(synchronize_session=False)
            )
            self.db.commit()
            return bool(deleted)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete session: {type(e).__name__}: {str(e)}")
            raise

    # Verification tokens

    def create_verification_token(self, *, identifier: str, token: str, expires: datetime) -> VerificationToken:
        row = VerificationTokenDB(identifier=identifier, token=token, expires=expires)
        try:
            self.db.add(row)
            self.db.commit()
            return VerificationToken(identifier=identifier, token=token, expires=expires)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create verification token: {type(e).__name__}: {str(e)}")
            raise

    def use_verification_token(self, identifier: str, token: str) -> Optional[VerificationToken]:
        """Consume a token. A token that was already used (or never existed) yields None."""
        row = (
            self.db.query(VerificationTokenDB)
            .filter(VerificationTokenDB.identifier == identifier, VerificationTokenDB.token == token)
            .first()
        )
        if row is None:
            return None
        result = VerificationToken(identifier=row.identifier, token=row.token, expires=row.expires)
        try:
            deleted = (
                self.db.query(VerificationTokenDB)
                .filter(VerificationTokenDB.id == row.id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to use verification token: {type(e).__name__}: {str(e)}")
            raise
        # Lost the race to a concurrent use
        return result if deleted else None
