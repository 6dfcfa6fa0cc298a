"""
Session state: who is calling, and whether they may act.

A SessionState is owned by one AppContext. Identity is restored from a
bearer token, changed by login/signup/logout, and broadcast to subscribers
(the cart) after every change.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import EmailStr, TypeAdapter, ValidationError

from goldenshop.config import Settings
from goldenshop.database import RecordStore
from goldenshop.errors import AuthenticationFailed, InvalidSignup, RemoteOperationFailed
from goldenshop.schemas import COL_USERS, User as UserSchema

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 8
email_adapter = TypeAdapter(EmailStr)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, secret_key: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> Optional[dict]:
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


def public_user(user: Optional[dict]) -> Optional[dict]:
    if user is None:
        return None
    out = dict(user)
    out.pop("hashed_password", None)
    return out


Listener = Callable[["SessionState"], None]


class SessionState:
    def __init__(self, store: RecordStore, settings: Settings):
        self.store = store
        self.settings = settings
        self.token: Optional[str] = None
        self.user: Optional[dict] = None
        self._expires_at: float = 0
        self._listeners: List[Listener] = []

    @property
    def is_authenticated(self) -> bool:
        token_valid = self.token is not None and time.time() < self._expires_at
        return token_valid and self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.get("role") == "admin"

    @property
    def user_id(self) -> Optional[str]:
        return self.user["id"] if self.user else None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_identity(self, token: Optional[str], user: Optional[dict], expires_at: float = 0) -> None:
        self.token = token
        self.user = user
        self._expires_at = expires_at
        for listener in list(self._listeners):
            listener(self)

    def _issue(self, user: dict) -> str:
        expires = timedelta(minutes=self.settings.access_token_expire_minutes)
        token = create_access_token({"sub": user["id"]}, self.settings.secret_key, expires)
        self._set_identity(token, user, time.time() + expires.total_seconds())
        return token

    def restore(self, token: Optional[str]) -> bool:
        """Adopt the identity behind `token`; stay anonymous on any failure."""
        if not token:
            return False
        payload = decode_access_token(token, self.settings.secret_key)
        if payload is None:
            return False
        try:
            user = self.store.get_document(COL_USERS, payload["sub"])
        except RemoteOperationFailed as e:
            logger.error("Error restoring session: %s", e)
            return False
        self._set_identity(token, user, float(payload.get("exp", 0)))
        return True

    def login(self, email: str, password: str) -> str:
        user = self.store.find_first(COL_USERS, {"email": email.strip().lower()})
        if not user or not verify_password(password, user.get("hashed_password", "")):
            raise AuthenticationFailed()
        return self._issue(user)

    def signup(self, email: str, password: str, password_confirm: str) -> str:
        email = (email or "").strip().lower()
        errors: Dict[str, str] = {}
        try:
            email_adapter.validate_python(email)
        except ValidationError:
            errors["email"] = "Invalid email format"
        if len(password or "") < MIN_PASSWORD_LENGTH:
            errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        if password != password_confirm:
            errors["password_confirm"] = "Passwords do not match"
        if errors:
            raise InvalidSignup(errors)

        if self.store.find_first(COL_USERS, {"email": email}):
            raise InvalidSignup({"email": "Email already registered"})

        user_doc = UserSchema(
            email=email,
            hashed_password=get_password_hash(password),
            role="user",
            cagnotte=0,
        )
        self.store.create_document(COL_USERS, user_doc)
        return self.login(email, password)

    def logout(self) -> None:
        self._set_identity(None, None)

    def refresh_user(self) -> Optional[dict]:
        if not self.is_authenticated:
            return None
        try:
            user = self.store.get_document(COL_USERS, self.user_id)
        except RemoteOperationFailed as e:
            logger.error("Error refreshing user: %s", e)
            return None
        self._set_identity(self.token, user, self._expires_at)
        return user
