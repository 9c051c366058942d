import logging
import secrets
from typing import Dict, List, Optional

from fastapi import Request
from passlib.context import CryptContext

from database import AvailabilityMonitor, Store, StoreUnavailable
import fallback

logger = logging.getLogger(__name__)

USER_SESSION_KEY = "userId"
ADMIN_SESSION_KEY = "adminId"
FLASH_SESSION_KEY = "_flash"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Helpers

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # Not a recognised hash (e.g. a plaintext seed)
        return False


class AuthFailure(Exception):
    pass


class LoginRequired(Exception):
    def __init__(self, login_url: str):
        super().__init__(login_url)
        self.login_url = login_url


class SessionGuard:
    """Dependency that requires an identity in the session.

    Missing identities redirect to the login view instead of failing with
    an error status.
    """

    def __init__(self, session_key: str, login_url: str):
        self.session_key = session_key
        self.login_url = login_url

    def __call__(self, request: Request) -> str:
        identity = request.session.get(self.session_key)
        if not identity:
            raise LoginRequired(self.login_url)
        return identity


require_user = SessionGuard(USER_SESSION_KEY, "/login")
require_admin = SessionGuard(ADMIN_SESSION_KEY, "/admin/login")


def authenticate_user(store: Store, email: str, password: str) -> str:
    user = store.users.find_one({"email": email})
    if not user or not verify_password(password, user.get("password", "")):
        raise AuthFailure("Invalid credentials")
    return user["_id"]


def _check_fallback_admin(email: str, password: str) -> str:
    fb_email, fb_password = fallback.admin_credentials()
    # compare_digest only accepts ASCII str, so compare the UTF-8 bytes
    if (secrets.compare_digest(email.encode(), fb_email.encode())
            and secrets.compare_digest(password.encode(), fb_password.encode())):
        logger.warning("Admin signed in with fallback credentials")
        return fallback.FALLBACK_ADMIN_ID
    raise AuthFailure("Invalid credentials")


def authenticate_admin(store: Optional[Store], monitor: AvailabilityMonitor, email: str, password: str) -> str:
    """Return the admin identity to keep in the session.

    While the store is unavailable the static fallback credentials are
    checked instead and the sentinel FALLBACK_ADMIN_ID is returned.
    """
    if not fallback.is_available(store, monitor):
        return _check_fallback_admin(email, password)
    try:
        admin = store.admins.find_one({"email": email})
    except StoreUnavailable as e:
        logger.error("Admin lookup failed, trying fallback credentials: %s", e)
        return _check_fallback_admin(email, password)
    if not admin or not verify_password(password, admin.get("password", "")):
        raise AuthFailure("Invalid credentials")
    return admin["_id"]


class FlashQueue:
    """One-shot session messages, cleared as soon as they are read."""

    def __init__(self, session: dict):
        self.session = session

    def push(self, kind: str, message: str) -> None:
        queued = list(self.session.get(FLASH_SESSION_KEY, []))
        queued.append([kind, message])
        self.session[FLASH_SESSION_KEY] = queued

    def success(self, message: str) -> None:
        self.push("success", message)

    def error(self, message: str) -> None:
        self.push("error", message)

    def peek_and_clear(self) -> Dict[str, List[str]]:
        messages: Dict[str, List[str]] = {"success": [], "error": []}
        for kind, message in self.session.pop(FLASH_SESSION_KEY, []):
            messages.setdefault(kind, []).append(message)
        return messages


def get_flash(request: Request) -> FlashQueue:
    return FlashQueue(request.session)
