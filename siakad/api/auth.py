"""
Sign-in and account operations.

These are user-initiated, so failures surface as ``AuthError`` with the
server's message instead of being swallowed.
"""

from __future__ import annotations

from loguru import logger

from siakad.api.client import SiakadClient
from siakad.core.models import User
from siakad.errors import AuthError, ValidationError
from siakad.storage.local_store import USER_KEY, LocalStore


def _require(**fields: str | None) -> None:
    missing = [name for name, value in fields.items() if not (value and str(value).strip())]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


class AuthService:
    """Login, registration and account maintenance backed by the local store."""

    def __init__(self, client: SiakadClient, store: LocalStore):
        self.client = client
        self.store = store

    def current_user(self) -> User | None:
        data = self.store.get(USER_KEY)
        if not isinstance(data, dict) or not data.get("nim"):
            return None
        return User.from_dict(data)

    def current_nim(self) -> str | None:
        user = self.current_user()
        return user.nim if user else None

    async def login(self, nim: str, password: str) -> User:
        _require(nim=nim, password=password)
        result = await self.client.login(nim, password)
        user_data = result.data.get("user") if result.success and isinstance(result.data, dict) else None
        if not user_data:
            raise AuthError(result.error or "Login gagal", result.status_code)

        user = User.from_dict(user_data)
        self.store.set(USER_KEY, user.to_dict())
        logger.info(f"Logged in as {user.nim}")
        return user

    async def register(
        self,
        nim: str,
        name: str,
        password: str,
        email: str | None = None,
        reg_type: str = "reguler",
    ) -> User:
        _require(nim=nim, name=name, password=password)
        result = await self.client.register(nim, name, password, email=email, reg_type=reg_type)
        user_data = result.data.get("user") if result.success and isinstance(result.data, dict) else None
        if not user_data:
            raise AuthError(result.error or "Register failed", result.status_code)

        # keep the requested type when the backend does not echo it
        user = User.from_dict(user_data, default_type=reg_type)
        self.store.set(USER_KEY, user.to_dict())
        logger.info(f"Registered {user.nim} ({user.type})")
        return user

    async def change_password(self, old_password: str, new_password: str) -> str:
        nim = self.current_nim()
        if not nim:
            raise AuthError("Not logged in")
        _require(old_password=old_password, new_password=new_password)

        result = await self.client.change_password(nim, old_password, new_password)
        if not result.success:
            raise AuthError(result.error or "Password change failed", result.status_code)
        return (result.data or {}).get("message", "Password updated successfully")

    async def register_fcm_token(self, fcm_token: str) -> bool:
        """Store the push token server-side. Best-effort: returns False on failure."""
        user = self.current_user()
        if user is None or not fcm_token:
            return False

        result = await self.client.save_fcm_token(user.nim, fcm_token)
        if not result.success:
            logger.warning(f"FCM token registration failed: {result.error}")
            return False

        user.fcm_token = fcm_token
        server_user = (result.data or {}).get("user")
        self.store.set(USER_KEY, server_user if server_user else user.to_dict())
        return True

    def logout(self) -> None:
        self.store.remove(USER_KEY)
        logger.info("Logged out")
