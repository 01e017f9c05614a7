"""Remote access: the REST client, account operations and the KHS reader."""

from siakad.api.auth import AuthService
from siakad.api.client import ApiResult, SiakadClient, clamp_messages_limit
from siakad.api.khs import KhsClient

__all__ = [
    "ApiResult",
    "SiakadClient",
    "clamp_messages_limit",
    "AuthService",
    "KhsClient",
]
