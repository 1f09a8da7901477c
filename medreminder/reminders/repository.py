from abc import ABC, abstractmethod
from typing import Optional

import redis


class DeviceTokenStore(ABC):
    @abstractmethod
    def upsert(self, user_id: str, platform: str, fcm_token: str) -> None:
        ...

    @abstractmethod
    def get_latest(self, user_id: str, platform: Optional[str] = None) -> Optional[str]:
        ...


class RedisDeviceTokenStore(DeviceTokenStore):
    """Device tokens in a Redis hash.

    Fields are "<user_id>:<platform>" plus "<user_id>:latest", which always
    points at the most recently registered device.
    """

    def __init__(self, client: redis.Redis, key: str = "reminders:device_tokens"):
        self.client = client
        self.key = key

    def upsert(self, user_id: str, platform: str, fcm_token: str) -> None:
        self.client.hset(
            self.key,
            mapping={
                f"{user_id}:{platform}": fcm_token,
                f"{user_id}:latest": fcm_token,
            },
        )

    def get_latest(self, user_id: str, platform: Optional[str] = None) -> Optional[str]:
        field = f"{user_id}:{platform or 'latest'}"
        return self.client.hget(self.key, field)
