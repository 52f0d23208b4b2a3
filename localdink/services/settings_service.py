"""
Runtime settings: the knobs an operator can flip without a redeploy.

A value is looked up in the `settings` table, then the shared Redis cache,
then the setting's environment variable, then its built-in default. Redis is
optional; when it cannot be reached that layer is skipped.
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import Setting

load_dotenv()

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CACHE_TTL_SECONDS = 60
CACHE_PREFIX = "localdink:settings:"


def parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class RuntimeSetting:
    key: str
    env_var: str
    default: Any
    parse: Callable[[str], Any]


ENABLE_SMS = RuntimeSetting("enable_sms", "ENABLE_SMS", True, parse_bool)
INVITE_RESPONSE_HOURS = RuntimeSetting("invite_response_hours", "INVITE_RESPONSE_HOURS", 24.0, float)

_redis: Optional[Redis] = None


async def get_redis_client() -> Optional[Redis]:
    """Shared Redis client, or None while Redis is unreachable."""
    global _redis

    if _redis is None:
        _redis = Redis.from_url(
            REDIS_URL, decode_responses=True, socket_connect_timeout=2, socket_timeout=2
        )
    try:
        await _redis.ping()
        return _redis
    except Exception as e:
        logger.warning(f"Redis unavailable at {REDIS_URL}, settings cache skipped: {e}")
        await close_redis_connection()
        return None


async def _cache_read(key: str) -> Optional[str]:
    client = await get_redis_client()
    if client is None:
        return None
    try:
        return await client.get(CACHE_PREFIX + key)
    except Exception as e:
        logger.warning(f"Settings cache read failed for {key}: {e}")
        return None


async def _cache_write(key: str, value: Optional[str]) -> None:
    client = await get_redis_client()
    if client is None:
        return
    try:
        if value is None:
            await client.delete(CACHE_PREFIX + key)
        else:
            await client.setex(CACHE_PREFIX + key, CACHE_TTL_SECONDS, value)
    except Exception as e:
        logger.warning(f"Settings cache write failed for {key}: {e}")


async def set_setting(session: AsyncSession, key: str, value: Optional[str]) -> None:
    """Store an override (None clears it) and refresh the shared cache."""
    row = await session.get(Setting, key)
    if row is None:
        session.add(Setting(key=key, value=value))
    else:
        row.value = value
    await session.flush()
    await _cache_write(key, value)


async def _raw_value(session: Optional[AsyncSession], setting: RuntimeSetting) -> Optional[str]:
    if session is not None:
        try:
            stored = (
                await session.execute(select(Setting.value).where(Setting.key == setting.key))
            ).scalar_one_or_none()
        except Exception as e:
            logger.warning(f"Could not read setting {setting.key} from the database: {e}")
            stored = None
        if stored is not None:
            await _cache_write(setting.key, stored)
            return stored

    cached = await _cache_read(setting.key)
    if cached is not None:
        return cached
    return os.getenv(setting.env_var)


async def resolve(session: Optional[AsyncSession], setting: RuntimeSetting) -> Any:
    """Current value of a runtime setting; unparsable values fall back to the default."""
    raw = await _raw_value(session, setting)
    if raw is None:
        return setting.default
    try:
        return setting.parse(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid value {raw!r} for setting {setting.key}")
        return setting.default


async def is_sms_enabled(session: Optional[AsyncSession]) -> bool:
    return await resolve(session, ENABLE_SMS)


async def get_invite_response_hours(session: Optional[AsyncSession]) -> float:
    return await resolve(session, INVITE_RESPONSE_HOURS)


async def close_redis_connection():
    """Drop the Redis client (application shutdown, or after a failed ping)."""
    global _redis
    client, _redis = _redis, None
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as e:
        logger.debug(f"Error closing Redis client: {e}")
