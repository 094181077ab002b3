from gembid.core.clock import Clock, ensure_utc, system_clock
from gembid.core.config import settings
from gembid.core.database import Base, async_session_maker, engine
from gembid.core.redis import close_redis, get_redis

__all__ = [
    "settings",
    "Base",
    "engine",
    "async_session_maker",
    "get_redis",
    "close_redis",
    "Clock",
    "ensure_utc",
    "system_clock",
]
