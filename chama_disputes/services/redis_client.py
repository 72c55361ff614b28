"""Redis client for shared state across scanner processes and workers."""

import os
import uuid
import redis
import logging

logger = logging.getLogger(__name__)

# Redis connection (lazy initialization)
_redis_client = None

def get_redis():
    """Get or create Redis connection."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.environ.get('REDIS_URL')

    if not redis_url:
        logger.warning("REDIS_URL not set - scanner passes will run without a shared lock")
        return None

    try:
        _redis_client = redis.from_url(redis_url, decode_responses=True)
        # Test connection
        _redis_client.ping()
        logger.info("Redis connected successfully")
        return _redis_client
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        return None


LOCK_PREFIX = "disputes:scan-lock:"

# Release only if we still own the lock
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def acquire_scan_lock(name: str, ttl: int) -> str:
    """Try to take the named scanner lock.

    Returns:
        A token to pass to release_scan_lock(), '' when Redis is not
        available (the caller proceeds unlocked), or None when another
        process holds the lock.
    """
    r = get_redis()
    if not r:
        return ''

    token = uuid.uuid4().hex
    try:
        if r.set(f"{LOCK_PREFIX}{name}", token, nx=True, ex=ttl):
            return token
        return None
    except Exception as e:
        logger.error(f"Redis acquire_scan_lock error: {e}")
        return ''


def release_scan_lock(name: str, token: str) -> bool:
    """Release a lock taken by acquire_scan_lock()."""
    if not token:
        return False
    r = get_redis()
    if not r:
        return False

    try:
        return bool(r.eval(_RELEASE_SCRIPT, 1, f"{LOCK_PREFIX}{name}", token))
    except Exception as e:
        logger.error(f"Redis release_scan_lock error: {e}")
        return False
