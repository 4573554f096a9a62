import asyncio
import logging
from typing import List, Optional

import aiohttp

logger = logging.getLogger(__name__)

KEYS_URL = "https://{host}/{username}.keys"


def key_identity(public_key: str) -> str:
    """Key type and base64 body, without the trailing comment."""
    return " ".join(public_key.split()[:2])


async def fetch_account_keys(username: str, host: str = "github.com") -> List[str]:
    """Public keys the git host publishes for ``username``."""
    timeout = aiohttp.ClientTimeout(total=10)
    async with aiohttp.ClientSession(timeout=timeout) as s:
        async with s.get(KEYS_URL.format(host=host, username=username)) as r:
            r.raise_for_status()
            text = await r.text()
    return [line.strip() for line in text.splitlines() if line.strip()]


async def is_key_registered(username: str, public_key: str, host: str = "github.com") -> Optional[bool]:
    """True/False when the host answered, None when it could not be asked."""
    if not username or not public_key:
        return None
    try:
        keys = await fetch_account_keys(username, host)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning("Could not fetch keys for %s: %s", username, e)
        return None
    wanted = key_identity(public_key)
    return any(key_identity(k) == wanted for k in keys)
