"""Last.fm API client, used for artist genre tags."""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from ..exceptions import ConfigurationError, ExternalServiceError
from ..registry import Module, ModuleRegistry

logger = structlog.get_logger("lpbot.modules")

API_ENDPOINT = "http://ws.audioscrobbler.com/2.0/"
TOP_TAGS = 5


class Lastfm(Module):
    """Thin async wrapper over the Last.fm JSON API.

    Args:
        api_key: Last.fm API key.
        timeout: Total request timeout in seconds.
    """

    def __init__(self, api_key: str, timeout: float = 10):
        self.api_key = api_key
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    async def construct(cls, modules: ModuleRegistry) -> "Lastfm":
        config = modules.config
        if config is None:
            raise ConfigurationError(
                "Missing setting lastfm_api_key", setting_name="lastfm_api_key"
            )
        return cls(config.require("lastfm_api_key"), timeout=config.lastfm_timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        """Close the shared HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _query(self, method: str, **params: str) -> Dict[str, Any]:
        query = {"method": method, "api_key": self.api_key, "format": "json", **params}
        session = await self._get_session()
        try:
            async with session.get(API_ENDPOINT, params=query) as resp:
                if resp.status != 200:
                    raise ExternalServiceError(
                        f"Last.fm returned HTTP {resp.status}",
                        service="lastfm",
                        status=resp.status,
                    )
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ExternalServiceError(f"Last.fm request failed: {e}", service="lastfm") from e
        except asyncio.TimeoutError as e:
            raise ExternalServiceError("Last.fm request timed out", service="lastfm") from e

        # Errors are reported in the body, sometimes with HTTP 200
        if isinstance(data, dict) and "error" in data:
            raise ExternalServiceError(
                f"Last.fm error {data['error']}: {data.get('message', '')}",
                service="lastfm",
            )
        return data

    async def artist_top_tags(self, artist: str) -> List[str]:
        """Names of the artist's top tags (at most five)."""
        data = await self._query("artist.getTopTags", artist=artist)
        tags = (data.get("toptags") or {}).get("tag") or []
        if isinstance(tags, dict):
            # Single tag comes back as an object
            tags = [tags]
        names = [t["name"] for t in tags if isinstance(t, dict) and t.get("name")]
        logger.debug("lastfm_top_tags", artist=artist, count=len(names))
        return names[:TOP_TAGS]
