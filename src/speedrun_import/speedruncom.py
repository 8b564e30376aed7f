"""speedrun.com REST API v1 adapter.

Read-only: the importer never writes back to the external source.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from .api_client import ApiClient
from .models import ExternalRun, pick_name

RUN_EMBEDS = "players,category,level,platform"
MAX_PAGE_SIZE = 200


class ExternalSource(Protocol):
    async def resolve_game_id(self) -> Optional[str]: ...

    async def list_runs(self, game_id: str, limit: int = 500) -> List[Dict[str, Any]]: ...

    async def list_categories(self, game_id: str) -> List[Dict[str, Any]]: ...

    async def list_levels(self, game_id: str) -> List[Dict[str, Any]]: ...

    async def fetch_platform_name(self, platform_id: str) -> Optional[str]: ...

    async def fetch_player_name(self, player_id: str) -> Optional[str]: ...


def _data(resp: Any) -> Any:
    if isinstance(resp, dict):
        return resp.get("data")
    return None


def _data_list(resp: Any) -> List[Dict[str, Any]]:
    data = _data(resp)
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    return []


class SpeedrunComSource:
    def __init__(
        self,
        api: ApiClient,
        game_abbreviation: str,
        game_name: Optional[str] = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        self.api = api
        self.game_abbreviation = game_abbreviation
        self.game_name = game_name
        self.page_size = min(page_size, MAX_PAGE_SIZE)

    async def resolve_game_id(self) -> Optional[str]:
        params = {"abbreviation": self.game_abbreviation}
        if self.game_name:
            params["name"] = self.game_name
        games = _data_list(await self.api.get_json("/games", params=params))
        for game in games:
            if game.get("abbreviation") == self.game_abbreviation:
                return game.get("id") or None
        return None

    async def list_runs(self, game_id: str, limit: int = 500) -> List[Dict[str, Any]]:
        """Verified runs for the game, newest submissions first."""
        runs: List[Dict[str, Any]] = []
        offset = 0
        while len(runs) < limit:
            resp = await self.api.get_json(
                "/runs",
                params={
                    "game": game_id,
                    "status": "verified",
                    "orderby": "submitted",
                    "direction": "desc",
                    "max": self.page_size,
                    "offset": offset,
                    "embed": RUN_EMBEDS,
                },
            )
            page = _data_list(resp)
            if not page:
                break
            runs.extend(page)
            offset += len(page)
            pagination = resp.get("pagination") or {}
            if len(page) < self.page_size or not _has_next_page(pagination):
                break
        return runs[:limit]

    async def list_categories(self, game_id: str) -> List[Dict[str, Any]]:
        return _data_list(await self.api.get_json(f"/games/{game_id}/categories"))

    async def list_levels(self, game_id: str) -> List[Dict[str, Any]]:
        return _data_list(await self.api.get_json(f"/games/{game_id}/levels"))

    async def fetch_platform_name(self, platform_id: str) -> Optional[str]:
        data = _data(await self.api.get_json(f"/platforms/{platform_id}"))
        if not isinstance(data, dict):
            return None
        return pick_name(data) or None

    async def fetch_player_name(self, player_id: str) -> Optional[str]:
        data = _data(await self.api.get_json(f"/users/{player_id}"))
        if not isinstance(data, dict):
            return None
        return pick_name(data) or None

    async def fetch_run(self, run_id: str) -> Optional[ExternalRun]:
        data = _data(await self.api.get_json(f"/runs/{run_id}", params={"embed": RUN_EMBEDS}))
        if not isinstance(data, dict):
            return None
        return ExternalRun.from_api(data)


def _has_next_page(pagination: Dict[str, Any]) -> bool:
    # SRC pagination carries a "next" link while more pages exist.
    links = pagination.get("links")
    if links is None:
        return True
    return any(isinstance(link, dict) and link.get("rel") == "next" for link in links)
