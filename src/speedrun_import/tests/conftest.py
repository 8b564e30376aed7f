"""Shared test fixtures for the speedrun_import test suite.

Provides moto-based AWS mocks, in-memory fakes of the SRC source and the local
store, and sample records shaped like real speedrun.com API responses.
"""

from __future__ import annotations

import json
import os
import uuid
from typing import Any, Dict, List, Optional

import boto3
import pytest
from moto import mock_aws

from speedrun_import.config import Config
from speedrun_import.models import LocalRun, TaxonomyItem
from speedrun_import.store import PlayerIndex


# ---------------------------------------------------------------------------
# AWS credential safety: no real AWS calls
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True, scope="session")
def aws_credentials():
    """Set fake AWS credentials for the entire test session."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    yield
    for key in (
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SECURITY_TOKEN",
        "AWS_SESSION_TOKEN",
        "AWS_DEFAULT_REGION",
    ):
        os.environ.pop(key, None)


TABLES = {
    "runs_table": "leaderboard_entries",
    "players_table": "players",
    "categories_table": "categories",
    "platforms_table": "platforms",
    "levels_table": "levels",
}


@pytest.fixture()
def dynamodb_tables():
    """Create the five leaderboard tables in moto, each keyed on ``id``.

    Yields the boto3 DynamoDB client.
    """
    with mock_aws():
        client = boto3.client("dynamodb", region_name="us-east-1")
        for table in TABLES.values():
            client.create_table(
                TableName=table,
                KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
        yield client


@pytest.fixture()
def sample_config() -> Config:
    return Config({
        "region": "us-east-1",
        "api": {"base_url": "https://api.test.com", "timeout_seconds": 5, "rate_limit_per_sec": 100},
        "source": {"game_name": "LEGO Star Wars", "game_abbreviation": "lsw"},
        "store": dict(TABLES),
        "import": {"limit": 50},
    })


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------

class FakeSource:
    """Stands in for SpeedrunComSource; records every name lookup."""

    def __init__(
        self,
        runs: List[Dict[str, Any]],
        categories: Optional[List[Dict[str, Any]]] = None,
        levels: Optional[List[Dict[str, Any]]] = None,
        platforms: Optional[Dict[str, str]] = None,
        players: Optional[Dict[str, str]] = None,
        game_id: Optional[str] = "lsw1",
    ) -> None:
        self.runs = runs
        self.categories = categories or []
        self.levels = levels or []
        self.platforms = platforms or {}
        self.players = players or {}
        self.game_id = game_id
        self.platform_calls: List[str] = []
        self.player_calls: List[str] = []
        self.fail_runs = False
        self.fail_platforms = False

    async def resolve_game_id(self):
        return self.game_id

    async def list_runs(self, game_id, limit=500):
        if self.fail_runs:
            from speedrun_import.errors import FetchError

            raise FetchError("SRC API error 503 for /runs")
        return list(self.runs)[:limit]

    async def list_categories(self, game_id):
        return self.categories

    async def list_levels(self, game_id):
        return self.levels

    async def fetch_platform_name(self, platform_id):
        self.platform_calls.append(platform_id)
        if self.fail_platforms:
            from speedrun_import.errors import FetchError

            raise FetchError(f"timeout fetching /platforms/{platform_id}")
        return self.platforms.get(platform_id)

    async def fetch_player_name(self, player_id):
        self.player_calls.append(player_id)
        return self.players.get(player_id)


class FakeStore:
    """Stands in for DynamoStore."""

    def __init__(
        self,
        categories: Optional[List[TaxonomyItem]] = None,
        platforms: Optional[List[TaxonomyItem]] = None,
        levels: Optional[List[TaxonomyItem]] = None,
        runs: Optional[List[LocalRun]] = None,
        players: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self.categories = categories or []
        self.platforms = platforms or []
        self.levels = levels or []
        self.runs = runs or []
        self.players = players or []
        self.reject_writes_for: set = set()
        self.player_index_loads = 0
        self.fail_player_index = False

    def list_categories(self):
        return list(self.categories)

    def list_platforms(self):
        return list(self.platforms)

    def list_levels(self):
        return list(self.levels)

    def list_runs_for_duplicate_check(self):
        return list(self.runs)

    def load_player_index(self):
        self.player_index_loads += 1
        if self.fail_player_index:
            raise RuntimeError("players table unavailable")
        return PlayerIndex(self.players)

    def add_run(self, run):
        if run.src_run_id in self.reject_writes_for:
            raise RuntimeError("ConditionalCheckFailed")
        run.id = uuid.uuid4().hex
        self.runs.append(run)
        return run.id


# ---------------------------------------------------------------------------
# Sample data shaped like GET /runs?embed=players,category,level,platform
# ---------------------------------------------------------------------------

def make_src_run(
    run_id: str,
    players=("Alice",),
    category: Any = None,
    platform: Any = None,
    level: Any = None,
    primary: str = "PT1H2M3.45S",
    date: Optional[str] = "2024-03-01",
) -> Dict[str, Any]:
    if category is None:
        category = {"data": {"id": "cat-any", "name": "Any%", "type": "per-game"}}
    if platform is None:
        platform = {"data": {"id": "plat-gc", "name": "GameCube"}}
    player_list = []
    for p in players:
        if isinstance(p, dict):
            player_list.append(p)
        else:
            player_list.append({"rel": "guest", "name": p})
    run = {
        "id": run_id,
        "weblink": f"https://www.speedrun.com/lsw/run/{run_id}",
        "game": "lsw1",
        "category": category,
        "players": {"data": player_list},
        "date": date,
        "submitted": "2024-03-02T10:00:00Z",
        "times": {"primary": primary, "primary_t": 3723.45},
        "system": {"platform": platform, "emulated": False, "region": None},
        "videos": {"links": [{"uri": f"https://youtu.be/{run_id}"}]},
        "comment": "gg",
        "status": {"status": "verified"},
    }
    if level is not None:
        run["level"] = level
    return run


@pytest.fixture()
def src_categories() -> List[Dict[str, Any]]:
    return [
        {"id": "cat-any", "name": "Any%", "type": "per-game"},
        {"id": "cat-100", "name": "100%", "type": "per-game"},
        {"id": "cat-il", "name": "Level Any%", "type": "per-level"},
        {"id": "cat-ff", "name": "Free Play", "type": "per-game"},
    ]


@pytest.fixture()
def src_levels() -> List[Dict[str, Any]]:
    return [
        {"id": "lvl-1", "name": "Negotiations"},
        {"id": "lvl-2", "names": {"international": "Invasion of Naboo"}},
    ]


@pytest.fixture()
def local_store() -> FakeStore:
    return FakeStore(
        categories=[
            TaxonomyItem("c1", "Any%", 1, "regular"),
            TaxonomyItem("c2", " 100% ", 2, "regular"),
            TaxonomyItem("c3", "level any%", 3, "individual-level"),
        ],
        platforms=[TaxonomyItem("p1", "GameCube", 1), TaxonomyItem("p2", "PC", 2)],
        levels=[TaxonomyItem("l1", "Negotiations", 1)],
        players=[{"id": "u1", "displayName": "Alice", "email": "alice@example.com"}],
    )


# ---------------------------------------------------------------------------
# S3 readers for report assertions
# ---------------------------------------------------------------------------

def list_s3_keys(client, bucket: str, prefix: str) -> List[str]:
    resp = client.list_objects_v2(Bucket=bucket, Prefix=prefix)
    return sorted(obj["Key"] for obj in resp.get("Contents", []))


def read_s3_json(client, bucket: str, key: str) -> Any:
    return json.loads(client.get_object(Bucket=bucket, Key=key)["Body"].read())
