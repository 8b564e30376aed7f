"""Local leaderboard store on DynamoDB.

Only the reads the importer needs plus a single append-only insert; runs are never
updated or deleted from here.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional, Protocol

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .models import LocalRun, TaxonomyItem
from .normalize import normalize_name


class PlayerIndex:
    """Local player accounts keyed for case-insensitive display-name lookup.

    A name matches a ``displayName`` first, then the local part of an ``email``.
    """

    def __init__(self, players: Iterable[Dict[str, Any]] = ()) -> None:
        self._by_display_name: Dict[str, Dict[str, Any]] = {}
        self._by_email_user: Dict[str, Dict[str, Any]] = {}
        for doc in players:
            display = normalize_name(doc.get("displayName"))
            if display:
                self._by_display_name.setdefault(display, doc)
            email = normalize_name(doc.get("email"))
            if email:
                self._by_email_user.setdefault(email.split("@", 1)[0], doc)

    def __len__(self) -> int:
        return len(self._by_display_name)

    def get_by_display_name(self, display_name: str) -> Optional[Dict[str, Any]]:
        wanted = normalize_name(display_name)
        if not wanted:
            return None
        return self._by_display_name.get(wanted) or self._by_email_user.get(wanted)


class LocalStore(Protocol):
    def list_categories(self) -> List[TaxonomyItem]: ...

    def list_platforms(self) -> List[TaxonomyItem]: ...

    def list_levels(self) -> List[TaxonomyItem]: ...

    def list_runs_for_duplicate_check(self) -> List[LocalRun]: ...

    def load_player_index(self) -> PlayerIndex: ...

    def add_run(self, run: LocalRun) -> Optional[str]: ...


_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_item(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in doc.items()}


def _from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _deserializer.deserialize(v) for k, v in item.items()}


def _sorted_items(docs: List[Dict[str, Any]]) -> List[TaxonomyItem]:
    items = [TaxonomyItem.from_document(d) for d in docs]
    items = [i for i in items if i.id and i.name]
    return sorted(items, key=lambda i: (i.order is None, i.order or 0, i.name.lower()))


class DynamoStore:
    def __init__(self, region: str, tables: Dict[str, str]) -> None:
        self.tables = tables
        self._client = boto3.client("dynamodb", region_name=region)

    def _scan(self, table: str) -> List[Dict[str, Any]]:
        docs: List[Dict[str, Any]] = []
        paginator = self._client.get_paginator("scan")
        for page in paginator.paginate(TableName=table):
            for item in page.get("Items", []):
                docs.append(_from_item(item))
        return docs

    def list_categories(self) -> List[TaxonomyItem]:
        return _sorted_items(self._scan(self.tables["categories_table"]))

    def list_platforms(self) -> List[TaxonomyItem]:
        return _sorted_items(self._scan(self.tables["platforms_table"]))

    def list_levels(self) -> List[TaxonomyItem]:
        return _sorted_items(self._scan(self.tables["levels_table"]))

    def list_runs_for_duplicate_check(self) -> List[LocalRun]:
        return [LocalRun.from_document(d) for d in self._scan(self.tables["runs_table"])]

    def load_player_index(self) -> PlayerIndex:
        """One scan of the players table, matched in memory for the rest of the batch."""
        return PlayerIndex(self._scan(self.tables["players_table"]))

    def add_run(self, run: LocalRun) -> Optional[str]:
        run_id = uuid.uuid4().hex
        doc = run.to_document()
        doc["id"] = run_id
        self._client.put_item(
            TableName=self.tables["runs_table"],
            Item=_to_item(doc),
            ConditionExpression="attribute_not_exists(id)",
        )
        return run_id
