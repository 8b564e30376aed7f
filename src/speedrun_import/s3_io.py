from __future__ import annotations

import json
import time
import uuid
from typing import Any, Dict

import boto3


class S3IO:
    """Writes import summaries and rejected-run reports for later review."""

    def __init__(self, bucket: str, region: str) -> None:
        self.bucket = bucket
        self.region = region
        self._client = boto3.client("s3", region_name=region)

    def _put_with_retry(self, key: str, body: bytes, max_attempts: int = 3) -> None:
        delay = 0.5
        for attempt in range(1, max_attempts + 1):
            try:
                self._client.put_object(
                    Bucket=self.bucket, Key=key, Body=body, ContentType="application/json"
                )
                return
            except Exception:
                if attempt >= max_attempts:
                    raise
                time.sleep(delay)
                delay = min(4.0, delay * 2)

    def put_json(self, key: str, payload: Any) -> None:
        self._put_with_retry(key, json.dumps(payload, default=str, indent=2).encode("utf-8"))

    def put_rejected(self, prefix: str, import_id: str, run_id: str, reason: str, record: Dict[str, Any]) -> str:
        key = make_part_key(prefix, f"import_id={import_id}", f"run-{run_id}.json")
        self.put_json(key, {"import_id": import_id, "src_run_id": run_id, "reason": reason, "record": record})
        return key


def make_part_key(prefix: str, *parts: str) -> str:
    return "/".join([prefix.strip("/")] + [p.strip("/") for p in parts])


def new_import_id() -> str:
    return uuid.uuid4().hex
