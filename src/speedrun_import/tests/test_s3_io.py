"""Tests for import report writing using moto."""

from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from conftest import list_s3_keys, read_s3_json
from speedrun_import.s3_io import S3IO, make_part_key


@pytest.fixture()
def s3_bucket():
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket="test-bucket")
        yield client


def test_make_part_key():
    assert make_part_key("/meta/", "import_id=abc.json") == "meta/import_id=abc.json"
    assert make_part_key("deadletter", "import_id=abc", "run-r1.json") == "deadletter/import_id=abc/run-r1.json"


def test_put_json(s3_bucket):
    s3 = S3IO("test-bucket", "us-east-1")
    s3.put_json("meta/import_id=abc.json", {"imported": 2, "errors": []})
    assert read_s3_json(s3_bucket, "test-bucket", "meta/import_id=abc.json") == {"imported": 2, "errors": []}
    head = s3_bucket.head_object(Bucket="test-bucket", Key="meta/import_id=abc.json")
    assert head["ContentType"] == "application/json"


def test_put_rejected(s3_bucket):
    s3 = S3IO("test-bucket", "us-east-1")
    key = s3.put_rejected("deadletter", "abc", "r1", "Run r1: missing time", {"id": "r1"})
    assert key == "deadletter/import_id=abc/run-r1.json"
    assert list_s3_keys(s3_bucket, "test-bucket", "deadletter/") == [key]
    body = read_s3_json(s3_bucket, "test-bucket", key)
    assert body["reason"] == "Run r1: missing time"
    assert body["record"] == {"id": "r1"}


def test_put_retries_transient_failures(s3_bucket, monkeypatch):
    s3 = S3IO("test-bucket", "us-east-1")
    real_put = s3._client.put_object
    attempts = []

    def flaky_put(**kwargs):
        attempts.append(kwargs["Key"])
        if len(attempts) == 1:
            raise RuntimeError("SlowDown")
        return real_put(**kwargs)

    monkeypatch.setattr(s3._client, "put_object", flaky_put)
    monkeypatch.setattr("speedrun_import.s3_io.time.sleep", lambda _: None)
    s3.put_json("meta/x.json", {"ok": True})
    assert len(attempts) == 2
    assert read_s3_json(s3_bucket, "test-bucket", "meta/x.json") == {"ok": True}
