"""DynamoDB-backed store for API keys and rate limit windows.

Tables:
- keys: partition key ``id``, GSI ``key_hash_index`` on ``key_hash``.
- windows: partition key ``window_id`` = ``<key_id>#<window_type>#<window_start>``.

Window uniqueness comes from a conditional put on ``window_id``; increments
use ``ADD`` so concurrent updates to one row are never lost.
"""

import asyncio
from datetime import datetime

from src.keys.models import ApiKey, WindowRecord, WindowType, utc_isoformat, window_id
from src.store.store import GatewayStore, StoreError, UniqueViolation


class DynamoDBStore(GatewayStore):
    """Reaches both relations through boto3 Table resources. No caching."""

    def __init__(self, keys_table: str, windows_table: str, region: str = "us-east-1"):
        self._keys_table_name = keys_table
        self._windows_table_name = windows_table
        self._region = region
        self._resource = None
        self._keys_table = None
        self._windows_table = None

    def _get_resource(self):
        """Lazy-init boto3 DynamoDB resource."""
        if self._resource is None:
            import boto3

            self._resource = boto3.resource("dynamodb", region_name=self._region)
        return self._resource

    def _get_keys_table(self):
        if self._keys_table is None:
            self._keys_table = self._get_resource().Table(self._keys_table_name)
        return self._keys_table

    def _get_windows_table(self):
        if self._windows_table is None:
            self._windows_table = self._get_resource().Table(self._windows_table_name)
        return self._windows_table

    async def _call(self, fn, *args):
        """Run a blocking boto3 call off the event loop, mapping errors to StoreError."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(fn, *args)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise UniqueViolation(str(e)) from e
            raise StoreError(str(e)) from e
        except BotoCoreError as e:
            raise StoreError(str(e)) from e

    # --- keys ---

    async def find_by_hash(self, key_hash: str, key_prefix: str) -> ApiKey | None:
        return await self._call(self._query_by_hash, key_hash, key_prefix)

    def _query_by_hash(self, key_hash: str, key_prefix: str) -> ApiKey | None:
        """Query GSI for a key by hash, narrowed to the matching prefix."""
        from boto3.dynamodb.conditions import Attr, Key

        resp = self._get_keys_table().query(
            IndexName="key_hash_index",
            KeyConditionExpression=Key("key_hash").eq(key_hash),
            FilterExpression=Attr("key_prefix").eq(key_prefix),
        )

        items = resp.get("Items", [])
        if not items:
            return None
        return ApiKey.from_record(items[0])

    async def touch_last_used(self, key_id: str, at: datetime) -> None:
        await self._call(self._update_last_used, key_id, at)

    def _update_last_used(self, key_id: str, at: datetime) -> None:
        self._get_keys_table().update_item(
            Key={"id": key_id},
            UpdateExpression="SET last_used_at = :ts",
            ExpressionAttributeValues={":ts": utc_isoformat(at)},
        )

    async def insert_key(self, key: ApiKey) -> None:
        await self._call(self._put_key_item, key)

    def _put_key_item(self, key: ApiKey) -> None:
        # Hash uniqueness rests on the issuer's random material; only id is conditional
        self._get_keys_table().put_item(
            Item=key.to_record(),
            ConditionExpression="attribute_not_exists(id)",
        )

    async def ping(self) -> None:
        await self._call(self._scan_one_key)

    def _scan_one_key(self) -> None:
        self._get_keys_table().scan(Limit=1, ProjectionExpression="id")

    # --- windows ---

    async def get_window(
        self, key_id: str, window_start: datetime, window_type: WindowType
    ) -> WindowRecord | None:
        return await self._call(self._get_window_item, key_id, window_start, window_type)

    def _get_window_item(
        self, key_id: str, window_start: datetime, window_type: WindowType
    ) -> WindowRecord | None:
        resp = self._get_windows_table().get_item(
            Key={"window_id": window_id(key_id, window_start, window_type)},
            ConsistentRead=True,
        )
        item = resp.get("Item")
        if item is None:
            return None
        return WindowRecord(
            api_key_id=key_id,
            window_start=window_start,
            window_type=window_type,
            request_count=int(item.get("request_count", 1)),
        )

    async def insert_window(
        self, key_id: str, window_start: datetime, window_type: WindowType
    ) -> WindowRecord:
        await self._call(self._put_window_item, key_id, window_start, window_type)
        return WindowRecord(api_key_id=key_id, window_start=window_start, window_type=window_type)

    def _put_window_item(self, key_id: str, window_start: datetime, window_type: WindowType) -> None:
        self._get_windows_table().put_item(
            Item={
                "window_id": window_id(key_id, window_start, window_type),
                "api_key_id": key_id,
                "window_start": utc_isoformat(window_start),
                "window_type": window_type.value,
                "request_count": 1,
            },
            ConditionExpression="attribute_not_exists(window_id)",
        )

    async def increment_window(self, record: WindowRecord) -> int:
        return await self._call(self._add_to_window, record)

    def _add_to_window(self, record: WindowRecord) -> int:
        resp = self._get_windows_table().update_item(
            Key={"window_id": window_id(record.api_key_id, record.window_start, record.window_type)},
            UpdateExpression="ADD request_count :one",
            ExpressionAttributeValues={":one": 1},
            ReturnValues="UPDATED_NEW",
        )
        return int(resp["Attributes"]["request_count"])

    async def delete_windows_before(self, cutoff: datetime) -> int:
        return await self._call(self._delete_stale_windows, cutoff)

    def _delete_stale_windows(self, cutoff: datetime) -> int:
        from boto3.dynamodb.conditions import Attr

        table = self._get_windows_table()
        scan_kwargs = {
            "FilterExpression": Attr("window_start").lt(utc_isoformat(cutoff)),
            "ProjectionExpression": "window_id",
        }
        deleted = 0
        with table.batch_writer() as batch:
            while True:
                resp = table.scan(**scan_kwargs)
                for item in resp.get("Items", []):
                    batch.delete_item(Key={"window_id": item["window_id"]})
                    deleted += 1
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        return deleted
