"""
Shared fixtures: in-memory KMS and DynamoDB clients.

The fakes accept the same keyword arguments as the boto3 clients used by
navigator_credstash and raise real ``botocore.exceptions.ClientError``
instances, so error translation is exercised end to end.
"""
import os
import threading
from typing import Any, Optional

import pytest
from botocore.exceptions import ClientError

from navigator_credstash import CredStash
from navigator_credstash.envelope import EnvelopeCodec
from navigator_credstash.store import StoreClient

TABLE = "credential-store"
KEY_ID = "alias/credstash"


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": message or code}}, operation,
    )


class FakeKms:
    """KMS stand-in that binds each wrapped key to its encryption context."""

    def __init__(self, key_ids: tuple = (KEY_ID,)):
        self.key_ids = set(key_ids)
        self._wrapped: dict[bytes, tuple[bytes, dict]] = {}
        self._lock = threading.Lock()
        self.calls: list[tuple[str, dict]] = []
        self.fail_with: Optional[str] = None

    def generate_data_key(self, KeyId: str, NumberOfBytes: int, EncryptionContext: Optional[dict] = None):
        self.calls.append(("GenerateDataKey", {"KeyId": KeyId, "EncryptionContext": EncryptionContext}))
        if KeyId not in self.key_ids:
            raise client_error("NotFoundException", "GenerateDataKey", f"Key '{KeyId}' does not exist")
        plaintext = os.urandom(NumberOfBytes)
        blob = b"wrapped:" + os.urandom(24)
        with self._lock:
            self._wrapped[blob] = (plaintext, dict(EncryptionContext or {}))
        return {"KeyId": KeyId, "Plaintext": plaintext, "CiphertextBlob": blob}

    def decrypt(self, CiphertextBlob: bytes, EncryptionContext: Optional[dict] = None):
        self.calls.append(("Decrypt", {"EncryptionContext": EncryptionContext}))
        if self.fail_with:
            raise client_error(self.fail_with, "Decrypt")
        with self._lock:
            entry = self._wrapped.get(bytes(CiphertextBlob))
        if entry is None or entry[1] != dict(EncryptionContext or {}):
            raise client_error("InvalidCiphertextException", "Decrypt")
        return {"Plaintext": entry[0]}


class FakeWaiter:
    def __init__(self, db: "FakeDynamoDB"):
        self.db = db

    def wait(self, TableName: str, WaiterConfig: Optional[dict] = None):
        self.db.waits.append({"TableName": TableName, "WaiterConfig": WaiterConfig})
        if TableName not in self.db.tables:
            raise client_error("ResourceNotFoundException", "DescribeTable")


class FakeDynamoDB:
    """DynamoDB stand-in with string HASH+RANGE keys and conditional puts.

    ``page_size`` limits items returned per query/scan/list_tables call so
    pagination is exercised; ``fail_with`` makes every call raise that code.
    """

    def __init__(self, tables: tuple = (TABLE,), page_size: Optional[int] = None):
        self.tables: dict[str, dict[tuple[str, str], dict]] = {t: {} for t in tables}
        self.page_size = page_size
        self.fail_with: Optional[str] = None
        self.created: list[dict] = []
        self.waits: list[dict] = []
        self._lock = threading.Lock()

    def _check(self, operation: str) -> None:
        if self.fail_with:
            raise client_error(self.fail_with, operation)

    def _table(self, name: str, operation: str) -> dict:
        self._check(operation)
        try:
            return self.tables[name]
        except KeyError:
            raise client_error(
                "ResourceNotFoundException", operation, "Requested resource not found",
            ) from None

    @staticmethod
    def _project(item: dict, projection: Optional[str]) -> dict:
        if not projection:
            return dict(item)
        return {k: v for k, v in item.items() if k in ("name", "version")}

    def _page(self, items: list, start: Optional[dict], limit: Optional[int], projection: Optional[str]) -> dict:
        if start:
            key = (start["name"]["S"], start["version"]["S"])
            keys = [(i["name"]["S"], i["version"]["S"]) for i in items]
            items = items[keys.index(key) + 1:]
        size = min(x for x in (limit, self.page_size, len(items)) if x is not None)
        page = items[:size]
        response: dict[str, Any] = {
            "Items": [self._project(i, projection) for i in page],
            "Count": len(page),
        }
        if len(items) > size and page:
            last = page[-1]
            response["LastEvaluatedKey"] = {"name": last["name"], "version": last["version"]}
        return response

    # -- item operations ------------------------------------------------

    def put_item(self, TableName: str, Item: dict, ConditionExpression: Optional[str] = None, **_):
        table = self._table(TableName, "PutItem")
        key = (Item["name"]["S"], Item["version"]["S"])
        with self._lock:
            if ConditionExpression and key in table:
                raise client_error(
                    "ConditionalCheckFailedException", "PutItem", "The conditional request failed",
                )
            table[key] = dict(Item)
        return {}

    def get_item(self, TableName: str, Key: dict, ProjectionExpression: Optional[str] = None, **_):
        table = self._table(TableName, "GetItem")
        item = table.get((Key["name"]["S"], Key["version"]["S"]))
        if item is None:
            return {}
        return {"Item": self._project(item, ProjectionExpression)}

    def delete_item(self, TableName: str, Key: dict, **_):
        table = self._table(TableName, "DeleteItem")
        with self._lock:
            table.pop((Key["name"]["S"], Key["version"]["S"]), None)
        return {}

    def query(
        self,
        TableName: str,
        ExpressionAttributeValues: dict,
        ScanIndexForward: bool = True,
        Limit: Optional[int] = None,
        ProjectionExpression: Optional[str] = None,
        ExclusiveStartKey: Optional[dict] = None,
        **_,
    ):
        table = self._table(TableName, "Query")
        name = ExpressionAttributeValues[":name"]["S"]
        items = sorted(
            (i for (n, _v), i in table.items() if n == name),
            key=lambda i: i["version"]["S"],
            reverse=not ScanIndexForward,
        )
        return self._page(items, ExclusiveStartKey, Limit, ProjectionExpression)

    def scan(
        self,
        TableName: str,
        ProjectionExpression: Optional[str] = None,
        ExclusiveStartKey: Optional[dict] = None,
        **_,
    ):
        table = self._table(TableName, "Scan")
        items = [table[k] for k in sorted(table)]
        return self._page(items, ExclusiveStartKey, None, ProjectionExpression)

    # -- table lifecycle ------------------------------------------------

    def list_tables(self, ExclusiveStartTableName: Optional[str] = None):
        self._check("ListTables")
        names = sorted(self.tables)
        if ExclusiveStartTableName:
            names = [n for n in names if n > ExclusiveStartTableName]
        size = self.page_size or len(names)
        response: dict[str, Any] = {"TableNames": names[:size]}
        if len(names) > size:
            response["LastEvaluatedTableName"] = names[size - 1]
        return response

    def create_table(self, TableName: str, **params):
        self._check("CreateTable")
        if TableName in self.tables:
            raise client_error("ResourceInUseException", "CreateTable")
        self.created.append({"TableName": TableName, **params})
        self.tables[TableName] = {}
        return {"TableDescription": {"TableName": TableName, "TableStatus": "CREATING"}}

    def get_waiter(self, name: str):
        assert name == "table_exists"
        return FakeWaiter(self)

    # -- helpers --------------------------------------------------------

    def keys(self, table: str = TABLE) -> set:
        return set(self.tables[table])


@pytest.fixture
def kms():
    return FakeKms()


@pytest.fixture
def dynamodb():
    return FakeDynamoDB()


@pytest.fixture
def codec(kms):
    return EnvelopeCodec(kms)


@pytest.fixture
def store(dynamodb):
    return StoreClient(dynamodb, TABLE, wait_delay=1, wait_max_attempts=2)


@pytest.fixture
def credstash(kms, dynamodb):
    return CredStash(kms, dynamodb, table=TABLE, kms_key_id=KEY_ID)
