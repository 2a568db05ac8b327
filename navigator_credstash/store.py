"""
CredStash Store Client — typed operations on the versioned DynamoDB table.

Table schema: ``name`` (HASH, S) + ``version`` (RANGE, S).

Versions are string range keys, so "highest" means highest in DynamoDB's
byte ordering. That equals numeric ordering only while every version of a
name has the same width (single digit, or zero-padded via
``CredStashConfig.version_width``).

Writes are insert-if-absent only; records are never updated in place.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import AlreadyExistsError, NotFoundError, StoreError, VersionConflictError
from .models import SecretMetadata, SecretRecord

logger = logging.getLogger("navigator.credstash")

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
RESOURCE_IN_USE = "ResourceInUseException"

_NAME_ALIAS = {"#name": "name"}
_METADATA_PROJECTION = "#name, version"


def _error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


@contextmanager
def _store_errors() -> Iterator[None]:
    """Re-raise botocore failures as StoreError, message unchanged."""
    try:
        yield
    except (ClientError, BotoCoreError) as err:
        raise StoreError(str(err)) from err


class StoreClient:
    """Versioned secret table.

    Args:
        dynamodb: boto3 DynamoDB client.
        table: Table name.
        wait_delay: Seconds between polls while waiting for a new table.
        wait_max_attempts: Polls before giving up on a new table.
    """

    def __init__(
        self,
        dynamodb: Any,
        table: str,
        wait_delay: int = 20,
        wait_max_attempts: int = 25,
    ):
        self._db = dynamodb
        self.table = table
        self._wait_delay = wait_delay
        self._wait_max_attempts = wait_max_attempts

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _query_newest(self, name: str, projection: Optional[str] = None) -> Optional[dict]:
        params: dict[str, Any] = {
            "TableName": self.table,
            "Limit": 1,
            "ConsistentRead": True,
            "ScanIndexForward": False,
            "KeyConditionExpression": "#name = :name",
            "ExpressionAttributeNames": dict(_NAME_ALIAS),
            "ExpressionAttributeValues": {":name": {"S": name}},
        }
        if projection:
            params["ProjectionExpression"] = projection
        with _store_errors():
            response = self._db.query(**params)
        items = response.get("Items", [])
        return items[0] if items else None

    def highest_version(self, name: str) -> int:
        """Return the highest stored version of ``name``, 0 if there is none.

        Raises:
            StoreError: On DynamoDB failure.
            MalformedRecordError: If the stored version is not an integer.
        """
        item = self._query_newest(name, projection=_METADATA_PROJECTION)
        if item is None:
            return 0
        version = SecretMetadata.from_item(item).number
        logger.debug("Highest version of %s in %s: %d", name, self.table, version)
        return version

    def get_latest(self, name: str) -> SecretRecord:
        """Return the newest record of ``name``.

        Raises:
            NotFoundError: If no version of ``name`` exists.
        """
        item = self._query_newest(name)
        if item is None:
            raise NotFoundError(name)
        return SecretRecord.from_item(item)

    def _get_item(self, name: str, version: str, projection: Optional[str] = None) -> Optional[dict]:
        params: dict[str, Any] = {
            "TableName": self.table,
            "Key": {"name": {"S": name}, "version": {"S": version}},
            "ConsistentRead": True,
        }
        if projection:
            params["ProjectionExpression"] = projection
            params["ExpressionAttributeNames"] = dict(_NAME_ALIAS)
        with _store_errors():
            response = self._db.get_item(**params)
        return response.get("Item")

    def get_version(self, name: str, version: str) -> SecretRecord:
        """Return the record stored at exactly (name, version).

        Raises:
            NotFoundError: If that version does not exist.
        """
        item = self._get_item(name, version)
        if item is None:
            raise NotFoundError(name, version)
        return SecretRecord.from_item(item)

    def get_metadata(self, name: str, version: str) -> SecretMetadata:
        """Like ``get_version`` without fetching the payload."""
        item = self._get_item(name, version, projection=_METADATA_PROJECTION)
        if item is None:
            raise NotFoundError(name, version)
        return SecretMetadata.from_item(item)

    def _paginate(self, operation: str, **params: Any) -> Iterator[dict]:
        call = getattr(self._db, operation)
        while True:
            with _store_errors():
                response = call(**params)
            yield from response.get("Items", [])
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key

    def scan_by_name(self, name: str) -> list[SecretMetadata]:
        """Return every (name, version) stored under ``name``.

        Raises:
            NotFoundError: If ``name`` has no versions.
        """
        items = self._paginate(
            "query",
            TableName=self.table,
            ConsistentRead=True,
            KeyConditionExpression="#name = :name",
            ProjectionExpression=_METADATA_PROJECTION,
            ExpressionAttributeNames=dict(_NAME_ALIAS),
            ExpressionAttributeValues={":name": {"S": name}},
        )
        found = [SecretMetadata.from_item(item) for item in items]
        if not found:
            raise NotFoundError(name)
        return found

    def scan_all(self) -> list[SecretMetadata]:
        """Return every (name, version) in the table; empty table gives []."""
        items = self._paginate(
            "scan",
            TableName=self.table,
            ProjectionExpression=_METADATA_PROJECTION,
            ExpressionAttributeNames=dict(_NAME_ALIAS),
        )
        return [SecretMetadata.from_item(item) for item in items]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put_if_absent(self, record: SecretRecord) -> None:
        """Insert ``record`` unless (name, version) is already taken.

        Raises:
            VersionConflictError: If the version already exists.
            StoreError: On any other DynamoDB failure.
        """
        try:
            self._db.put_item(
                TableName=self.table,
                Item=record.to_item(),
                ConditionExpression="attribute_not_exists(#name)",
                ExpressionAttributeNames=dict(_NAME_ALIAS),
            )
        except ClientError as err:
            if _error_code(err) == CONDITIONAL_CHECK_FAILED:
                raise VersionConflictError(record.name, record.version) from err
            raise StoreError(str(err)) from err
        except BotoCoreError as err:
            raise StoreError(str(err)) from err
        logger.debug("Stored %s version %s in %s", record.name, record.version, self.table)

    def delete_key(self, name: str, version: str) -> None:
        """Delete (name, version); deleting a missing key is not an error."""
        with _store_errors():
            self._db.delete_item(
                TableName=self.table,
                Key={"name": {"S": name}, "version": {"S": version}},
            )
        logger.debug("Deleted %s version %s from %s", name, version, self.table)

    # ------------------------------------------------------------------
    # Table lifecycle
    # ------------------------------------------------------------------

    def table_exists(self) -> bool:
        """Return True if the table is listed in the account/region."""
        params: dict[str, Any] = {}
        while True:
            with _store_errors():
                response = self._db.list_tables(**params)
            if self.table in response.get("TableNames", []):
                return True
            last = response.get("LastEvaluatedTableName")
            if not last:
                return False
            params["ExclusiveStartTableName"] = last

    def ensure_table(self) -> None:
        """Create the table and block until DynamoDB reports it active.

        Raises:
            AlreadyExistsError: If the table already exists.
            StoreError: On DynamoDB failure or waiter timeout.
        """
        if self.table_exists():
            raise AlreadyExistsError(self.table)
        try:
            self._db.create_table(
                TableName=self.table,
                KeySchema=[
                    {"AttributeName": "name", "KeyType": "HASH"},
                    {"AttributeName": "version", "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": "name", "AttributeType": "S"},
                    {"AttributeName": "version", "AttributeType": "S"},
                ],
                ProvisionedThroughput={
                    "ReadCapacityUnits": 1,
                    "WriteCapacityUnits": 1,
                },
            )
        except ClientError as err:
            if _error_code(err) == RESOURCE_IN_USE:
                raise AlreadyExistsError(self.table) from err
            raise StoreError(str(err)) from err
        except BotoCoreError as err:
            raise StoreError(str(err)) from err
        logger.info("Creating table %s...", self.table)
        logger.info("Waiting for table %s to be created...", self.table)
        with _store_errors():
            self._db.get_waiter("table_exists").wait(
                TableName=self.table,
                WaiterConfig={
                    "Delay": self._wait_delay,
                    "MaxAttempts": self._wait_max_attempts,
                },
            )
        logger.info("Table %s has been created", self.table)
