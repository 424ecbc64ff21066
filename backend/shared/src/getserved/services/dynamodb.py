"""DynamoDB service wrapper with environment-aware table names."""

import os
from functools import lru_cache
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

BOOKINGS_TABLE = "bookings"
PROVIDERS_TABLE = "providers"
PROFILES_TABLE = "profiles"

# Table definitions shared by the seed script and the test fixtures
TABLE_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": BOOKINGS_TABLE,
        "KeySchema": [{"AttributeName": "booking_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "booking_id", "AttributeType": "S"},
            {"AttributeName": "provider_id", "AttributeType": "S"},
            {"AttributeName": "customer_id", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "provider_id-index",
                "KeySchema": [{"AttributeName": "provider_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "customer_id-index",
                "KeySchema": [{"AttributeName": "customer_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
    },
    {
        "name": PROVIDERS_TABLE,
        "KeySchema": [{"AttributeName": "provider_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "provider_id", "AttributeType": "S"},
        ],
    },
    {
        "name": PROFILES_TABLE,
        "KeySchema": [{"AttributeName": "user_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "user_id", "AttributeType": "S"},
        ],
    },
]

class DynamoDBService:
    """Conditional reads and writes against the GetServed tables.

    Table names carry the environment prefix; callers pass the bare name
    (``bookings``, ``providers``, ``profiles``). A write whose condition fails
    reports it through the return value instead of raising.
    """

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # DYNAMODB_TABLE_PREFIX wins so tests and sandboxes can share an account
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"getserved-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")

    def table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        return self._dynamodb.Table(self.table_name(table))

    def create_tables(self, wait: bool = False) -> list[str]:
        """Create every table in TABLE_SCHEMAS that does not exist yet.

        Args:
            wait: Block until each table is ACTIVE

        Returns:
            Full names of all GetServed tables
        """
        existing = set(self._client.list_tables().get("TableNames", []))
        names = []
        for schema in TABLE_SCHEMAS:
            name = self.table_name(schema["name"])
            names.append(name)
            if name in existing:
                continue
            kwargs: dict[str, Any] = {
                "TableName": name,
                "KeySchema": schema["KeySchema"],
                "AttributeDefinitions": schema["AttributeDefinitions"],
                "BillingMode": "PAY_PER_REQUEST",
            }
            if "GlobalSecondaryIndexes" in schema:
                kwargs["GlobalSecondaryIndexes"] = schema["GlobalSecondaryIndexes"]
            self._client.create_table(**kwargs)

        if wait:
            waiter = self._client.get_waiter("table_exists")
            for name in names:
                waiter.wait(TableName=name)
        return names

    def clear_table(self, table: str) -> int:
        """Delete every item of a table. Returns the number deleted."""
        dynamo_table = self._get_table(table)
        key_attrs = [k["AttributeName"] for k in dynamo_table.key_schema]

        deleted = 0
        scan_kwargs: dict[str, Any] = {"ProjectionExpression": ", ".join(key_attrs)}
        while True:
            response = dynamo_table.scan(**scan_kwargs)
            with dynamo_table.batch_writer() as batch:
                for item in response.get("Items", []):
                    batch.delete_item(Key={k: item[k] for k in key_attrs})
                    deleted += 1
            if not response.get("LastEvaluatedKey"):
                return deleted
            scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent_read: bool = True,
    ) -> dict[str, Any] | None:
        """Get a single item by key, or None.

        Reads are strongly consistent unless asked otherwise: every guard
        re-evaluation after a lost race must see the winner's write.
        """
        response = self._get_table(table).get_item(
            Key=key, ConsistentRead=consistent_read
        )
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Put an item. Returns False when the condition failed."""
        kwargs: dict[str, Any] = {"Item": item}
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        try:
            self._get_table(table).put_item(**kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply an update expression under an optional condition.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB SET/REMOVE expression
            expression_attribute_values: Placeholder values for both expressions
            expression_attribute_names: Placeholder names (reserved words)
            condition_expression: Guard the stored item must satisfy

        Returns:
            The item as written (ALL_NEW), or None if the condition failed
        """
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": expression_attribute_values,
            "ReturnValues": "ALL_NEW",
        }
        if expression_attribute_names:
            kwargs["ExpressionAttributeNames"] = expression_attribute_names
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        try:
            response = self._get_table(table).update_item(**kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return None
            raise
        attrs: dict[str, Any] | None = response.get("Attributes")
        return attrs

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
    ) -> list[dict[str, Any]]:
        """Return every item under one GSI partition, following pagination."""
        kwargs: dict[str, Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": Key(partition_key_name).eq(partition_key_value),
        }
        items: list[dict[str, Any]] = []
        while True:
            response = self._get_table(table).query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def get_profile(self, user_id: str) -> dict[str, Any] | None:
        """Contact profile (email, full_name) of a customer or provider."""
        return self.get_item(PROFILES_TABLE, {"user_id": user_id}, consistent_read=False)


@lru_cache(maxsize=1)
def get_dynamodb_service() -> DynamoDBService:
    """Shared service, reused across warm Lambda invocations."""
    return DynamoDBService()


def reset_dynamodb_service() -> None:
    """Drop the shared service so the next call builds clients inside mock_aws."""
    get_dynamodb_service.cache_clear()
