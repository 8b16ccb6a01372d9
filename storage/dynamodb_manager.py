"""DynamoDB manager for key-value sync state storage."""
import logging
from typing import List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class DynamoDBManager:
    """Key-value store backed by a single DynamoDB table."""

    KEY_ATTRIBUTE = 'key'
    VALUE_ATTRIBUTE = 'value'

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def get(self, key: str) -> Optional[str]:
        """
        Read a single value.

        Args:
            key: Item key

        Returns:
            Stored string value or None if the key is absent
        """
        try:
            response = self.table.get_item(
                Key={self.KEY_ATTRIBUTE: key},
                ConsistentRead=True
            )
        except ClientError as e:
            logger.error(f"Error reading key {key} from DynamoDB: {e}")
            raise

        item = response.get('Item')
        if item is None:
            return None
        return item.get(self.VALUE_ATTRIBUTE)

    def set(self, key: str, value: str) -> None:
        """
        Write a single value, replacing any previous one.

        Args:
            key: Item key
            value: String value to store
        """
        try:
            self.table.put_item(
                Item={self.KEY_ATTRIBUTE: key, self.VALUE_ATTRIBUTE: value}
            )
        except ClientError as e:
            logger.error(f"Error writing key {key} to DynamoDB: {e}")
            raise

    def delete(self, key: str) -> None:
        """
        Delete a single key. Deleting an absent key is a no-op.

        Args:
            key: Item key
        """
        try:
            self.table.delete_item(Key={self.KEY_ATTRIBUTE: key})
        except ClientError as e:
            logger.error(f"Error deleting key {key} from DynamoDB: {e}")
            raise

    def keys(self, prefix: str = '') -> List[str]:
        """
        List stored keys, optionally restricted to a prefix.

        Args:
            prefix: Key prefix filter (empty string lists every key)

        Returns:
            List of matching keys
        """
        scan_kwargs = {'ProjectionExpression': '#k',
                       'ExpressionAttributeNames': {'#k': self.KEY_ATTRIBUTE}}
        if prefix:
            scan_kwargs['FilterExpression'] = Attr(self.KEY_ATTRIBUTE).begins_with(prefix)

        try:
            response = self.table.scan(**scan_kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_kwargs
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        return [item[self.KEY_ATTRIBUTE] for item in items]

    def delete_many(self, keys: List[str]) -> int:
        """
        Delete several keys using the batch writer.

        Args:
            keys: Keys to delete

        Returns:
            Count of deleted keys
        """
        if not keys:
            return 0

        logger.info(f"Deleting {len(keys)} keys from DynamoDB")
        try:
            with self.table.batch_writer() as writer:
                for key in keys:
                    writer.delete_item(Key={self.KEY_ATTRIBUTE: key})
        except ClientError as e:
            logger.error(f"Error deleting keys from DynamoDB: {e}")
            raise

        return len(keys)
