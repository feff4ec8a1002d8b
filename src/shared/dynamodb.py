"""DynamoDB utilities and helper functions."""

import boto3
from typing import Any, Dict, List, Optional
from decimal import Decimal
from botocore.exceptions import ClientError
import logging

from .config import Settings
from .exceptions import ConflictError, PersistenceError

logger = logging.getLogger(__name__)


def build_resource(settings: Settings):
    """
    Create the boto3 DynamoDB resource shared by every table client.

    Args:
        settings: Runtime settings

    Returns:
        boto3 DynamoDB service resource
    """
    kwargs = {}
    if settings.aws_region:
        kwargs['region_name'] = settings.aws_region

    # Support for LocalStack
    if settings.use_localstack and settings.localstack_endpoint:
        kwargs['endpoint_url'] = settings.localstack_endpoint

    return boto3.resource('dynamodb', **kwargs)


def _is_condition_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


class DynamoDBClient:
    """DynamoDB client wrapper with common operations."""

    def __init__(self, table_name: str, resource=None):
        """
        Initialize DynamoDB client.

        Args:
            table_name: Name of the DynamoDB table
            resource: Shared boto3 DynamoDB resource; a default one is created if omitted
        """
        self.table_name = table_name
        self.dynamodb = resource or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)

    def put_item(
        self,
        item: Dict[str, Any],
        condition_expression: Optional[Any] = None
    ) -> Dict[str, Any]:
        """
        Put an item in the table.

        Args:
            item: Item to put
            condition_expression: Optional condition the write depends on

        Returns:
            The item that was put

        Raises:
            ConflictError: If the condition does not hold
            PersistenceError: If the operation fails
        """
        try:
            # Convert floats to Decimal for DynamoDB
            item = self._python_to_dynamodb(item)
            kwargs = {'Item': item}
            if condition_expression is not None:
                kwargs['ConditionExpression'] = condition_expression

            self.table.put_item(**kwargs)
            return self._dynamodb_to_python(item)
        except ClientError as e:
            if _is_condition_failure(e):
                raise ConflictError(f"Conditional put failed on {self.table_name}")
            logger.error(f"Error putting item into {self.table_name}: {e}")
            raise PersistenceError(f"Failed to put item: {str(e)}")

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Get an item from the table.

        Args:
            key: Primary key of the item

        Returns:
            The item if found, None otherwise

        Raises:
            PersistenceError: If the operation fails
        """
        try:
            response = self.table.get_item(Key=key, ConsistentRead=True)
            item = response.get('Item')
            if item:
                return self._dynamodb_to_python(item)
            return None
        except ClientError as e:
            logger.error(f"Error getting item from {self.table_name}: {e}")
            raise PersistenceError(f"Failed to get item: {str(e)}")

    def update_item(
        self,
        key: Dict[str, Any],
        update_expression: str,
        expression_values: Dict[str, Any],
        expression_names: Optional[Dict[str, str]] = None,
        condition_expression: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Update an item in the table.

        Args:
            key: Primary key of the item
            update_expression: Update expression
            expression_values: Expression attribute values
            expression_names: Optional expression attribute names
            condition_expression: Optional condition the update depends on

        Returns:
            Updated item

        Raises:
            ConflictError: If the condition does not hold
            PersistenceError: If the operation fails
        """
        try:
            expression_values = self._python_to_dynamodb(expression_values)

            kwargs = {
                'Key': key,
                'UpdateExpression': update_expression,
                'ExpressionAttributeValues': expression_values,
                'ReturnValues': 'ALL_NEW'
            }

            if expression_names:
                kwargs['ExpressionAttributeNames'] = expression_names
            if condition_expression:
                kwargs['ConditionExpression'] = condition_expression

            response = self.table.update_item(**kwargs)
            return self._dynamodb_to_python(response['Attributes'])
        except ClientError as e:
            if _is_condition_failure(e):
                raise ConflictError(f"Conditional update failed on {self.table_name}")
            logger.error(f"Error updating item in {self.table_name}: {e}")
            raise PersistenceError(f"Failed to update item: {str(e)}")

    def set_fields(
        self,
        key: Dict[str, Any],
        fields: Dict[str, Any],
        condition_expression: Optional[str] = None,
        condition_values: Optional[Dict[str, Any]] = None,
        condition_names: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Update plain attributes with a ``SET`` expression built from ``fields``.

        Every field is addressed as ``#field`` / ``:field``, so a condition
        may refer to ``#status`` whenever ``status`` is being set. Condition
        values must use other placeholders (e.g. ``:expected_status``).

        Args:
            key: Primary key of the item
            fields: Attribute values to set
            condition_expression: Optional condition the update depends on
            condition_values: Values referenced by the condition
            condition_names: Extra attribute names referenced by the condition

        Returns:
            Updated item
        """
        update_parts = []
        expr_values = dict(condition_values or {})
        expr_names = dict(condition_names or {})

        for field, value in fields.items():
            update_parts.append(f"#{field} = :{field}")
            expr_names[f'#{field}'] = field
            expr_values[f':{field}'] = value

        return self.update_item(
            key=key,
            update_expression="SET " + ", ".join(update_parts),
            expression_values=expr_values,
            expression_names=expr_names,
            condition_expression=condition_expression
        )

    def delete_item(self, key: Dict[str, Any]) -> None:
        """
        Delete an item from the table.

        Args:
            key: Primary key of the item

        Raises:
            PersistenceError: If the operation fails
        """
        try:
            self.table.delete_item(Key=key)
        except ClientError as e:
            logger.error(f"Error deleting item from {self.table_name}: {e}")
            raise PersistenceError(f"Failed to delete item: {str(e)}")

    def query(
        self,
        key_condition_expression: Any,
        filter_expression: Optional[Any] = None,
        index_name: Optional[str] = None,
        limit: Optional[int] = None,
        scan_forward: bool = True,
        exclusive_start_key: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Query items from the table.

        Args:
            key_condition_expression: Key condition expression
            filter_expression: Optional filter expression
            index_name: Optional index name
            limit: Optional limit
            scan_forward: Sort order (default: True for ascending)
            exclusive_start_key: Optional pagination key

        Returns:
            Dictionary with items and optional LastEvaluatedKey

        Raises:
            PersistenceError: If the operation fails
        """
        try:
            kwargs = {
                'KeyConditionExpression': key_condition_expression,
                'ScanIndexForward': scan_forward
            }

            if filter_expression is not None:
                kwargs['FilterExpression'] = filter_expression
            if index_name:
                kwargs['IndexName'] = index_name
            if limit:
                kwargs['Limit'] = limit
            if exclusive_start_key:
                kwargs['ExclusiveStartKey'] = exclusive_start_key

            response = self.table.query(**kwargs)

            return {
                'items': [self._dynamodb_to_python(item) for item in response.get('Items', [])],
                'last_evaluated_key': response.get('LastEvaluatedKey')
            }
        except ClientError as e:
            logger.error(f"Error querying {self.table_name}: {e}")
            raise PersistenceError(f"Failed to query items: {str(e)}")

    def query_all(
        self,
        key_condition_expression: Any,
        index_name: Optional[str] = None,
        filter_expression: Optional[Any] = None
    ) -> List[Dict[str, Any]]:
        """Query every page for a key condition."""
        items = []
        last_key = None

        while True:
            result = self.query(
                key_condition_expression=key_condition_expression,
                filter_expression=filter_expression,
                index_name=index_name,
                exclusive_start_key=last_key
            )
            items.extend(result['items'])
            last_key = result.get('last_evaluated_key')

            if not last_key:
                break

        return items

    def scan(self, filter_expression: Optional[Any] = None) -> List[Dict[str, Any]]:
        """
        Scan the whole table.

        Only meant for tooling and small tables; services query by key.

        Raises:
            PersistenceError: If the operation fails
        """
        items = []
        kwargs = {}
        if filter_expression is not None:
            kwargs['FilterExpression'] = filter_expression

        try:
            while True:
                response = self.table.scan(**kwargs)
                items.extend(self._dynamodb_to_python(item) for item in response.get('Items', []))

                if 'LastEvaluatedKey' not in response:
                    break
                kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']
        except ClientError as e:
            logger.error(f"Error scanning {self.table_name}: {e}")
            raise PersistenceError(f"Failed to scan items: {str(e)}")

        return items

    @staticmethod
    def _python_to_dynamodb(obj: Any) -> Any:
        """Convert Python objects to DynamoDB compatible format."""
        if isinstance(obj, dict):
            return {k: DynamoDBClient._python_to_dynamodb(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [DynamoDBClient._python_to_dynamodb(item) for item in obj]
        elif isinstance(obj, float):
            return Decimal(str(obj))
        return obj

    @staticmethod
    def _dynamodb_to_python(obj: Any) -> Any:
        """Convert DynamoDB objects to Python format."""
        if isinstance(obj, dict):
            return {k: DynamoDBClient._dynamodb_to_python(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [DynamoDBClient._dynamodb_to_python(item) for item in obj]
        elif isinstance(obj, Decimal):
            if obj % 1 == 0:
                return int(obj)
            return float(obj)
        return obj
