"""Helpers for multi-item DynamoDB writes."""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

_REASONS_IN_MESSAGE = re.compile(r'\[([^\]]*)\]')


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Items and keys stay plain Python values: the client behind a boto3
# resource serializes them to AttributeValue form itself
def put_op(table_name: str, item: Dict[str, Any], condition: str) -> Dict[str, Any]:
    return {
        'Put': {
            'TableName': table_name,
            'Item': item,
            'ConditionExpression': condition,
        }
    }


def delete_op(table_name: str, key: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'Delete': {
            'TableName': table_name,
            'Key': key,
        }
    }


def cancellation_codes(error: ClientError) -> List[Optional[str]]:
    """
    Per-operation failure codes of a cancelled transaction.
    
    Read from ``CancellationReasons`` when the service returns them,
    otherwise from the bracketed list in the error message.
    """
    reasons = error.response.get('CancellationReasons')
    if reasons:
        return [reason.get('Code') for reason in reasons]
    
    match = _REASONS_IN_MESSAGE.search(error.response['Error'].get('Message', ''))
    if not match:
        return []
    return [code.strip() for code in match.group(1).split(',')]


def transact_write(
    client: Any,
    operations: List[Dict[str, Any]],
    conflicts: Sequence[Optional[Exception]],
) -> None:
    """
    Run operations in one transaction, translating failed conditions.
    
    Args:
        client: Client of the connection's boto3 DynamoDB resource
        operations: TransactItems entries with plain Python values
        conflicts: Exception to raise when the matching operation's
            condition fails, or None to re-raise the service error
    """
    try:
        client.transact_write_items(TransactItems=operations)
    except ClientError as e:
        if e.response['Error']['Code'] == 'TransactionCanceledException':
            for index, code in enumerate(cancellation_codes(e)):
                if code == 'ConditionalCheckFailed' and index < len(conflicts):
                    conflict = conflicts[index]
                    if conflict is not None:
                        raise conflict from e
        logger.error(f"Transaction of {len(operations)} operations failed: {e}")
        raise
