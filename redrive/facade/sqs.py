from typing import List, Dict, NamedTuple, Optional, Tuple, Any

from botocore.exceptions import BotoCoreError, ClientError

from redrive.errors import RemoteServiceError
from redrive.message import Message

MAX_BATCH = 10
MAX_WAIT_SECONDS = 20

# Reserved by SQS, returned empty on receive and rejected on send when present
RESERVED_ATTRIBUTE_KEYS = ('StringListValues', 'BinaryListValues')


class DeleteResult(NamedTuple):
    successful: List[str]
    failed: List[Tuple[str, str]]


def error_reason(ex: Exception) -> str:
    if isinstance(ex, ClientError):
        error = ex.response.get('Error', {})
        code = error.get('Code', 'Unknown')
        return f'{code}: {error.get("Message", str(ex))}'
    return str(ex)


def outbound_attributes(attributes: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {
        name: {key: value for key, value in attribute.items() if key not in RESERVED_ATTRIBUTE_KEYS or value}
        for name, attribute in attributes.items()
    }


class SQS:
    def __init__(self, sqs_client):
        self.sqs = sqs_client

    def receive(self, queue_url: str, max_count: int, wait_seconds: int, with_attributes=True,
                visibility_timeout: Optional[int] = None) -> List[Message]:
        kwargs = {
            'QueueUrl': queue_url,
            'MaxNumberOfMessages': max(1, min(max_count, MAX_BATCH)),
            'WaitTimeSeconds': max(0, min(wait_seconds, MAX_WAIT_SECONDS)),
        }
        if with_attributes:
            kwargs['AttributeNames'] = ['All']
            kwargs['MessageAttributeNames'] = ['All']
        if visibility_timeout is not None:
            kwargs['VisibilityTimeout'] = visibility_timeout
        try:
            response = self.sqs.receive_message(**kwargs)
        except (ClientError, BotoCoreError) as ex:
            raise RemoteServiceError('ReceiveMessage', queue_url, error_reason(ex)) from ex
        return [
            Message(
                id=message['MessageId'],
                body=message.get('Body', ''),
                attributes=message.get('MessageAttributes', {}),
                receipt_handle=message['ReceiptHandle'],
                system_attributes=message.get('Attributes', {}),
            )
            for message in response.get('Messages', [])
        ]

    def send(self, queue_url: str, body: str, attributes: Dict[str, Dict[str, Any]], delay_seconds=0) -> str:
        kwargs = {
            'QueueUrl': queue_url,
            'MessageBody': body,
            'DelaySeconds': delay_seconds,
        }
        if attributes:
            kwargs['MessageAttributes'] = outbound_attributes(attributes)
        try:
            response = self.sqs.send_message(**kwargs)
        except (ClientError, BotoCoreError) as ex:
            raise RemoteServiceError('SendMessage', queue_url, error_reason(ex)) from ex
        return response.get('MessageId') or ''

    def delete_batch(self, queue_url: str, entries: List[Tuple[str, str]]) -> DeleteResult:
        """Delete up to ten (id, receipt handle) entries in one call"""
        if len(entries) > MAX_BATCH:
            raise ValueError(f'Cannot delete {len(entries)} messages in one batch, limit is {MAX_BATCH}')
        try:
            response = self.sqs.delete_message_batch(
                QueueUrl=queue_url,
                Entries=[{'Id': ident, 'ReceiptHandle': handle} for ident, handle in entries]
            )
        except (ClientError, BotoCoreError) as ex:
            raise RemoteServiceError('DeleteMessageBatch', queue_url, error_reason(ex)) from ex
        return DeleteResult(
            successful=[entry['Id'] for entry in response.get('Successful', [])],
            failed=[
                (entry['Id'], f'{entry.get("Code", "Unknown")}: {entry.get("Message", "")}')
                for entry in response.get('Failed', [])
            ],
        )

    def delete(self, queue_url: str, receipt_handle: str):
        try:
            self.sqs.delete_message(QueueUrl=queue_url, ReceiptHandle=receipt_handle)
        except (ClientError, BotoCoreError) as ex:
            raise RemoteServiceError('DeleteMessage', queue_url, error_reason(ex)) from ex

    def approximate_depth(self, queue_url: str) -> int:
        attribute_names = [
            'ApproximateNumberOfMessages',
            'ApproximateNumberOfMessagesNotVisible',
            'ApproximateNumberOfMessagesDelayed'
        ]
        try:
            response = self.sqs.get_queue_attributes(QueueUrl=queue_url, AttributeNames=attribute_names)
        except (ClientError, BotoCoreError) as ex:
            raise RemoteServiceError('GetQueueAttributes', queue_url, error_reason(ex)) from ex
        total = 0
        if 'Attributes' in response:
            for name in attribute_names:
                total += int(response['Attributes'].get(name, 0))
        return total
