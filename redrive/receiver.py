import json
from typing import Callable, Tuple, Any, List, Optional

from redrive.errors import RemoteServiceError
from redrive.facade.sqs import SQS
from redrive.log import RunLog
from redrive.message import Message
from redrive.requeue.shutdown import ShutdownController

PREVIEW_LENGTH = 200
EMPTY_POLL_PAUSE = 1

SOURCE_SQS = 'Direct SQS'
SOURCE_SNS = 'SNS Notification'
SOURCE_SNS_JSON = 'SNS+JSON'


def unwrap(body: str, log: Optional[RunLog] = None) -> Tuple[str, Any]:
    """Return where a message came from and its content, unwrapping SNS notifications"""
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        if log is not None:
            log.info('Message is not in JSON format')
        return SOURCE_SQS, body
    if not isinstance(parsed, dict) or parsed.get('Type') != 'Notification':
        return SOURCE_SQS, body
    if log is not None:
        log.info('Detected SNS message format')
    inner = parsed.get('Message', '')
    try:
        return SOURCE_SNS_JSON, json.loads(inner)
    except (json.JSONDecodeError, TypeError):
        return SOURCE_SNS, inner


def describe(message: Message, receiver_id: str, log: Optional[RunLog] = None) -> List[str]:
    source, content = unwrap(message.body, log)
    lines = [
        '',
        '==== Message Details =====',
        f'Receiver: {receiver_id}',
        f'Message ID: {message.id}',
        f'Message Source: {source}',
    ]
    if len(message.body) > PREVIEW_LENGTH:
        lines.append(f'Raw Message Body (truncated): {message.body[:PREVIEW_LENGTH]}...')
    else:
        lines.append(f'Raw Message Body: {message.body}')
    lines.append('')
    lines.append('Processed Message Content:')
    lines.append(repr(content))
    if message.system_attributes:
        lines.append('')
        lines.append('Message Attributes:')
        lines.extend(f'  {name}: {value}' for name, value in message.system_attributes.items())
    if message.attributes:
        lines.append('')
        lines.append('Custom Message Attributes:')
        for name, attribute in message.attributes.items():
            value = attribute.get('StringValue') or attribute.get('BinaryValue') or attribute.get('DataType')
            lines.append(f'  {name}: {value}')
    lines.append('========================')
    return lines


class Receiver:
    def __init__(self, sqs: SQS, shutdown: ShutdownController, log: RunLog, print: Callable = print):
        self.sqs = sqs
        self.shutdown = shutdown
        self.log = log
        self.print = print

    def poll_once(self, queue_url: str, receiver_id: str, max_messages: int, wait_time: int,
                  visibility_timeout: Optional[int]) -> int:
        messages = self.sqs.receive(
            queue_url, max_messages, wait_time, with_attributes=True, visibility_timeout=visibility_timeout
        )
        if len(messages) == 0:
            self.log.info('No messages received')
            return 0
        self.log.info(f'Received {len(messages)} message(s)')
        for message in messages:
            self.log.info(f'Processing message ID: {message.id}')
            for line in describe(message, receiver_id, self.log):
                self.print(line)
            self.sqs.delete(queue_url, message.receipt_handle)
            self.log.info(f'Deleted message ID: {message.id}')
        return len(messages)

    def run(self, queue_url: str, receiver_id: str, max_messages=10, wait_time=20, visibility_timeout=30,
            retry_pause=5) -> int:
        total = 0
        self.log.info('Starting message polling loop')
        while not self.shutdown.requested:
            try:
                count = self.poll_once(queue_url, receiver_id, max_messages, wait_time, visibility_timeout)
                total += count
                if count == 0 and wait_time == 0:
                    self.shutdown.pause(EMPTY_POLL_PAUSE)
            except RemoteServiceError as ex:
                self.log.error(f'SQS service error: {ex}')
                self.shutdown.pause(retry_pause)
            except Exception as ex:
                self.log.exception('Unexpected error', ex)
                self.shutdown.pause(retry_pause)
        self.log.info('SQS receiver shutdown complete')
        return total
