import json
import re
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, List, Tuple, Callable

from redrive.errors import ConfigurationError
from redrive.facade.sns import SNS
from redrive.log import RunLog

PREVIEW_LENGTH = 200

INTEGER = re.compile(r'^-?\d+$')
DECIMAL = re.compile(r'^-?\d+\.\d+$')


def coerce_value(value: str):
    lowered = value.lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    if INTEGER.match(value):
        return int(value)
    if DECIMAL.match(value):
        return float(value)
    return value


def parse_key_values(pairs: List[str]) -> Dict[str, Any]:
    data = {}
    for pair in pairs:
        key, sep, value = pair.partition('=')
        if not key or not sep:
            raise ConfigurationError(f'Expected KEY=VALUE, got [{pair}]')
        data[key] = coerce_value(value)
    return data


def parse_attribute(spec: str) -> Tuple[str, Dict[str, str]]:
    name, sep, value_type = spec.partition('=')
    value, colon, data_type = value_type.rpartition(':')
    if not name or not sep or not colon or not data_type:
        raise ConfigurationError(f'Expected NAME=VALUE:TYPE, got [{spec}]')
    return name, {
        'DataType': data_type.capitalize(),
        'StringValue': value,
    }


def load_document(text: str, origin: str) -> Dict[str, Any]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as ex:
        raise ConfigurationError(f'Error parsing JSON from {origin}: {ex}')
    if not isinstance(document, dict):
        raise ConfigurationError(f'Message from {origin} must be a JSON object')
    return document


def compose(data: Dict[str, Any], sender_id: str,
            now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
            new_id: Callable[[], str] = lambda: str(uuid.uuid4())) -> Dict[str, Any]:
    """Wrap the payload in a metadata envelope unless it already carries one"""
    if 'metadata' in data:
        return data
    return {
        'metadata': {
            'sender_id': sender_id,
            'timestamp': now().strftime('%Y-%m-%dT%H:%M:%SZ'),
            'message_id': new_id(),
        },
        'data': data,
    }


class Publisher:
    def __init__(self, sns: SNS, log: RunLog):
        self.sns = sns
        self.log = log

    def publish(self, topic_arn: str, document: Dict[str, Any], attributes: Dict[str, Dict[str, str]]) -> str:
        message = json.dumps(document)
        self.log.info(f'Prepared JSON message ({len(message.encode("utf-8"))} bytes)')
        if len(message) > PREVIEW_LENGTH:
            self.log.info(f'Message preview: {message[:PREVIEW_LENGTH]}...')
        else:
            self.log.info(f'Message: {message}')
        attributes = {
            **attributes,
            'content-type': {
                'DataType': 'String',
                'StringValue': 'application/json',
            }
        }
        message_id = self.sns.publish(topic_arn, message, attributes)
        self.log.info('Message published successfully')
        self.log.info(f'Message ID: {message_id}')
        return message_id
