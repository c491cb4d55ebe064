import json
from datetime import datetime, timezone

import pytest

from redrive.errors import ConfigurationError
from redrive.facade.sns import SNS
from redrive.log import RunLog
from redrive.publisher import Publisher, coerce_value, parse_key_values, parse_attribute, load_document, compose
from tests.stubs.print_stub import PrintStub
from tests.stubs.sns_client_stub import SNSClientStub


class TestCase:

    @pytest.mark.parametrize('value,expected', [
        ('true', True),
        ('FALSE', False),
        ('42', 42),
        ('-7', -7),
        ('3.25', 3.25),
        ('-0.5', -0.5),
        ('1.2.3', '1.2.3'),
        ('12abc', '12abc'),
        ('hello', 'hello'),
        ('', ''),
    ])
    def test_coerce_value(self, value, expected):
        result = coerce_value(value)
        assert result == expected
        assert type(result) is type(expected)

    def test_parse_key_values(self):
        assert parse_key_values(['name=widget', 'count=3', 'url=a=b', 'live=true']) == {
            'name': 'widget', 'count': 3, 'url': 'a=b', 'live': True
        }

    @pytest.mark.parametrize('pair', ['novalue', '=value'])
    def test_parse_key_values_invalid(self, pair):
        with pytest.raises(ConfigurationError):
            parse_key_values([pair])

    def test_parse_attribute(self):
        assert parse_attribute('priority=5:number') == ('priority', {'DataType': 'Number', 'StringValue': '5'})
        assert parse_attribute('time=12:30:string') == ('time', {'DataType': 'String', 'StringValue': '12:30'})

    @pytest.mark.parametrize('text', ['priority', 'priority=5', '=5:Number', 'priority=5:'])
    def test_parse_attribute_invalid(self, text):
        with pytest.raises(ConfigurationError):
            parse_attribute(text)

    def test_load_document(self):
        assert load_document('{"a": 1}', 'test') == {'a': 1}
        with pytest.raises(ConfigurationError):
            load_document('{broken', 'test')
        with pytest.raises(ConfigurationError):
            load_document('[1, 2]', 'test')

    def test_compose(self):
        document = compose(
            {'a': 1}, 'sender-1',
            now=lambda: datetime(2024, 5, 1, 10, 30, 0, tzinfo=timezone.utc), new_id=lambda: 'uuid-1'
        )
        assert document == {
            'metadata': {'sender_id': 'sender-1', 'timestamp': '2024-05-01T10:30:00Z', 'message_id': 'uuid-1'},
            'data': {'a': 1},
        }

    def test_compose_defaults(self):
        metadata = compose({'a': 1}, 'sender-1')['metadata']
        assert metadata['timestamp'].endswith('Z')
        assert datetime.strptime(metadata['timestamp'], '%Y-%m-%dT%H:%M:%SZ')
        assert len(metadata['message_id']) == 36
        assert compose({'a': 1}, 'sender-1')['metadata']['message_id'] != metadata['message_id']

    def test_compose_keeps_existing_metadata(self):
        document = {'metadata': {'sender_id': 'other'}, 'data': {}}
        assert compose(document, 'sender-1') is document

    def test_publish_long_message(self):
        client = SNSClientStub()
        printer = PrintStub()
        publisher = Publisher(sns=SNS(sns_client=client), log=RunLog('Sender: s1', print=printer.print))
        attributes = {'priority': {'DataType': 'Number', 'StringValue': '5'}}
        assert publisher.publish('arn:topic', {'text': 'x' * 300}, attributes) == 'sns-1'
        message = client.messages[0]
        assert json.loads(message['Message']) == {'text': 'x' * 300}
        assert message['MessageAttributes'] == {
            'priority': {'DataType': 'Number', 'StringValue': '5'},
            'content-type': {'DataType': 'String', 'StringValue': 'application/json'},
        }
        assert attributes == {'priority': {'DataType': 'Number', 'StringValue': '5'}}
        printer.assert_has_line(f'Message preview: {message["Message"][:200]}...')
        printer.assert_has_line('Message ID: sns-1')

    def test_publish_short_message(self):
        client = SNSClientStub()
        printer = PrintStub()
        publisher = Publisher(sns=SNS(sns_client=client), log=RunLog('Sender: s1', print=printer.print))
        publisher.publish('arn:topic', {'a': 1}, {})
        printer.assert_has_line('Prepared JSON message (8 bytes)')
        printer.assert_has_line('Message: {"a": 1}')
        assert printer.count('Message preview') == 0
