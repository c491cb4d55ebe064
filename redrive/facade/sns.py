from typing import Dict, Any

from botocore.exceptions import BotoCoreError, ClientError

from redrive.errors import RemoteServiceError
from redrive.facade.sqs import error_reason


class SNS:
    def __init__(self, sns_client):
        self.sns = sns_client

    def publish(self, topic_arn: str, message: str, attributes: Dict[str, Dict[str, Any]]) -> str:
        try:
            response = self.sns.publish(TopicArn=topic_arn, Message=message, MessageAttributes=attributes)
        except (ClientError, BotoCoreError) as ex:
            raise RemoteServiceError('Publish', topic_arn, error_reason(ex)) from ex
        return response.get('MessageId') or ''
