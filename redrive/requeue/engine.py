from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple, Union

from redrive.errors import RemoteServiceError
from redrive.facade.sqs import SQS
from redrive.log import RunLog
from redrive.message import Message, Sent, Failed

Outcome = Union[Sent, Failed]


class RequeueEngine:
    """
    Republishes messages to their destination queue and classifies each result.

    Each message is attempted exactly once. A failure is recorded against that message only,
    the rest of the batch carries on. Nothing here touches the source queue.
    """

    def __init__(self, sqs: SQS, log: RunLog, max_workers: int = 1):
        self.sqs = sqs
        self.log = log
        self.max_workers = max_workers

    def republish_batch(self, messages: List[Message], destination: str,
                        delay_seconds: int) -> List[Tuple[Message, Outcome]]:
        def republish(message: Message) -> Tuple[Message, Outcome]:
            return message, self.republish(message, destination, delay_seconds)

        if self.max_workers <= 1 or len(messages) <= 1:
            return [republish(message) for message in messages]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(messages))) as executor:
            return list(executor.map(republish, messages))

    def republish(self, message: Message, destination: str, delay_seconds: int) -> Outcome:
        try:
            new_id = self.sqs.send(destination, message.body, message.attributes, delay_seconds)
        except RemoteServiceError as ex:
            self.log.error(f'Failed to send message {message.id} to {destination}: {ex.reason}')
            return Failed(reason=ex.reason)
        if not new_id:
            reason = 'No message id returned'
            self.log.error(f'Failed to send message {message.id} to {destination}: {reason}')
            return Failed(reason=reason)
        self.log.info(f'Successfully sent message {message.id} to destination queue (new ID: {new_id})')
        return Sent(new_id=new_id)
