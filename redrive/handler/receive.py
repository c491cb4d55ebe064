import os
from argparse import ArgumentParser
from typing import Mapping, Optional, List

import boto3
from botocore.exceptions import BotoCoreError

from redrive.errors import ConfigurationError
from redrive.facade.sqs import SQS, MAX_BATCH, MAX_WAIT_SECONDS
from redrive.handler import create_client
from redrive.log import RunLog
from redrive.receiver import Receiver
from redrive.requeue.config import default_region, as_int
from redrive.requeue.shutdown import ShutdownController


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description='Print and delete messages from an SQS queue')
    parser.add_argument('-q', '--queue-url', help='SQS Queue URL (required)')
    parser.add_argument('-i', '--id', dest='receiver_id', help='Receiver identifier (default: queue name)')
    parser.add_argument('-r', '--region', help='AWS Region (default: AWS_REGION or us-east-1)')
    parser.add_argument('-p', '--profile', help='AWS profile name')
    parser.add_argument('-e', '--endpoint-url', help='SQS endpoint URL')
    parser.add_argument('-m', '--max-messages', default='10', help='Maximum messages per receive (default: 10)')
    parser.add_argument('-w', '--wait-time', default='20', help='Long polling wait time in seconds (default: 20)')
    parser.add_argument('-t', '--visibility-timeout', default='30',
                        help='Message visibility timeout in seconds (default: 30)')
    return parser


def main(argv: Optional[List[str]] = None, session_factory=boto3.session.Session, print=print,
         environ: Mapping[str, str] = os.environ, shutdown: Optional[ShutdownController] = None,
         install_signals=True) -> int:
    args = build_parser().parse_args(argv)
    try:
        if not args.queue_url:
            raise ConfigurationError('Queue URL is required. Use --queue-url option.')
        max_messages = as_int('max_messages', args.max_messages)
        wait_time = as_int('wait_time', args.wait_time)
        visibility_timeout = as_int('visibility_timeout', args.visibility_timeout)
        if not 1 <= max_messages <= MAX_BATCH:
            raise ConfigurationError(f'max_messages must be between 1 and {MAX_BATCH}')
        if not 0 <= wait_time <= MAX_WAIT_SECONDS:
            raise ConfigurationError(f'wait_time must be between 0 and {MAX_WAIT_SECONDS}')
        if visibility_timeout < 0:
            raise ConfigurationError('visibility_timeout cannot be negative')
    except ConfigurationError as ex:
        print(f'Error: {ex}')
        return 1
    receiver_id = args.receiver_id or args.queue_url.rstrip('/').split('/')[-1]
    region = args.region or default_region(environ)

    log = RunLog(f'Receiver: {receiver_id}', print=print)
    log.info('Starting SQS message receiver')
    log.info(f'Queue URL: {args.queue_url}')
    log.info(f'Region: {region}')
    log.info(f'Receiver ID: {receiver_id}')
    log.info(f'Max messages per request: {max_messages}')
    log.info(f'Wait time: {wait_time} seconds')
    log.info(f'Visibility timeout: {visibility_timeout} seconds')
    try:
        sqs_client = create_client(
            'sqs', region, profile=args.profile, endpoint_url=args.endpoint_url, session_factory=session_factory
        )
    except BotoCoreError as ex:
        log.error(f'Initialization error: {ex}')
        return 1
    log.info(f'Connected to SQS in region {region}')

    if shutdown is None:
        shutdown = ShutdownController(log=log)
    restore = shutdown.install() if install_signals else None
    try:
        receiver = Receiver(sqs=SQS(sqs_client=sqs_client), shutdown=shutdown, log=log, print=print)
        receiver.run(args.queue_url, receiver_id, max_messages, wait_time, visibility_timeout)
    finally:
        if restore is not None:
            restore()
    return 0
