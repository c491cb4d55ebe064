import os
import secrets
from argparse import ArgumentParser
from typing import Mapping, Optional, List

import boto3
from botocore.exceptions import BotoCoreError

from redrive.errors import ConfigurationError, RemoteServiceError
from redrive.facade.sns import SNS
from redrive.handler import create_client
from redrive.log import RunLog
from redrive.publisher import Publisher, parse_key_values, parse_attribute, load_document, compose
from redrive.requeue.config import default_region


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description='Publish a JSON message to an SNS topic')
    parser.add_argument('-t', '--topic-arn', help='SNS Topic ARN (required)')
    parser.add_argument('-i', '--id', dest='sender_id', help='Sender identifier (default: random ID)')
    parser.add_argument('-r', '--region', help='AWS Region (default: AWS_REGION or us-east-1)')
    parser.add_argument('-p', '--profile', help='AWS profile name')
    parser.add_argument('-e', '--endpoint-url', help='SNS endpoint URL')
    parser.add_argument('-k', '--key-value', action='append', default=[],
                        help='Add a KEY=VALUE pair to the message (can be used multiple times)')
    parser.add_argument('-m', '--message', help='Provide entire message as a JSON string')
    parser.add_argument('-f', '--file', help='Load message from JSON file')
    parser.add_argument('-a', '--attribute', action='append', default=[],
                        help='Add a message attribute NAME=VALUE:TYPE (can be used multiple times)')
    return parser


def main(argv: Optional[List[str]] = None, session_factory=boto3.session.Session, print=print,
         environ: Mapping[str, str] = os.environ) -> int:
    args = build_parser().parse_args(argv)
    sender_id = args.sender_id or f'sender-{secrets.token_hex(4)}'
    region = args.region or default_region(environ)
    try:
        if not args.topic_arn:
            raise ConfigurationError('Topic ARN is required. Use --topic-arn option.')
        data = parse_key_values(args.key_value)
        if args.message is not None:
            data = load_document(args.message, '--message')
        if args.file is not None:
            try:
                with open(args.file, 'r') as fp:
                    data = load_document(fp.read(), args.file)
            except OSError as ex:
                raise ConfigurationError(f'Error reading file: {ex}')
        if len(data) == 0:
            raise ConfigurationError('Message is empty. Add content with --key-value, --message, or --file options.')
        attributes = dict(parse_attribute(spec) for spec in args.attribute)
    except ConfigurationError as ex:
        print(f'Error: {ex}')
        return 1

    log = RunLog(f'Sender: {sender_id}', print=print)
    log.info('Starting SNS message sender')
    log.info(f'Topic ARN: {args.topic_arn}')
    log.info(f'Region: {region}')
    log.info(f'Sender ID: {sender_id}')
    try:
        sns_client = create_client(
            'sns', region, profile=args.profile, endpoint_url=args.endpoint_url, session_factory=session_factory
        )
        log.info(f'Connected to SNS in region {region}')
        publisher = Publisher(sns=SNS(sns_client=sns_client), log=log)
        publisher.publish(args.topic_arn, compose(data, sender_id), attributes)
    except (BotoCoreError, RemoteServiceError) as ex:
        log.error(f'SNS service error: {ex}')
        return 1
    log.info('SNS sender completed')
    return 0
