import os
from argparse import ArgumentParser
from typing import Dict, Any, Mapping, Optional, List

import boto3
from botocore.exceptions import BotoCoreError

from redrive.errors import ConfigurationError, RemoteServiceError
from redrive.facade.sqs import SQS
from redrive.handler import create_client
from redrive.log import RunLog
from redrive.requeue.config import RunConfig, load_config_file, default_region, default_run_id
from redrive.requeue.runner import RequeueRun
from redrive.requeue.shutdown import ShutdownController


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description='Move messages from a dead letter queue back to their destination queue')
    parser.add_argument('-c', '--config', help='YAML file with option values')
    parser.add_argument('-d', '--dlq-url', dest='source_queue', help='Dead Letter Queue URL (required)')
    parser.add_argument('-q', '--destination-url', dest='destination_queue',
                        help='Destination Queue URL (required)')
    parser.add_argument('-b', '--batch-size', dest='batch_size',
                        help='Number of messages to process in each batch (default: 10, max: 10)')
    parser.add_argument('-s', '--delay-seconds', dest='delay_seconds',
                        help='Delay in seconds before messages become visible in destination (default: 0)')
    parser.add_argument('-m', '--max-messages', dest='budget',
                        help='Maximum number of messages to process (default: all available)')
    parser.add_argument('-k', '--keep-in-dlq', action='store_true',
                        help='Keep messages in DLQ after sending (default: delete after successful send)')
    parser.add_argument('-w', '--wait-time', dest='wait_seconds', help='Long polling wait time in seconds (default: 10)')
    parser.add_argument('-r', '--region', help='AWS Region (default: AWS_REGION or us-east-1)')
    parser.add_argument('-p', '--profile', help='AWS profile name')
    parser.add_argument('-e', '--endpoint-url', dest='endpoint_url', help='SQS endpoint URL')
    parser.add_argument('-i', '--id', dest='run_id', help='Processor identifier (default: random ID)')
    parser.add_argument('--workers', dest='max_workers', help='Concurrent sends per batch (default: batch size)')
    parser.add_argument('--idle-timeout', dest='idle_timeout',
                        help='Seconds without messages before giving up when no maximum is set (0 disables)')
    return parser


def options_from(argv: Optional[List[str]], environ: Mapping[str, str]) -> Dict[str, Any]:
    args = build_parser().parse_args(argv)
    options: Dict[str, Any] = {'region': default_region(environ)}
    if args.config is not None:
        options.update(load_config_file(args.config))
    for name in ('source_queue', 'destination_queue', 'batch_size', 'delay_seconds', 'budget', 'wait_seconds',
                 'region', 'profile', 'endpoint_url', 'run_id', 'max_workers', 'idle_timeout'):
        value = getattr(args, name)
        if value is not None:
            options[name] = value
    if args.keep_in_dlq:
        options['delete_after_send'] = False
    if not options.get('run_id'):
        options['run_id'] = default_run_id()
    return options


def main(argv: Optional[List[str]] = None, session_factory=boto3.session.Session, print=print,
         environ: Mapping[str, str] = os.environ, shutdown: Optional[ShutdownController] = None,
         install_signals=True) -> int:
    try:
        config = RunConfig.from_options(options_from(argv, environ))
    except ConfigurationError as ex:
        print(f'Error: {ex}')
        return 1

    log = RunLog(config.run_id, print=print)
    log.info('Starting DLQ retry processor')
    for line in config.describe():
        log.info(line)

    try:
        sqs_client = create_client(
            'sqs', config.region, profile=config.profile, endpoint_url=config.endpoint_url,
            session_factory=session_factory
        )
        sqs = SQS(sqs_client=sqs_client)
        depth = sqs.approximate_depth(config.source_queue)
    except (BotoCoreError, RemoteServiceError) as ex:
        log.error(f'Initialization error: {ex}')
        return 1
    log.info(f'Connected to SQS in region {config.region}')
    log.info(f'Approximately {depth} messages in DLQ')

    if shutdown is None:
        shutdown = ShutdownController(log=log)
    restore = shutdown.install() if install_signals else None
    try:
        result = RequeueRun(config=config, sqs=sqs, shutdown=shutdown, log=log).run()
    finally:
        if restore is not None:
            restore()
    log.info(f'Stopped because: {result.reason}')
    log.info('DLQ retry processor shutdown complete')
    return 0
