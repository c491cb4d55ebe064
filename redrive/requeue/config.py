import os
import secrets
from typing import NamedTuple, Optional, Dict, Any, Mapping

import yaml

from redrive.errors import ConfigurationError
from redrive.facade.sqs import MAX_BATCH, MAX_WAIT_SECONDS

MAX_DELAY_SECONDS = 900
DEFAULT_REGION = 'us-east-1'


def default_run_id() -> str:
    return f'dlq-retry-{secrets.token_hex(4)}'


def default_region(environ: Mapping[str, str] = os.environ) -> str:
    return environ.get('AWS_REGION') or environ.get('AWS_DEFAULT_REGION') or DEFAULT_REGION


class RunConfig(NamedTuple):
    source_queue: str
    destination_queue: str
    batch_size: int = MAX_BATCH
    delay_seconds: int = 0
    wait_seconds: int = 10
    delete_after_send: bool = True
    budget: Optional[int] = None
    region: str = DEFAULT_REGION
    endpoint_url: Optional[str] = None
    profile: Optional[str] = None
    run_id: str = 'dlq-retry'
    max_workers: Optional[int] = None
    idle_timeout: int = 300
    retry_pause: float = 5
    delete_attempts: int = 3
    poll_slice: int = 2

    @property
    def workers(self) -> int:
        return self.max_workers or self.batch_size

    @staticmethod
    def from_options(options: Dict[str, Any]) -> 'RunConfig':
        """Build a validated configuration from a flat mapping of option values"""
        unknown = set(options.keys()) - set(RunConfig._fields)
        if len(unknown) > 0:
            raise ConfigurationError(f'Unknown configuration keys: {", ".join(sorted(unknown))}')
        for name in ('source_queue', 'destination_queue'):
            if not options.get(name):
                raise ConfigurationError(f'{name} is required')
        values = {key: value for key, value in options.items() if value is not None}
        for name in ('batch_size', 'delay_seconds', 'wait_seconds', 'budget', 'max_workers', 'idle_timeout',
                     'delete_attempts', 'poll_slice'):
            if name in values:
                values[name] = as_int(name, values[name])
        if 'retry_pause' in values:
            values['retry_pause'] = as_number('retry_pause', values['retry_pause'])
        if 'delete_after_send' in values and not isinstance(values['delete_after_send'], bool):
            raise ConfigurationError(f'delete_after_send must be true or false, not {values["delete_after_send"]}')
        config = RunConfig(**values)
        return config._replace(batch_size=max(1, min(config.batch_size, MAX_BATCH))).validate()

    def validate(self) -> 'RunConfig':
        if self.source_queue == self.destination_queue:
            raise ConfigurationError('Source and destination queues must differ')
        if not 1 <= self.batch_size <= MAX_BATCH:
            raise ConfigurationError(f'batch_size must be between 1 and {MAX_BATCH}, not {self.batch_size}')
        if not 0 <= self.delay_seconds <= MAX_DELAY_SECONDS:
            raise ConfigurationError(f'delay_seconds must be between 0 and {MAX_DELAY_SECONDS}')
        if not 0 <= self.wait_seconds <= MAX_WAIT_SECONDS:
            raise ConfigurationError(f'wait_seconds must be between 0 and {MAX_WAIT_SECONDS}')
        if self.budget is not None and self.budget <= 0:
            raise ConfigurationError(f'budget must be positive, not {self.budget}')
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError('max_workers must be at least 1')
        if self.idle_timeout < 0:
            raise ConfigurationError('idle_timeout cannot be negative')
        if self.retry_pause <= 0:
            raise ConfigurationError('retry_pause must be positive')
        if self.delete_attempts < 1:
            raise ConfigurationError('delete_attempts must be at least 1')
        if self.poll_slice < 1:
            raise ConfigurationError('poll_slice must be at least 1')
        return self

    def describe(self):
        yield f'Source DLQ: {self.source_queue}'
        yield f'Destination Queue: {self.destination_queue}'
        yield f'Batch size: {self.batch_size}'
        yield f'Delay seconds: {self.delay_seconds}'
        yield f'Wait seconds: {self.wait_seconds}'
        yield f'Max messages: {self.budget if self.budget is not None else "all available"}'
        yield f'Delete after send: {self.delete_after_send}'
        yield f'Region: {self.region}'
        if self.endpoint_url is not None:
            yield f'Endpoint: {self.endpoint_url}'
        yield f'Workers: {self.workers}'
        yield f'Idle timeout: {self.idle_timeout or "disabled"}'
        yield f'Processor ID: {self.run_id}'


def as_int(name: str, value) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ConfigurationError(f'{name} must be an integer, not {value}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'{name} must be an integer, not {value}')


def as_number(name: str, value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'{name} must be a number, not {value}')


def load_config_file(path: str) -> Dict[str, Any]:
    """Read option values from a YAML mapping, accepting dashed or underscored keys"""
    try:
        with open(path, 'r') as fp:
            data = yaml.load(fp, Loader=yaml.SafeLoader)
    except OSError as ex:
        raise ConfigurationError(f'Cannot read configuration file {path}: {ex}')
    except yaml.YAMLError as ex:
        raise ConfigurationError(f'Cannot parse configuration file {path}: {ex}')
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f'Configuration file {path} must contain a mapping')
    return {str(key).replace('-', '_'): value for key, value in data.items()}
