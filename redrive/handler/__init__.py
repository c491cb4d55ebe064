from typing import Optional

import boto3
import botocore.config


def client_config(read_timeout=30) -> botocore.config.Config:
    """Read timeout must stay above the longest long poll wait"""
    return botocore.config.Config(
        max_pool_connections=10, connect_timeout=10, read_timeout=read_timeout,
        retries={'max_attempts': 3, 'mode': 'standard'}
    )


def create_client(name: str, region: str, profile: Optional[str] = None, endpoint_url: Optional[str] = None,
                  session_factory=boto3.session.Session):
    session = session_factory(region_name=region, profile_name=profile)
    return session.client(name, config=client_config(), endpoint_url=endpoint_url)
