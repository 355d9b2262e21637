"""
Shared AWS utility functions: credential loading and S3 client creation.
"""

import logging
import os
from typing import Optional

import boto3
from botocore.config import Config

import config


def load_credentials_from_env(env_path: Optional[str] = None) -> tuple[str, str]:
    """
    Load S3 credentials from the .env file and return them as a tuple.

    Args:
        env_path: Optional override path (see config.load_env_file)

    Returns:
        tuple: (aws_access_key_id, aws_secret_access_key)

    Raises:
        ValueError: If credentials are not found
    """
    resolved_path = config.load_env_file(env_path)

    aws_access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
    aws_secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
    if aws_access_key_id and aws_secret_access_key:
        logging.info("S3 credentials loaded from %s", resolved_path)
        return aws_access_key_id, aws_secret_access_key

    raise ValueError(f"AWS credentials not found in {resolved_path}")


def build_client_config(max_pool_connections: int = 10) -> Config:
    """
    Build the botocore client configuration used for S3 calls.

    Args:
        max_pool_connections: HTTP pool size; must cover the copy parallelism

    Returns:
        botocore.config.Config: timeouts and retry policy from config.py
    """
    return Config(
        connect_timeout=config.S3_CONNECT_TIMEOUT,
        read_timeout=config.S3_READ_TIMEOUT,
        retries={"max_attempts": config.S3_MAX_ATTEMPTS, "mode": "standard"},
        max_pool_connections=max(max_pool_connections, 10),
    )


def create_s3_client(
    endpoint_url: Optional[str] = None,
    region: Optional[str] = None,
    max_pool_connections: int = 10,
    aws_access_key_id: Optional[str] = None,
    aws_secret_access_key: Optional[str] = None,
):
    """
    Create a boto3 S3 client for AWS or any S3-compatible endpoint.

    Args:
        endpoint_url: Endpoint override (defaults to config.S3_ENDPOINT_URL)
        region: Region name (defaults to config.S3_REGION)
        max_pool_connections: HTTP pool size for concurrent copies
        aws_access_key_id: Optional access key (loads from env if not provided)
        aws_secret_access_key: Optional secret key (loads from env if not provided)

    Returns:
        boto3.client: Configured S3 client
    """
    if aws_access_key_id is None or aws_secret_access_key is None:
        aws_access_key_id, aws_secret_access_key = load_credentials_from_env()

    client_kwargs = {
        "aws_access_key_id": aws_access_key_id,
        "aws_secret_access_key": aws_secret_access_key,
        "config": build_client_config(max_pool_connections),
    }
    session_token = os.getenv("AWS_SESSION_TOKEN")
    if session_token:
        client_kwargs["aws_session_token"] = session_token

    endpoint_url = endpoint_url or config.S3_ENDPOINT_URL
    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url
    region = region or config.S3_REGION
    if region:
        client_kwargs["region_name"] = region

    return boto3.client("s3", **client_kwargs)
