# imds_server/utils/sts_client_factory.py

"""
Factory for creating boto3 STS clients from a named source profile.
"""
from typing import Optional

import boto3
from botocore.config import Config


def get_sts_client(
    source_profile: str,
    region_name: Optional[str] = None,
    timeout: float = 10,
    max_attempts: int = 2,
):
    session = boto3.Session(profile_name=source_profile, region_name=region_name)
    return session.client(
        "sts",
        config=Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": max_attempts, "mode": "standard"},
        ),
    )
