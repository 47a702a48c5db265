"""factorio_shared.aws_clients — Lazy-singleton AWS service clients.

Clients are created on first use and cached for the lifetime of the Lambda
container so warm invocations skip client construction.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.config import Config

from factorio_shared.config import AWS_REGION_NAME

__all__ = [
    "_get_asg",
    "_get_cfn",
    "_get_ddb",
    "_get_ec2",
    "_get_ecs",
]

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_cfn = None
_ddb = None
_asg = None
_ec2 = None
_ecs = None


def _get_cfn(region: Optional[str] = None):
    """Get (or create) the CloudFormation client singleton."""
    global _cfn
    if _cfn is None:
        _cfn = boto3.client(
            "cloudformation",
            region_name=region or AWS_REGION_NAME,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _cfn


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or AWS_REGION_NAME,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )
    return _ddb


def _get_asg(region: Optional[str] = None):
    """Get (or create) the Auto Scaling client singleton."""
    global _asg
    if _asg is None:
        _asg = boto3.client(
            "autoscaling",
            region_name=region or AWS_REGION_NAME,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _asg


def _get_ec2(region: Optional[str] = None):
    """Get (or create) the EC2 client singleton."""
    global _ec2
    if _ec2 is None:
        _ec2 = boto3.client(
            "ec2",
            region_name=region or AWS_REGION_NAME,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _ec2


def _get_ecs(region: Optional[str] = None):
    """Get (or create) the ECS client singleton."""
    global _ecs
    if _ecs is None:
        _ecs = boto3.client(
            "ecs",
            region_name=region or AWS_REGION_NAME,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _ecs
