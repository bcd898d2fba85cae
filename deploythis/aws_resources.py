"""
AWS lookups used while deploying: credentials, VPC / IGW existence and instances.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import AWSCredentialsError

logger = logging.getLogger(__name__)


def create_session(env_vars: Dict[str, str]) -> boto3.Session:
    """
    Boto3 session from AWS_ACCESS_KEY / AWS_SECRET_KEY / AWS_REGION,
    falling back to the AWS_PROFILE named profile.
    """
    region = env_vars.get("AWS_REGION") or None
    if env_vars.get("AWS_ACCESS_KEY") and env_vars.get("AWS_SECRET_KEY"):
        return boto3.Session(
            aws_access_key_id=env_vars["AWS_ACCESS_KEY"],
            aws_secret_access_key=env_vars["AWS_SECRET_KEY"],
            region_name=region,
        )
    if env_vars.get("AWS_PROFILE"):
        return boto3.Session(profile_name=env_vars["AWS_PROFILE"], region_name=region)
    return boto3.Session(region_name=region)


def _clean_ids(ids: Optional[Sequence[Optional[str]]]) -> List[str]:
    return [resource_id.strip() for resource_id in ids or [] if resource_id and resource_id.strip()]


class AWSResources:
    """EC2 / STS queries against the stage's AWS account"""

    def __init__(self, session: boto3.Session):
        self.session = session
        self.ec2 = session.client("ec2")

    @classmethod
    def from_env(cls, env_vars: Dict[str, str]) -> "AWSResources":
        return cls(create_session(env_vars))

    def check_vpc(self, vpc_ids: Optional[Sequence[Optional[str]]]) -> Tuple[bool, Optional[str]]:
        """Return (True, first id) when the VPCs exist, (False, None) otherwise"""
        ids = _clean_ids(vpc_ids)
        if not ids:
            return False, None

        try:
            response = self.ec2.describe_vpcs(VpcIds=ids)
        except ClientError as e:
            logger.debug("describe_vpcs failed for %s: %s", ids, e)
            return False, None

        vpcs = response.get("Vpcs", [])
        if not vpcs:
            return False, None
        return True, vpcs[0]["VpcId"]

    def check_igw(self, igw_ids: Optional[Sequence[Optional[str]]]) -> Tuple[bool, Optional[str]]:
        """Return (True, first id) when the internet gateways exist, (False, None) otherwise"""
        ids = _clean_ids(igw_ids)
        if not ids:
            return False, None

        try:
            response = self.ec2.describe_internet_gateways(InternetGatewayIds=ids)
        except ClientError as e:
            logger.debug("describe_internet_gateways failed for %s: %s", ids, e)
            return False, None

        gateways = response.get("InternetGateways", [])
        if not gateways:
            return False, None
        return True, gateways[0]["InternetGatewayId"]

    def validate_credentials(self) -> Dict[str, str]:
        """Return the caller identity; raise AWSCredentialsError when STS rejects us"""
        try:
            identity = self.session.client("sts").get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise AWSCredentialsError(f"AWS credentials validation failed: {e}") from e

        return {
            "account": identity.get("Account", ""),
            "arn": identity.get("Arn", ""),
            "user_id": identity.get("UserId", ""),
        }

    def describe_project_instances(self, project_name: str) -> List[Dict[str, str]]:
        """EC2 instances tagged Project=<project_name>"""
        paginator = self.ec2.get_paginator("describe_instances")
        pages = paginator.paginate(
            Filters=[{"Name": "tag:Project", "Values": [project_name]}]
        )

        instances = []
        for page in pages:
            for reservation in page.get("Reservations", []):
                for instance in reservation.get("Instances", []):
                    instances.append(
                        {
                            "instance_id": instance["InstanceId"],
                            "state": instance.get("State", {}).get("Name", ""),
                            "public_ip": instance.get("PublicIpAddress", ""),
                            "private_ip": instance.get("PrivateIpAddress", ""),
                        }
                    )
        return instances
