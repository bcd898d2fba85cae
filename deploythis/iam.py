"""
Manages the IAM service account users that run deployments.
"""

import logging
from typing import Dict, List, Optional

from botocore.exceptions import ClientError

from . import config
from .aws_resources import create_session
from .progress_indicator import ProgressIndicator

logger = logging.getLogger(__name__)


def is_service_account(user: Dict) -> bool:
    return any(
        tag.get("Key") == config.SERVICE_ACCOUNT_TAG_KEY
        or tag.get("Value") == config.SERVICE_ACCOUNT_TAG_VALUE
        for tag in user.get("Tags") or []
    )


class IAMService:
    def __init__(self, iam_client):
        self.iam = iam_client
        self.progress = ProgressIndicator(0)

    @classmethod
    def from_env(cls, env_vars: Dict[str, str]) -> "IAMService":
        return cls(create_session(env_vars).client("iam"))

    def get_user_policies(self, user: str) -> List[Dict]:
        paginator = self.iam.get_paginator("list_attached_user_policies")
        policies = []
        for page in paginator.paginate(UserName=user):
            policies.extend(page.get("AttachedPolicies", []))
        return policies

    def _print_user(self, user: Dict) -> None:
        print(f"👤 {user['UserName']} - {user['UserId']} ({user['Arn']})")
        self.progress.table(self.get_user_policies(user["UserName"]), ["PolicyName", "PolicyArn"])
        print()

    def list_service_accounts(self) -> List[Dict]:
        """Users tagged as DeployThis service accounts"""
        paginator = self.iam.get_paginator("list_users")
        service_accounts = []
        for page in paginator.paginate():
            for listed in page.get("Users", []):
                # list_users does not return tags
                user = self.iam.get_user(UserName=listed["UserName"])["User"]
                if is_service_account(user):
                    service_accounts.append(user)
        return service_accounts

    def show(self, user: Optional[str] = None) -> List[Dict]:
        """Print one user, or every service account, with attached policies"""
        self.progress.info("Sending request to provider...")

        if user:
            try:
                user_info = self.iam.get_user(UserName=user)["User"]
            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchEntity":
                    self.progress.warning(f"User {user} not found.")
                    return []
                raise
            self._print_user(user_info)
            return [user_info]

        service_accounts = self.list_service_accounts()
        if not service_accounts:
            self.progress.info("No service accounts type (tag) found.")
            return []

        for user_info in service_accounts:
            self._print_user(user_info)
        return service_accounts

    def create(self, user: str) -> Dict[str, str]:
        """Create the user with the required policies and print its new access key"""
        self.iam.create_user(
            UserName=user,
            Tags=[
                {
                    "Key": config.SERVICE_ACCOUNT_TAG_KEY,
                    "Value": config.SERVICE_ACCOUNT_TAG_VALUE,
                }
            ],
        )

        for policy_arn in config.REQUIRED_IAM_POLICIES:
            self.iam.attach_user_policy(UserName=user, PolicyArn=policy_arn)

        access_key = self.iam.create_access_key(UserName=user)["AccessKey"]

        self.progress.success(f"User {user} created successfully")
        print(f"Access Key ID: {access_key['AccessKeyId']}")
        print(f"Secret Access Key: {access_key['SecretAccessKey']}")
        self.progress.warning("The secret access key is shown only once. Store it now.")
        return {
            "access_key_id": access_key["AccessKeyId"],
            "secret_access_key": access_key["SecretAccessKey"],
        }

    def delete(self, user: str) -> None:
        for policy in self.get_user_policies(user):
            self.iam.detach_user_policy(UserName=user, PolicyArn=policy["PolicyArn"])

        access_keys = self.iam.list_access_keys(UserName=user).get("AccessKeyMetadata", [])
        for access_key in access_keys:
            self.iam.delete_access_key(UserName=user, AccessKeyId=access_key["AccessKeyId"])

        self.iam.delete_user(UserName=user)
        self.progress.success(f"User {user} deleted successfully")

    def update(self, user: str) -> Dict[str, List[str]]:
        """Detach policies outside the required set and attach the missing ones"""
        current = [policy["PolicyArn"] for policy in self.get_user_policies(user)]

        detached = [arn for arn in current if arn not in config.REQUIRED_IAM_POLICIES]
        for policy_arn in detached:
            self.iam.detach_user_policy(UserName=user, PolicyArn=policy_arn)

        attached = [arn for arn in config.REQUIRED_IAM_POLICIES if arn not in current]
        for policy_arn in attached:
            self.iam.attach_user_policy(UserName=user, PolicyArn=policy_arn)

        logger.debug("IAM user %s: detached %s, attached %s", user, detached, attached)
        self.progress.success(f"User {user} updated successfully")
        return {"detached": detached, "attached": attached}
