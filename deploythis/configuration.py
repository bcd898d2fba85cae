"""
Project configuration assembled from .env and .env.dt.<stage>.
"""

from pathlib import Path
from typing import Dict, Mapping, Optional

from . import config
from .env_files import patch_envs, update_env_file
from .errors import EnvironmentValidationError
from .progress_indicator import ProgressIndicator


class Configuration:
    """Locates and reads the environment files of a project"""

    PROJECT_VARIABLES = ["NODE_ENV", "PROJECT_NAME"]
    DEVOPS_VARIABLES = [
        "DEPLOYMENT_TYPE",
        "AWS_PROFILE",
        "AWS_REGION",
        "AWS_ACCOUNT_ID",
        "AWS_ACCESS_KEY",
        "AWS_SECRET_KEY",
        "VPC_ID",
        "IGW_ID",
        "AMI_ID",
        "INSTANCE_TYPES",
    ]
    GITOPS_VARIABLES = [
        "BITBUCKET_USERNAME",
        "BITBUCKET_APP_PASSWORD",
        "BITBUCKET_WORKSPACE",
        "BITBUCKET_BRANCH",
    ]
    OPTIONAL_VARIABLES = [
        "SSL_CERTIFICATE_ARN",
        "VPC_CIDR",
        "PUBLIC_SUBNET_CIDRS",
        "AVAILABILITY_ZONES",
        "MAP_PUBLIC_IP",
        "ROOT_VOLUME_TYPE",
        "ROOT_VOLUME_SIZE",
        "ROOT_VOLUME_ENCRYPTED",
        "APP_PORT",
        "ASG_DESIRED_CAPACITY",
        "ASG_MIN_SIZE",
        "ASG_MAX_SIZE",
        "BASE_CAPACITY",
        "ASG_CPU_TARGET",
        "ASG_RAM_TARGET",
        "HEALTH_CHECK_PATH",
        "HEALTH_CHECK_INTERVAL",
        "HEALTH_CHECK_TIMEOUT",
        "HEALTH_CHECK_HEALTHY_THRESHOLD",
        "HEALTH_CHECK_UNHEALTHY_THRESHOLD",
        "HEALTH_CHECK_MATCHER",
        "EXPOSE_HTTP",
        "EXPOSE_HTTPS",
        "EXPOSE_SSH",
    ]

    # Variables pushed to Bitbucket by `pipelines variables init`
    GITOPS_ALLOWED_VARIABLES = [
        "NODE_ENV",
        "PROJECT_NAME",
        "DEPLOYMENT_TYPE",
        "AWS_PROFILE",
        "AWS_REGION",
        "AWS_ACCESS_KEY",
        "AWS_SECRET_KEY",
        "AWS_ACCOUNT_ID",
    ]

    def __init__(self, project_root: Optional[Path] = None):
        self.project_root = Path(project_root or Path.cwd()).absolute()
        self.progress = ProgressIndicator(0)

    @property
    def env_file(self) -> Path:
        return self.project_root / config.ENV_FILE_NAME

    def dt_env_file_for(self, target_environment: str) -> Path:
        return self.project_root / f"{config.DT_ENV_FILE_PREFIX}{target_environment}"

    @property
    def env_config(self) -> Dict[str, str]:
        if not self.env_file.exists():
            raise EnvironmentValidationError(
                f".env file not found within {self.project_root}"
            )
        return patch_envs(self.env_file)

    @property
    def dt_env_file(self) -> Path:
        return self.dt_env_file_for(self.env_config.get("NODE_ENV", ""))

    @property
    def dt_env_config(self) -> Dict[str, str]:
        dt_env_file = self.dt_env_file
        if not dt_env_file.exists():
            raise EnvironmentValidationError(
                f"{dt_env_file.name} file not found within {self.project_root}"
            )
        return patch_envs(dt_env_file)

    def get_config(self) -> Dict[str, str]:
        """Merged configuration; .env.dt.<stage> values override .env"""
        return {**self.env_config, **self.dt_env_config}

    def get_terraforms_dir(self) -> Path:
        return self.project_root / config.TERRAFORMS_DIR_NAME

    def get_terraform_dir(self, target_environment: str) -> Path:
        if not target_environment:
            raise ValueError("Target environment cannot be empty")
        return self.get_terraforms_dir() / target_environment

    def update_env_file(
        self, target_environment: Optional[str], updates: Mapping[str, str]
    ) -> None:
        """Write updated values into .env.dt.<stage>"""
        if not target_environment:
            self.progress.warning(
                f"Target environment is empty ({target_environment}). Skipping update."
            )
            return

        dt_env_file = self.dt_env_file_for(target_environment)
        self.progress.info(f"Updating {dt_env_file}...")
        update_env_file(dt_env_file, updates)
