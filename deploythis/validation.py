"""
Checks over the project layout, environment variables and Terraform state.
"""

import json
import os
import re
from typing import Callable, Dict, List, Optional, Tuple

from . import config
from .configuration import Configuration
from .env_files import patch_envs
from .errors import EnvironmentValidationError
from .progress_indicator import Colors, ProgressIndicator


def _matches(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern)
    return lambda value: bool(compiled.match(value))


def _not_empty(value: str) -> bool:
    return len(value) > 0


def _valid_instance_types(value: str) -> bool:
    try:
        types = json.loads(value)
    except (TypeError, ValueError):
        return False
    return (
        isinstance(types, list)
        and len(types) > 0
        and all(
            isinstance(item, str) and re.match(r"^[a-z1-9.]+$", item) for item in types
        )
    )


# Shape of the variables expected in .env.dt.<stage>
VARIABLE_RULES: Dict[str, Callable[[str], bool]] = {
    "DEPLOYMENT_TYPE": lambda value: value in config.DEPLOYMENT_TYPES,
    "AWS_PROFILE": _not_empty,
    "AWS_REGION": _matches(r"^[a-z]{2}-[a-z]+-\d$"),
    "AWS_ACCOUNT_ID": _matches(r"^[0-9]{12}$"),
    "AWS_ACCESS_KEY": _matches(r"^[A-Z0-9]{20}$"),
    "AWS_SECRET_KEY": lambda value: len(value) >= 40,
    "VPC_ID": _matches(r"^vpc-[a-f0-9]{17}$"),
    "IGW_ID": _matches(r"^igw-[a-f0-9]{17}$"),
    "SSL_CERTIFICATE_ARN": _matches(
        r"^arn:aws:acm:[a-z]{2}-[a-z]+-\d+:\d+:certificate/[a-z0-9-]+$"
    ),
    "AMI_ID": _matches(r"^ami-[a-f0-9]{17}$"),
    "INSTANCE_TYPES": _valid_instance_types,
    "ECR_REGISTRY": _matches(r"^[0-9]{12}\.dkr\.ecr\.[a-z]{2}-[a-z]+-\d+\.amazonaws\.com$"),
    "ECR_REPOSITORY_NAME": _not_empty,
    "CODEDEPLOY_APP_NAME": _not_empty,
    "CODEDEPLOY_GROUP_NAME": _not_empty,
    "CODEDEPLOY_S3_BUCKET": _not_empty,
    "BITBUCKET_APP_PASSWORD": _not_empty,
    "BITBUCKET_WORKSPACE": _not_empty,
    "BITBUCKET_BRANCH": _not_empty,
}

ASG_REQUIRED_VARIABLES = [
    "SSL_CERTIFICATE_ARN",
    "ASG_DESIRED_CAPACITY",
    "ASG_MIN_SIZE",
    "ASG_MAX_SIZE",
]


def validate_required_variables(
    env_config: Dict[str, str]
) -> Tuple[List[str], List[str]]:
    """Return (missing, invalid) variable names for a .env.dt.<stage> config"""
    missing_vars = []
    invalid_vars = []

    for var_name, is_valid in VARIABLE_RULES.items():
        if var_name not in env_config:
            missing_vars.append(var_name)
        elif not is_valid(env_config[var_name]):
            invalid_vars.append(var_name)

    if env_config.get("DEPLOYMENT_TYPE") == "asg":
        for var_name in ASG_REQUIRED_VARIABLES:
            if var_name not in env_config and var_name not in missing_vars:
                missing_vars.append(var_name)

    return missing_vars, invalid_vars


def to_terraform_variables(env_vars: Dict[str, str]) -> Dict[str, str]:
    """Map env variables to TF_VAR_<name> entries understood by Terraform"""
    tf_vars = {}
    for key, value in env_vars.items():
        if key == "INSTANCE_TYPES":
            tf_vars["TF_VAR_instance_types"] = value
        else:
            tf_vars[f"TF_VAR_{key.lower()}"] = value
    return tf_vars


def _print_variable(marker: str, name: str, value: Optional[str]):
    print(f"{marker} {name}".ljust(40) + f": {value if value else config.UNDEFINED_TEXT}")


class Validation:
    """Project layout and configuration checks shared by deploy and rollback"""

    def __init__(self, configuration: Optional[Configuration] = None):
        self.configuration = configuration or Configuration()
        self.progress = ProgressIndicator(0)

    @property
    def project_root(self):
        return self.configuration.project_root

    def check_target_environments(self) -> List[str]:
        """List the initialized target environments under .terraforms"""
        terraforms_dir = self.configuration.get_terraforms_dir()
        if not terraforms_dir.exists():
            raise EnvironmentValidationError(
                f"{config.TERRAFORMS_DIR_NAME} not exists for any environments."
            )

        target_environments = sorted(
            entry.name for entry in terraforms_dir.iterdir() if entry.is_dir()
        )
        if not target_environments:
            raise EnvironmentValidationError(
                f"{config.TERRAFORMS_DIR_NAME} has no initialized target environments."
            )

        return target_environments

    def check_deployment_type(self, target_environment: str) -> str:
        """Read the deployment type from the SINGLE.md / ASG.md marker file"""
        terraform_dir = self.configuration.get_terraform_dir(target_environment)
        if not terraform_dir.exists() or not any(terraform_dir.iterdir()):
            raise EnvironmentValidationError(
                f"No deployment types found in {terraform_dir}"
            )

        markers = sorted(path.name for path in terraform_dir.glob("*.md"))
        if len(markers) != 1:
            raise EnvironmentValidationError(
                f"Unknown deployment type in {terraform_dir}. "
                "Missing one between SINGLE.md and ASG.md"
            )

        return markers[0][: -len(".md")].lower()

    def resolve_target_environment(self, target_environment: Optional[str] = None):
        """Stage from the argument, the NODE_ENV process variable, then .env"""
        if target_environment:
            return target_environment
        if os.environ.get("NODE_ENV"):
            return os.environ["NODE_ENV"]

        env_file = self.configuration.env_file
        if not env_file.exists():
            raise EnvironmentValidationError(
                f"{env_file} file not found. Please create it."
            )
        return patch_envs(env_file).get("NODE_ENV")

    def check_environment_variables(
        self, target_environment: Optional[str] = None
    ) -> Tuple[Dict[str, str], Dict[str, str]]:
        """
        Load .env and .env.dt.<stage>, report required and optional variables and
        return (env_vars, tf_vars). Missing required variables raise
        EnvironmentValidationError.
        """
        env_file = self.configuration.env_file
        if not env_file.exists():
            raise EnvironmentValidationError(
                f"{env_file} file not found. Please create it."
            )
        dot_env = patch_envs(env_file)
        print(f"{Colors.OKGREEN}✅ .env{Colors.ENDC}")

        node_env = target_environment or os.environ.get("NODE_ENV") or dot_env.get(
            "NODE_ENV"
        )
        if not node_env:
            raise EnvironmentValidationError("NODE_ENV is not set in .env")
        dot_env["NODE_ENV"] = node_env

        dt_env_file = self.configuration.dt_env_file_for(node_env)
        if not dt_env_file.exists():
            self.progress.warning(f"{dt_env_file} file not found. Please create it.")
            dt_env: Dict[str, str] = {}
        else:
            dt_env = patch_envs(dt_env_file)
            print(f"{Colors.OKGREEN}✅ {dt_env_file.name}{Colors.ENDC}\n")

        required_env_vars = list(Configuration.PROJECT_VARIABLES)
        required_dt_env_vars = (
            list(Configuration.DEVOPS_VARIABLES) + Configuration.GITOPS_VARIABLES
        )

        deployment_type = self.check_deployment_type(node_env)
        if deployment_type in ("asg", "ecs"):
            required_dt_env_vars.append("SSL_CERTIFICATE_ARN")

        env_vars = {**dot_env, **dt_env}
        required_vars = required_env_vars + required_dt_env_vars

        for var_name in required_vars:
            _print_variable("🔹" if env_vars.get(var_name) else "🔸", var_name, env_vars.get(var_name))

        missing_vars = [name for name in required_vars if not env_vars.get(name)]
        if missing_vars:
            raise EnvironmentValidationError(
                "Some variables are not set in required environment files: "
                + ", ".join(missing_vars)
            )
        self.progress.success("Required environment variables are set.\n")

        for var_name in Configuration.OPTIONAL_VARIABLES:
            if var_name in env_vars and var_name not in required_vars:
                _print_variable("💧" if env_vars[var_name] else "🩸", var_name, env_vars[var_name])
        self.progress.success("Optional environment variables are set.\n")

        return env_vars, to_terraform_variables(env_vars)

    def check_tf_state(self, target_environment: str) -> Dict[str, Optional[str]]:
        """
        Look up the VPC and Internet Gateway ids recorded in the local Terraform state.
        Returns tf_state_exists (state file name), vpc_id and igw_id.
        """
        terraform_dir = self.configuration.get_terraform_dir(target_environment)
        empty: Dict[str, Optional[str]] = {
            "tf_state_exists": None,
            "vpc_id": None,
            "igw_id": None,
        }

        try:
            state_files = sorted(terraform_dir.glob("*.tfstate"))
        except OSError as e:
            self.progress.error(f"Error checking Terraform state: {e}")
            return empty

        if not state_files:
            return empty

        state_file = state_files[0]
        try:
            tf_state = json.loads(state_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.progress.error(f"Error checking resources in Terraform state: {e}")
            return {**empty, "tf_state_exists": state_file.name}

        resources = tf_state.get("resources") or []
        if not resources:
            return empty

        return {
            "tf_state_exists": state_file.name,
            "vpc_id": _first_resource_id(resources, "aws_vpc", "VPC"),
            "igw_id": _first_resource_id(
                resources, "aws_internet_gateway", "InternetGateway"
            ),
        }


def _first_resource_id(resources: List[dict], resource_type: str, name: str):
    for resource in resources:
        if resource.get("type") != resource_type and resource.get("name") != name:
            continue
        for instance in resource.get("instances") or []:
            resource_id = (instance.get("attributes") or {}).get("id")
            if resource_id:
                return resource_id
    return None
