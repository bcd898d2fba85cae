"""
Deploys a stage: validate configuration, reconcile the network, plan and apply.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from . import config, prompts
from .aws_resources import AWSResources
from .configuration import Configuration
from .errors import EnvironmentValidationError
from .progress_indicator import Colors, ProgressIndicator
from .reconcile import NetworkAction, NetworkReconciler
from .terraform import TerraformRunner
from .validation import Validation

logger = logging.getLogger(__name__)


class Deploy:
    """Runs the full deployment of one target environment"""

    def __init__(
        self,
        target_environment: Optional[str] = None,
        force: bool = False,
        create_new_vpc: bool = False,
        force_unlock: bool = False,
        project_root: Optional[Path] = None,
    ):
        self.target_environment = target_environment
        self.force = force
        self.create_new_vpc = create_new_vpc
        self.force_unlock = force_unlock
        self.configuration = Configuration(project_root)
        self.validation = Validation(self.configuration)
        self.progress = ProgressIndicator(6)

    def select_target_environment(self) -> Optional[str]:
        return prompts.select(
            "Select target environment:", self.validation.check_target_environments()
        )

    def run(self) -> Optional[Dict[str, Optional[str]]]:
        """
        Returns the VPC / IGW ids of the deployed stage,
        or None when the user cancelled.
        """
        if not self.target_environment:
            self.target_environment = self.select_target_environment()
            if not self.target_environment:
                print("Exiting...")
                return None

        self.progress.header(f"Deploying {self.target_environment}")
        print(f"Project root: {self.configuration.project_root}")

        terraform_dir = self.configuration.get_terraform_dir(self.target_environment)
        if not terraform_dir.exists():
            raise EnvironmentValidationError(
                f"Terraform directory not found for environment: {self.target_environment}. "
                f"Run `dt init {self.target_environment}` first."
            )

        self.progress.next_step("Checking environment variables")
        env_vars, tf_vars = self.validation.check_environment_variables(
            self.target_environment
        )
        deployment_type = self.validation.check_deployment_type(self.target_environment)
        self.progress.info(f"Deployment type: {deployment_type}")

        self.progress.next_step("Validating AWS credentials")
        aws = AWSResources.from_env(env_vars)
        identity = aws.validate_credentials()
        self.progress.success(f"Authenticated as {identity['arn']}")

        terraform = TerraformRunner(
            terraform_dir,
            env_vars=env_vars,
            tf_vars=tf_vars,
            force_unlock=self.force_unlock,
            progress=self.progress,
        )
        reconciler = NetworkReconciler(
            self.target_environment,
            env_vars,
            self.configuration,
            self.validation,
            aws,
            terraform,
            create_new_vpc=self.create_new_vpc or self.force,
            progress=self.progress,
        )

        self.progress.next_step("Reconciling VPC and Internet Gateway")
        terraform.init()
        decision = reconciler.reconcile()
        if decision is None:
            return None
        terraform.init()

        self.progress.next_step("Planning infrastructure changes")
        has_changes = terraform.plan(plan_file=config.PLAN_FILE_NAME)
        if not has_changes:
            self.progress.success("Infrastructure is up-to-date. Nothing to apply.")
            return {"vpc_id": env_vars.get("VPC_ID"), "igw_id": env_vars.get("IGW_ID")}

        self.progress.next_step("Applying infrastructure changes")
        if not self.force and not prompts.confirm(
            f"Apply the planned changes to {self.target_environment}?"
        ):
            print(f"{Colors.WARNING}Deployment cancelled by user{Colors.ENDC}")
            return None
        terraform.apply(plan_file=config.PLAN_FILE_NAME)

        if decision["action"] == NetworkAction.CREATE_NEW:
            reconciler.sync_created_network()

        self.progress.next_step("Deployed resources")
        print(terraform.show())

        logger.debug("Deployment of %s finished", self.target_environment)
        return {"vpc_id": env_vars.get("VPC_ID"), "igw_id": env_vars.get("IGW_ID")}
