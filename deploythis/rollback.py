"""
Destroys the infrastructure of a stage, fully or keeping the VPC / IGW.
"""

from pathlib import Path
from typing import Optional

from . import config, prompts
from .aws_resources import create_session
from .cleanup import AWSResourceCleanup
from .configuration import Configuration
from .errors import DeployThisError, EnvironmentValidationError
from .progress_indicator import ProgressIndicator
from .terraform import TerraformRunner
from .validation import Validation

DESTROY_TYPES = ["full", "partial"]


class Rollback:
    def __init__(
        self,
        target_environment: Optional[str] = None,
        destroy_type: Optional[str] = None,
        force: bool = False,
        force_unlock: bool = False,
        project_root: Optional[Path] = None,
    ):
        self.target_environment = target_environment
        self.destroy_type = destroy_type
        self.force = force
        self.force_unlock = force_unlock
        self.configuration = Configuration(project_root)
        self.validation = Validation(self.configuration)
        self.progress = ProgressIndicator(4)

    def run(self) -> bool:
        """Returns True when the destroy ran, False when cancelled"""
        if not self.target_environment:
            self.target_environment = prompts.select(
                "Select target environment:",
                self.validation.check_target_environments(),
            )
            if not self.target_environment:
                print("Rollback cancelled.")
                return False

        self.progress.header(f"Starting rollback for {self.target_environment}")

        terraform_dir = self.configuration.get_terraform_dir(self.target_environment)
        if not terraform_dir.exists():
            raise EnvironmentValidationError(
                f"Terraform directory not found for environment: {self.target_environment}"
            )

        if not self.destroy_type:
            self.destroy_type = prompts.select("Select destroy type:", DESTROY_TYPES)
            if not self.destroy_type:
                print("Rollback cancelled.")
                return False
        if self.destroy_type not in DESTROY_TYPES:
            raise DeployThisError(
                f"Unknown destroy type: {self.destroy_type}. Use one of {', '.join(DESTROY_TYPES)}"
            )

        if not self.force and not prompts.confirm(
            f"Run a {self.destroy_type} destroy of {self.target_environment}?"
        ):
            print("Rollback cancelled.")
            return False

        self.progress.next_step("Checking environment variables")
        env_vars, tf_vars = self.validation.check_environment_variables(
            self.target_environment
        )

        self.progress.next_step("Cleaning up S3 and ECR resources")
        self.cleanup_resources(env_vars)

        terraform = TerraformRunner(
            terraform_dir,
            env_vars=env_vars,
            tf_vars=tf_vars,
            force_unlock=self.force_unlock,
            progress=self.progress,
        )
        self.progress.next_step("Initializing Terraform")
        terraform.init()

        self.progress.next_step(f"Running {self.destroy_type} destroy")
        if self.destroy_type == "partial":
            self.progress.info("Destroying partially (excludes VPC and IGW)...")
            terraform.destroy(
                targets=config.PARTIAL_DESTROY_TARGETS, auto_approve=self.force
            )
        else:
            terraform.destroy(auto_approve=self.force)

        self.progress.success("Rollback completed successfully.")
        return True

    def cleanup_resources(self, env_vars) -> bool:
        """Empty the CodeDeploy bucket (full destroy) and the ECR repository"""
        cleanup = AWSResourceCleanup(create_session(env_vars))

        results = []
        if self.destroy_type == "full":
            results.append(cleanup.empty_s3_bucket(env_vars.get("CODEDEPLOY_S3_BUCKET", "")))
        results.append(cleanup.delete_ecr_images(env_vars.get("ECR_REPOSITORY_NAME", "")))

        if not all(results):
            self.progress.warning(
                "Some resources could not be emptied; terraform destroy may fail on them."
            )
        return all(results)
