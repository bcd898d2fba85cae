"""
Decides how the stage's VPC and Internet Gateway are brought under Terraform.

The ids recorded in the local Terraform state and the ids configured in
.env.dt.<stage> are both checked against AWS on every run:

* state ids live            -> keep state, sync the env file when it differs
* configured ids live       -> back up state and import the configured ids
* neither                   -> Terraform creates a new VPC / IGW (confirmed first)
"""

import time
from pathlib import Path
from typing import Dict, Optional

from . import config, prompts
from .aws_resources import AWSResources
from .configuration import Configuration
from .progress_indicator import Colors, ProgressIndicator
from .terraform import TerraformRunner
from .validation import Validation

STATE_FILE_NAME = "terraform.tfstate"


class NetworkAction:
    USE_STATE = "use_state"
    IMPORT = "import"
    CREATE_NEW = "create_new"


def decide_network_action(
    state_vpc_id: Optional[str],
    state_igw_id: Optional[str],
    configured_vpc_id: Optional[str],
    configured_igw_id: Optional[str],
) -> Dict[str, Optional[str]]:
    """
    Pick the network action from ids already confirmed to exist in AWS.
    Pass None for an id that is unset or not found.
    """
    if state_vpc_id and state_igw_id:
        return {
            "action": NetworkAction.USE_STATE,
            "vpc_id": state_vpc_id,
            "igw_id": state_igw_id,
        }
    if configured_vpc_id and configured_igw_id:
        return {
            "action": NetworkAction.IMPORT,
            "vpc_id": configured_vpc_id,
            "igw_id": configured_igw_id,
        }
    return {"action": NetworkAction.CREATE_NEW, "vpc_id": None, "igw_id": None}


def backup_state_file(terraform_dir: Path) -> Optional[Path]:
    """Rename terraform.tfstate to terraform.tfstate.<epoch-ms>.backup"""
    state_file = terraform_dir / STATE_FILE_NAME
    if not state_file.exists():
        return None

    backup_file = terraform_dir / f"{STATE_FILE_NAME}.{int(time.time() * 1000)}.backup"
    state_file.rename(backup_file)
    return backup_file


def _mark(resource_id: Optional[str]) -> str:
    return "✅" if resource_id else "❌"


class NetworkReconciler:
    """Applies the network decision for one stage"""

    def __init__(
        self,
        target_environment: str,
        env_vars: Dict[str, str],
        configuration: Configuration,
        validation: Validation,
        aws: AWSResources,
        terraform: TerraformRunner,
        create_new_vpc: bool = False,
        progress: Optional[ProgressIndicator] = None,
    ):
        self.target_environment = target_environment
        self.env_vars = env_vars
        self.configuration = configuration
        self.validation = validation
        self.aws = aws
        self.terraform = terraform
        self.create_new_vpc = create_new_vpc
        self.progress = progress or ProgressIndicator(0)

    def _live_ids(self, vpc_id: Optional[str], igw_id: Optional[str]):
        vpc_valid, live_vpc_id = self.aws.check_vpc([vpc_id])
        igw_valid, live_igw_id = self.aws.check_igw([igw_id])
        return (
            live_vpc_id if vpc_valid else None,
            live_igw_id if igw_valid else None,
        )

    def reconcile(self) -> Optional[Dict[str, Optional[str]]]:
        """
        Check state and configured ids, then act on the decision.
        Returns the decision, or None when the user declined creating a new network.
        """
        tf_state = self.validation.check_tf_state(self.target_environment)
        if tf_state["tf_state_exists"]:
            self.progress.info("Terraform state file found. Checking resources...")
        else:
            self.progress.info("Terraform state file not exists. Checking resources...")

        state_vpc_id, state_igw_id = self._live_ids(
            tf_state["vpc_id"], tf_state["igw_id"]
        )
        configured_vpc_id, configured_igw_id = self._live_ids(
            self.env_vars.get("VPC_ID"), self.env_vars.get("IGW_ID")
        )

        print(
            "Terraform States:\n"
            f"- VPC: {_mark(state_vpc_id)} - {state_vpc_id}\n"
            f"- IGW: {_mark(state_igw_id)} - {state_igw_id}\n"
        )
        print(
            "Configured Values:\n"
            f"- VPC: {_mark(configured_vpc_id)} - {configured_vpc_id}\n"
            f"- IGW: {_mark(configured_igw_id)} - {configured_igw_id}\n"
        )

        decision = decide_network_action(
            state_vpc_id, state_igw_id, configured_vpc_id, configured_igw_id
        )

        if decision["action"] == NetworkAction.USE_STATE:
            self._use_state(decision)
        elif decision["action"] == NetworkAction.IMPORT:
            self._import_configured(decision)
        elif not self._confirm_new_network():
            return None

        return decision

    def _use_state(self, decision: Dict[str, Optional[str]]) -> None:
        vpc_id = decision["vpc_id"] or ""
        igw_id = decision["igw_id"] or ""
        self.progress.success("Using VPC and IGW from Terraform state.")

        if self.env_vars.get("VPC_ID") != vpc_id or self.env_vars.get("IGW_ID") != igw_id:
            self.configuration.update_env_file(
                self.target_environment, {"VPC_ID": vpc_id, "IGW_ID": igw_id}
            )
            self.env_vars["VPC_ID"] = vpc_id
            self.env_vars["IGW_ID"] = igw_id

    def _import_configured(self, decision: Dict[str, Optional[str]]) -> None:
        backup_file = backup_state_file(self.terraform.working_dir)
        if backup_file:
            self.progress.info(f"Terraform state backed up to {backup_file.name}")

        self.terraform.import_resource(config.VPC_RESOURCE_ADDRESS, decision["vpc_id"] or "")
        self.terraform.import_resource(config.IGW_RESOURCE_ADDRESS, decision["igw_id"] or "")

    def _confirm_new_network(self) -> bool:
        self.progress.warning("No existing VPC / IGW found in Terraform state or configuration.")
        if self.create_new_vpc:
            self.progress.info("A new VPC and Internet Gateway will be created.")
            return True

        if prompts.confirm("Create a new VPC and Internet Gateway?"):
            return True

        print(f"{Colors.WARNING}Deployment cancelled by user{Colors.ENDC}")
        return False

    def sync_created_network(self) -> Dict[str, Optional[str]]:
        """After apply, write the VPC / IGW ids from state into .env.dt.<stage>"""
        tf_state = self.validation.check_tf_state(self.target_environment)
        vpc_id = tf_state["vpc_id"]
        igw_id = tf_state["igw_id"]

        if vpc_id and igw_id:
            self.configuration.update_env_file(
                self.target_environment, {"VPC_ID": vpc_id, "IGW_ID": igw_id}
            )
            self.env_vars["VPC_ID"] = vpc_id
            self.env_vars["IGW_ID"] = igw_id
        else:
            self.progress.warning("VPC / IGW ids not found in Terraform state after apply.")

        return {"vpc_id": vpc_id, "igw_id": igw_id}
