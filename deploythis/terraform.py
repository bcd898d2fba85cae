"""
Thin wrapper around the terraform binary.
"""

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional

from . import config
from .errors import (
    TerraformApplyError,
    TerraformDestroyError,
    TerraformInitError,
    TerraformPlanError,
)
from .progress_indicator import ProgressIndicator

logger = logging.getLogger(__name__)

# Exit codes of `terraform plan -detailed-exitcode`
PLAN_NO_CHANGES = 0
PLAN_HAS_CHANGES = 2

LOCK_INDICATORS = [
    "Error acquiring the state lock",
    "state lock",
    "Lock Info:",
    "PreconditionFailed",
    "At least one of the pre-conditions you specified did not hold",
]


def is_state_lock_error(error_output: Optional[str]) -> bool:
    """Check if the error output indicates a state lock issue"""
    if not error_output:
        return False

    error_lower = error_output.lower()
    return any(indicator.lower() in error_lower for indicator in LOCK_INDICATORS)


class TerraformRunner:
    """Runs terraform verbs inside one stage directory"""

    def __init__(
        self,
        working_dir: Path,
        env_vars: Optional[Dict[str, str]] = None,
        tf_vars: Optional[Dict[str, str]] = None,
        force_unlock: bool = False,
        progress: Optional[ProgressIndicator] = None,
    ):
        self.working_dir = Path(working_dir)
        self.env_vars = env_vars or {}
        self.tf_vars = tf_vars or {}
        self.force_unlock = force_unlock
        self.progress = progress or ProgressIndicator(0)
        self.terraform_cmd = config.TERRAFORM_CMD

    def _environment(self) -> Dict[str, str]:
        env = {**os.environ, **self.tf_vars}
        credentials = {
            "AWS_ACCESS_KEY_ID": self.env_vars.get("AWS_ACCESS_KEY"),
            "AWS_SECRET_ACCESS_KEY": self.env_vars.get("AWS_SECRET_KEY"),
            "AWS_REGION": self.env_vars.get("AWS_REGION"),
        }
        env.update({key: value for key, value in credentials.items() if value})
        return env

    def _run(
        self, args: List[str], verb: str, stream: bool = False
    ) -> subprocess.CompletedProcess:
        """
        Run `terraform <args>` in the working directory.
        Streamed runs keep stdin and stdout on the terminal, so progress shows
        live and terraform can ask for approval. Only stderr is captured, then
        echoed back once the command exits.
        """
        command = [self.terraform_cmd] + args
        logger.debug("Running %s in %s", " ".join(command), self.working_dir)

        if stream:
            result = subprocess.run(
                command,
                cwd=str(self.working_dir),
                env=self._environment(),
                stderr=subprocess.PIPE,
                text=True,
                timeout=config.TERRAFORM_TIMEOUTS[verb],
            )
            if result.stderr:
                sys.stderr.write(result.stderr)
            return result

        return subprocess.run(
            command,
            cwd=str(self.working_dir),
            env=self._environment(),
            capture_output=True,
            text=True,
            timeout=config.TERRAFORM_TIMEOUTS[verb],
        )

    def _lock_args(self, use_lock_false: bool) -> List[str]:
        return ["-lock=false"] if use_lock_false else []

    def _run_with_lock_retry(
        self, args: List[str], verb: str
    ) -> subprocess.CompletedProcess:
        """Run a locking verb, retrying once with -lock=false on a state lock error"""
        if self.force_unlock:
            self.progress.warning(f"Using -lock=false for {verb} (state lock bypass)")

        result = self._run(
            [verb] + self._lock_args(self.force_unlock) + args, verb, stream=True
        )
        if (
            result.returncode not in (0, PLAN_HAS_CHANGES)
            and not self.force_unlock
            and is_state_lock_error(result.stderr)
        ):
            self.progress.warning(
                f"State lock detected during {verb}, attempting fallback with -lock=false..."
            )
            result = self._run([verb, "-lock=false"] + args, verb, stream=True)

        return result

    def init(self) -> None:
        self.progress.info(f"Initializing Terraform in {self.working_dir}...")
        try:
            result = self._run(["init", "-input=false"], "init")
        except subprocess.TimeoutExpired as e:
            raise TerraformInitError(f"terraform init timed out: {e}") from e
        except OSError as e:
            raise TerraformInitError(f"Failed to run terraform: {e}") from e

        if result.returncode != 0:
            raise TerraformInitError(result.stderr or result.stdout)
        self.progress.success("Terraform initialized.")

    def plan(
        self,
        plan_file: Optional[str] = None,
        destroy: bool = False,
        refresh: bool = True,
        refresh_only: bool = False,
        generate_config: Optional[str] = None,
    ) -> bool:
        """
        Run `terraform plan -detailed-exitcode`.
        Returns True when the plan contains changes, False when nothing changes.
        """
        args = ["-input=false", "-detailed-exitcode"]
        if plan_file:
            args.append(f"-out={plan_file}")
        if destroy:
            args.append("-destroy")
        if not refresh:
            args.append("-refresh=false")
        if refresh_only:
            args.append("-refresh-only")
        if generate_config:
            args.append(f"-generate-config-out={generate_config}")

        self.progress.info("Generating deployment plan...")
        try:
            result = self._run_with_lock_retry(args, "plan")
        except subprocess.TimeoutExpired as e:
            raise TerraformPlanError(f"terraform plan timed out: {e}") from e
        except OSError as e:
            raise TerraformPlanError(f"Failed to run terraform: {e}") from e

        if result.returncode == PLAN_NO_CHANGES:
            return False
        if result.returncode == PLAN_HAS_CHANGES:
            return True
        raise TerraformPlanError(result.stderr or "plan failed")

    def apply(self, plan_file: Optional[str] = None, auto_approve: bool = False) -> None:
        args = []
        if auto_approve:
            args.append("-auto-approve")
        if plan_file:
            args.append(plan_file)

        self.progress.info("Applying infrastructure changes...")
        self.progress.info("This may take several minutes...")
        try:
            result = self._run_with_lock_retry(args, "apply")
        except subprocess.TimeoutExpired as e:
            raise TerraformApplyError(f"terraform apply timed out: {e}") from e
        except OSError as e:
            raise TerraformApplyError(f"Failed to run terraform: {e}") from e

        if result.returncode != 0:
            raise TerraformApplyError(result.stderr or "apply failed")
        self.progress.success("Terraform apply completed.")

    def import_resource(self, address: str, resource_id: str) -> bool:
        """Import an existing resource into state; failures are only warnings"""
        self.progress.info(f"Importing {resource_id} as {address}...")
        try:
            result = self._run(
                ["import", "-input=false"]
                + self._lock_args(self.force_unlock)
                + [address, resource_id],
                "import",
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            self.progress.warning(f"Import of {address} failed: {e}")
            return False

        if result.returncode != 0:
            self.progress.warning(f"Import of {address} failed: {result.stderr}")
            return False

        self.progress.success(f"Imported {address} ({resource_id})")
        return True

    def destroy(
        self, targets: Optional[List[str]] = None, auto_approve: bool = False
    ) -> None:
        args = [f"-target={target}" for target in targets or []]
        if auto_approve:
            args.append("-auto-approve")

        try:
            result = self._run_with_lock_retry(args, "destroy")
        except subprocess.TimeoutExpired as e:
            raise TerraformDestroyError(f"terraform destroy timed out: {e}") from e
        except OSError as e:
            raise TerraformDestroyError(f"Failed to run terraform: {e}") from e

        if result.returncode != 0:
            raise TerraformDestroyError(result.stderr or "destroy failed")
        self.progress.success("Terraform destroy completed.")

    def show(self) -> str:
        try:
            result = self._run(["show", "-no-color"], "show")
        except (subprocess.TimeoutExpired, OSError) as e:
            self.progress.warning(f"terraform show failed: {e}")
            return ""

        if result.returncode != 0:
            self.progress.warning(f"terraform show failed: {result.stderr}")
            return ""
        return result.stdout

    def version(self) -> Optional[str]:
        """First line of `terraform version`, or None when terraform is unavailable"""
        try:
            result = self._run(["version"], "version")
        except (subprocess.TimeoutExpired, OSError):
            return None

        if result.returncode != 0 or not result.stdout:
            return None
        return result.stdout.splitlines()[0].strip()
