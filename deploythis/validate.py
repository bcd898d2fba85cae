"""
Pre-flight checks run by `dt validate`.
"""

import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Optional, Tuple

from . import config
from .env_files import patch_envs
from .errors import EnvironmentValidationError
from .progress_indicator import Colors, ProgressIndicator
from .validation import validate_required_variables

_VERSION_PATTERN = re.compile(r"\d+\.\d+\.\d+")


def parse_version(output: str) -> Optional[str]:
    """Extract the first x.y.z version from a `<tool> --version` output"""
    match = _VERSION_PATTERN.search(output or "")
    return match.group(0) if match else None


def version_tuple(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


def _mark(passed: Optional[bool]) -> str:
    return "✅" if passed else "❌"


class ValidateEnvironment:
    def __init__(self, project_root: Optional[Path] = None):
        self.project_root = Path(project_root or Path.cwd()).absolute()
        self.progress = ProgressIndicator(0)

    def run(self, force: bool = False) -> Dict[str, str]:
        stage = self.validates(force=force)
        if not stage:
            raise EnvironmentValidationError("Unknown Stage or Environment")

        print(f"Current Stage: {stage}")
        return {"stage": stage}

    def validates(
        self, target_environment: Optional[str] = None, force: bool = False
    ) -> Optional[str]:
        """
        Run every check point and print its result.
        Returns the stage when all of them pass, None otherwise.
        """
        check_points: Dict[str, bool] = {}

        stage = self.check_target_environment(target_environment, force)
        check_points["target_environment"] = bool(stage)
        print(f"{_mark(stage)} Target environment: {stage or config.UNDEFINED_TEXT}")

        check_points["dt_env_file"] = self.check_dt_env_file(stage, force)
        print(f"{_mark(check_points['dt_env_file'])} {config.DT_ENV_FILE_PREFIX}{stage}")

        check_points["aws_credentials"] = self.validate_aws_credentials(stage)
        print(f"{_mark(check_points['aws_credentials'])} AWS credentials")

        check_points["required_variables"] = self.validate_required_variables(stage)
        print(
            f"{_mark(check_points['required_variables'])} Required environment variables"
        )

        check_points["required_tools"] = self.validate_required_tools()
        print(f"{_mark(check_points['required_tools'])} Required tools")
        print()

        if not all(check_points.values()):
            return None
        return stage

    def _dt_env_file(self, stage: str) -> Path:
        return self.project_root / f"{config.DT_ENV_FILE_PREFIX}{stage}"

    def check_env_file(self, target_environment: Optional[str], force: bool) -> bool:
        env_file = self.project_root / config.ENV_FILE_NAME
        if env_file.exists():
            return True

        if not force:
            self.progress.warning(".env file not found. Use force option -f to create one.")
            return False

        if target_environment:
            env_file.write_text(f'NODE_ENV="{target_environment}"\n', encoding="utf-8")
        else:
            shutil.copyfile(config.ENV_EXAMPLE_FILE, env_file)
        self.progress.success(f"{env_file.name} created")
        return True

    def check_target_environment(
        self, target_environment: Optional[str] = None, force: bool = False
    ) -> Optional[str]:
        """Stage from the argument, the NODE_ENV process variable or .env"""
        target_environment = target_environment or os.environ.get("NODE_ENV")

        if not self.check_env_file(target_environment, force):
            return None

        if not target_environment:
            target_environment = patch_envs(self.project_root / config.ENV_FILE_NAME).get(
                "NODE_ENV"
            )

        if not target_environment:
            self.progress.error("Target environment is not set")
            return None
        return target_environment

    def check_dt_env_file(self, stage: Optional[str], force: bool = False) -> bool:
        if not stage:
            return False

        dt_env_file = self._dt_env_file(stage)
        if dt_env_file.exists():
            return True

        if not force:
            self.progress.warning(
                f"{dt_env_file.name} file not found. Use force -f option to create one."
            )
            return False

        shutil.copyfile(config.DT_ENV_EXAMPLE_FILE, dt_env_file)
        self.progress.success(f"{dt_env_file.name} created")
        return True

    def validate_aws_credentials(self, stage: Optional[str]) -> bool:
        if not stage or not self._dt_env_file(stage).exists():
            return False

        dt_env = patch_envs(self._dt_env_file(stage))
        if not all(dt_env.get(key) for key in ("AWS_REGION", "AWS_ACCESS_KEY", "AWS_SECRET_KEY")):
            self.progress.error("AWS credentials are not set in the environment")
            return False
        return True

    def validate_required_variables(self, stage: Optional[str]) -> bool:
        if not stage or not self._dt_env_file(stage).exists():
            return False

        missing_vars, invalid_vars = validate_required_variables(
            patch_envs(self._dt_env_file(stage))
        )
        if missing_vars:
            self.progress.error(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )
        if invalid_vars:
            self.progress.error(f"Invalid environment variables: {', '.join(invalid_vars)}")
        return not missing_vars and not invalid_vars

    def tool_version(self, tool: str) -> Optional[str]:
        try:
            result = subprocess.run(
                [tool, "--version"], capture_output=True, text=True, timeout=10
            )
        except (OSError, subprocess.TimeoutExpired):
            return None

        if result.returncode != 0:
            return None
        return parse_version(result.stdout or result.stderr)

    def validate_required_tools(self) -> bool:
        all_found = True
        for tool, minimum in config.REQUIRED_TOOLS.items():
            version = self.tool_version(tool)
            if version is None:
                print(f"{Colors.FAIL}❌ {tool} not found (Required: >={minimum}){Colors.ENDC}")
                all_found = False
                continue

            satisfied = version_tuple(version) >= version_tuple(minimum)
            print(
                f"{_mark(satisfied)} Found {tool}: version {version} (Required: >={minimum})"
            )
            all_found = all_found and satisfied
        return all_found
