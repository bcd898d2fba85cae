"""
Scaffolds .terraforms/<stage> and the environment files of a project.
"""

import shutil
from pathlib import Path
from typing import List, Optional

from . import config, prompts
from .env_files import update_env_file
from .errors import DeployThisError
from .progress_indicator import Colors, ProgressIndicator


def _is_terraform_file(path: Path) -> bool:
    return path.is_file() and path.name.endswith(config.TERRAFORM_FILE_EXTENSIONS)


class Init:
    def __init__(
        self,
        project_root: Optional[Path] = None,
        target_environment: Optional[str] = None,
        deployment_type: Optional[str] = None,
        force: bool = False,
    ):
        self.project_root = Path(project_root or Path.cwd()).absolute()
        self.target_environment = target_environment
        self.deployment_type = deployment_type
        self.force = force
        self.progress = ProgressIndicator(3)

    def run(self) -> bool:
        """Returns True when the stage was initialized"""
        if not self.target_environment:
            self.target_environment = prompts.select(
                "Select target environment:", config.TARGET_ENVIRONMENTS
            )
            if not self.target_environment:
                raise DeployThisError("Target environment is required.")

        if not self.deployment_type:
            self.deployment_type = prompts.select(
                "Select deployment type:", config.DEPLOYMENT_TYPES
            )
            if not self.deployment_type:
                print("Exiting...")
                return False
        if self.deployment_type not in config.DEPLOYMENT_TYPES:
            raise DeployThisError(
                f"Unknown deployment type: {self.deployment_type}. "
                f"Use one of {', '.join(config.DEPLOYMENT_TYPES)}"
            )

        terraform_dir = self.project_root / config.TERRAFORMS_DIR_NAME / self.target_environment

        self.progress.next_step(f"Preparing {terraform_dir}")
        if self.ensure_terraform_directory(terraform_dir):
            self.progress.next_step(f"Generating {self.deployment_type} Terraform files")
            self.generate_terraform_files(terraform_dir)
        else:
            self.progress.warning(
                "Terraform directory already contains files. Skipping file creation."
            )

        self.progress.next_step("Creating environment files")
        self.create_env_files()

        self.print_next_steps()
        return True

    def ensure_terraform_directory(self, terraform_dir: Path) -> bool:
        """
        Create the stage directory or clear its Terraform files.
        Returns False when the user keeps the existing files.
        """
        if terraform_dir.exists():
            existing = [path for path in terraform_dir.iterdir() if _is_terraform_file(path)]
            if existing and not self.force:
                if not prompts.confirm(
                    "Terraform files already exist. Do you want to replace them?"
                ):
                    return False
            for path in existing:
                path.unlink()
        else:
            terraform_dir.mkdir(parents=True)
        return True

    def generate_terraform_files(self, terraform_dir: Path) -> List[str]:
        template_dir = config.TERRAFORM_TEMPLATES_DIR / self.deployment_type
        created = []

        for template in sorted(template_dir.iterdir()):
            if not _is_terraform_file(template):
                continue
            shutil.copyfile(template, terraform_dir / template.name)
            print(f"{template.name} created in {terraform_dir}")
            created.append(template.name)

        marker = config.DEPLOYMENT_TYPE_MARKERS[self.deployment_type]
        if not (terraform_dir / marker).exists():
            (terraform_dir / marker).write_text("", encoding="utf-8")
            print(f"{marker} created in {terraform_dir}")
            created.append(marker)

        return created

    def create_env_files(self) -> None:
        """Create .env and .env.dt.<stage> from the packaged examples when missing"""
        env_file = self.project_root / config.ENV_FILE_NAME
        if not env_file.exists():
            shutil.copyfile(config.ENV_EXAMPLE_FILE, env_file)
            update_env_file(env_file, {"NODE_ENV": self.target_environment})
            self.progress.success(f"{env_file.name} created")

        dt_env_file = self.project_root / f"{config.DT_ENV_FILE_PREFIX}{self.target_environment}"
        if not dt_env_file.exists():
            shutil.copyfile(config.DT_ENV_EXAMPLE_FILE, dt_env_file)
            update_env_file(dt_env_file, {"DEPLOYMENT_TYPE": self.deployment_type})
            self.progress.success(f"{dt_env_file.name} created")

    def print_next_steps(self) -> None:
        print(f"\n{Colors.OKGREEN}Initialization completed successfully.{Colors.ENDC}\n")
        print(f"{Colors.BOLD}Next steps:{Colors.ENDC}")
        print("==============")
        print('  1. Review and update ".env" file')
        print(f"     {self.project_root / config.ENV_FILE_NAME}\n")
        print(
            f'  2. Review and update ".env.dt.{self.target_environment}" file with correct '
            "credentials and other configurations."
        )
        print(
            f"     {self.project_root / (config.DT_ENV_FILE_PREFIX + self.target_environment)}\n"
        )
        print(
            f"  3. Run `dt deploy {self.target_environment}` to start the deployment "
            "for this stage."
        )
