#!/usr/bin/env python3
"""
DeployThis command line interface.

Usage:
    dt init [stage] [single|asg] [-f]
    dt deploy [stage] [-f] [--create-new-vpc] [--force-unlock]
    dt config
    dt validate [-f]
    dt status
    dt rollback [stage] [full|partial] [-f] [--force-unlock]
    dt iam {show,create,delete,update} [user]
    dt pipelines variables {list,init,ensure,remove} [options]
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from . import __version__, config
from .aws_resources import AWSResources
from .bitbucket import BitbucketService, VariableScope, mask_variable
from .configuration import Configuration
from .deploy import Deploy
from .errors import BitbucketError, DeployThisError, guidance_for, handle_error
from .iam import IAMService
from .initializer import Init
from .progress_indicator import Colors, ProgressIndicator
from .rollback import DESTROY_TYPES, Rollback
from .validate import ValidateEnvironment


def configure_logging() -> None:
    level = logging.DEBUG if os.environ.get("DEBUG") == "1" else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _project_root() -> Path:
    return Path.cwd()


def cmd_init(args) -> None:
    Init(_project_root(), args.stage, args.deployment_type, args.force).run()


def cmd_deploy(args) -> None:
    result = Deploy(
        args.stage,
        force=args.force,
        create_new_vpc=args.create_new_vpc,
        force_unlock=args.force_unlock,
        project_root=_project_root(),
    ).run()
    if result:
        print(f"\nVPC: {result['vpc_id'] or config.UNDEFINED_TEXT}")
        print(f"IGW: {result['igw_id'] or config.UNDEFINED_TEXT}")


CONFIG_FIELDS = [
    "NODE_ENV",
    "DEPLOYMENT_TYPE",
    "AWS_PROFILE",
    "AWS_REGION",
    "AWS_ACCOUNT_ID",
    "AWS_ACCESS_KEY",
    "AWS_SECRET_KEY",
    "VPC_ID",
    "IGW_ID",
    "ECR_REGISTRY",
    "ECR_REPOSITORY_NAME",
    "CODEDEPLOY_APP_NAME",
    "CODEDEPLOY_GROUP_NAME",
    "CODEDEPLOY_S3_BUCKET",
    "BITBUCKET_APP_PASSWORD",
    "BITBUCKET_WORKSPACE",
    "BITBUCKET_BRANCH",
]


def cmd_config(args) -> None:
    env_config = Configuration(_project_root()).get_config()

    print(f"\n{Colors.BOLD}Configuration:{Colors.ENDC}")
    for field in CONFIG_FIELDS:
        value = env_config.get(field)
        marker = "🔹" if value else "🔸"
        print(f"{marker} {field}".ljust(40) + f": {value or config.UNDEFINED_TEXT}")
    print()


def cmd_validate(args) -> None:
    ValidateEnvironment(_project_root()).run(force=args.force)


def cmd_status(args) -> None:
    env_config = Configuration(_project_root()).get_config()
    project_name = env_config.get("PROJECT_NAME")
    if not project_name:
        raise DeployThisError("PROJECT_NAME is not set in .env")

    instances = AWSResources.from_env(env_config).describe_project_instances(project_name)
    print(f"\n{Colors.BOLD}EC2 instances of {project_name}:{Colors.ENDC}")
    ProgressIndicator(0).table(
        instances, ["instance_id", "state", "public_ip", "private_ip"]
    )
    print()


def cmd_rollback(args) -> None:
    Rollback(
        args.stage,
        args.destroy_type,
        force=args.force,
        force_unlock=args.force_unlock,
        project_root=_project_root(),
    ).run()


def cmd_iam(args) -> None:
    service = IAMService.from_env(Configuration(_project_root()).get_config())

    if args.action == "show":
        service.show(args.user)
        return

    if not args.user:
        raise DeployThisError(f"A user name is required for `iam {args.action}`")
    getattr(service, args.action)(args.user)


def create_bitbucket_service(env_config) -> BitbucketService:
    username = env_config.get("BITBUCKET_USERNAME")
    app_password = env_config.get("BITBUCKET_APP_PASSWORD")
    workspace = env_config.get("BITBUCKET_WORKSPACE")
    repo_slug = env_config.get("BITBUCKET_REPO_SLUG") or env_config.get("PROJECT_NAME")

    if not (username and app_password and workspace and repo_slug):
        raise BitbucketError(
            "Missing required environment variables: BITBUCKET_USERNAME, "
            "BITBUCKET_APP_PASSWORD, BITBUCKET_WORKSPACE, BITBUCKET_REPO_SLUG"
        )
    return BitbucketService(username, app_password, workspace, repo_slug)


def _print_variables(variables) -> None:
    progress = ProgressIndicator(0)
    columns = ["key", "value", "secured"]

    print(f"\n{Colors.BOLD}Bitbucket Pipeline Variables:{Colors.ENDC}")
    deployments = variables.get("deployments")
    if deployments:
        progress.info("Deployment Variables:")
        for stage, stage_variables in deployments.items():
            print(f"Stage: {stage}")
            progress.table([mask_variable(v) for v in stage_variables], columns)
    else:
        progress.info("Deployment Variables ignored or has no variables.")
    print()

    repository = variables.get("repository")
    if repository:
        progress.info("Repository Variables:")
        progress.table([mask_variable(v) for v in repository], columns)
    else:
        progress.info("Repository Variables ignored or has no variables.")
    print()


def cmd_pipelines_variables(args) -> None:
    configuration = Configuration(_project_root())
    env_config = configuration.get_config()
    service = create_bitbucket_service(env_config)

    if args.variables_action == "list":
        _print_variables(service.list_variables(args.scope, args.stage))
    elif args.variables_action == "init":
        allowed = {
            key: env_config[key]
            for key in Configuration.GITOPS_ALLOWED_VARIABLES
            if env_config.get(key)
        }
        print("\nInitializing Bitbucket Pipeline variables...")
        written = service.initialize_from_environment(allowed)
        ProgressIndicator(0).success(f"{written} variables initialized successfully!")
    elif args.variables_action == "ensure":
        service.ensure_variable(
            {"key": args.key, "value": args.value, "secured": args.secure},
            args.scope,
            args.stage,
        )
        ProgressIndicator(0).success(f"Variable '{args.key}' ensured successfully!")
    elif args.variables_action == "remove":
        service.remove_variable(args.key, args.scope, args.stage)
        ProgressIndicator(0).success(f"Variable '{args.key}' removed successfully!")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dt",
        description="DeployThis: provision AWS infrastructure with Terraform",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-v", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init", help="Initialize a stage from templates")
    init_parser.add_argument("stage", nargs="?", help="Target environment")
    init_parser.add_argument(
        "deployment_type", nargs="?", choices=config.DEPLOYMENT_TYPES, help="Deployment type"
    )
    init_parser.add_argument(
        "-f", "--force", action="store_true", help="Replace existing Terraform files."
    )
    init_parser.set_defaults(func=cmd_init)

    deploy_parser = subparsers.add_parser("deploy", help="Deploy a stage")
    deploy_parser.add_argument("stage", nargs="?", help="Target environment")
    deploy_parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Skip confirmations (requires a stage).",
    )
    deploy_parser.add_argument(
        "--create-new-vpc",
        action="store_true",
        help="Create a new VPC / IGW without asking when none can be reused.",
    )
    deploy_parser.add_argument(
        "--force-unlock",
        action="store_true",
        help="Bypass Terraform state locks using -lock=false (use with caution).",
    )
    deploy_parser.set_defaults(func=cmd_deploy)

    config_parser = subparsers.add_parser("config", help="Show the current configuration")
    config_parser.set_defaults(func=cmd_config)

    validate_parser = subparsers.add_parser("validate", help="Validate the project setup")
    validate_parser.add_argument(
        "-f", "--force", action="store_true", help="Create missing env files from templates."
    )
    validate_parser.set_defaults(func=cmd_validate)

    status_parser = subparsers.add_parser("status", help="Show the project's EC2 instances")
    status_parser.set_defaults(func=cmd_status)

    rollback_parser = subparsers.add_parser("rollback", help="Destroy a stage")
    rollback_parser.add_argument("stage", nargs="?", help="Target environment")
    rollback_parser.add_argument(
        "destroy_type", nargs="?", choices=DESTROY_TYPES, help="Destroy type"
    )
    rollback_parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Skip confirmations (requires a stage or destroy type).",
    )
    rollback_parser.add_argument(
        "--force-unlock",
        action="store_true",
        help="Bypass Terraform state locks using -lock=false (use with caution).",
    )
    rollback_parser.set_defaults(func=cmd_rollback)

    iam_parser = subparsers.add_parser("iam", help="Manage IAM service accounts")
    iam_parser.add_argument("action", choices=["show", "create", "delete", "update"])
    iam_parser.add_argument("user", nargs="?", help="IAM user name")
    iam_parser.set_defaults(func=cmd_iam)

    pipelines_parser = subparsers.add_parser("pipelines", help="Manage Bitbucket Pipelines")
    pipelines_subparsers = pipelines_parser.add_subparsers(dest="pipelines_command")
    variables_parser = pipelines_subparsers.add_parser(
        "variables", help="Manage Bitbucket Pipeline variables"
    )
    variables_subparsers = variables_parser.add_subparsers(dest="variables_action")

    list_parser = variables_subparsers.add_parser("list", help="List pipeline variables")
    list_parser.add_argument("--stage", help="Stage for deployment variables")
    list_parser.add_argument("--scope", choices=VariableScope.ALL, help="Variable scope")

    variables_subparsers.add_parser(
        "init", help="Initialize pipeline variables from the environment files"
    )

    ensure_parser = variables_subparsers.add_parser(
        "ensure", help="Ensure pipeline variable exists with specified value"
    )
    ensure_parser.add_argument("--key", required=True, help="Variable key")
    ensure_parser.add_argument("--value", required=True, help="Variable value")
    ensure_parser.add_argument(
        "--scope", choices=VariableScope.ALL, default=VariableScope.DEPLOYMENT
    )
    ensure_parser.add_argument("--stage", help="Stage for deployment variables")
    ensure_parser.add_argument(
        "--secure", action="store_true", help="Mark variable as secured"
    )

    remove_parser = variables_subparsers.add_parser("remove", help="Remove pipeline variable")
    remove_parser.add_argument("--key", required=True, help="Variable key")
    remove_parser.add_argument("--scope", choices=VariableScope.ALL, required=True)
    remove_parser.add_argument("--stage", help="Stage for deployment variables")

    variables_parser.set_defaults(func=cmd_pipelines_variables)

    subparsers.add_parser("help", help="Show this help message")

    return parser


ERROR_MESSAGES = {
    "init": "Initialization failed",
    "deploy": "Deployment failed",
    "config": "Failed to read configuration",
    "validate": "Validation failed",
    "status": "Failed to get status",
    "rollback": "Rollback failed",
    "iam": "IAM command failed",
    "pipelines": "Pipelines command failed",
}


def main(argv: Optional[List[str]] = None) -> None:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return

    if args.command == "pipelines" and not getattr(args, "variables_action", None):
        parser.parse_args(["pipelines", "variables", "--help"])
        return

    if args.command == "deploy" and args.force and not args.stage:
        parser.error("deploy --force requires a target environment")
    if (
        args.command == "rollback"
        and args.force
        and not (args.stage or args.destroy_type)
    ):
        parser.error("rollback --force requires a target environment or destroy type")

    try:
        args.func(args)
    except KeyboardInterrupt:
        print(f"\n{Colors.WARNING}Operation cancelled by user.{Colors.ENDC}")
        sys.exit(1)
    except (DeployThisError, ClientError, BotoCoreError, OSError, ValueError) as e:
        handle_error(guidance_for(e, ERROR_MESSAGES[args.command]), e)


if __name__ == "__main__":
    main()
