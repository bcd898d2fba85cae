"""
Error types raised by DeployThis services and the CLI error handler.
"""

import logging
import os
import sys
import traceback

from .progress_indicator import Colors


class DeployThisError(Exception):
    """Base class for all DeployThis failures"""


class EnvironmentValidationError(DeployThisError):
    """Raised when .env / .env.dt.<stage> files are missing or incomplete"""


class TerraformInitError(DeployThisError):
    pass


class TerraformPlanError(DeployThisError):
    pass


class TerraformApplyError(DeployThisError):
    pass


class TerraformDestroyError(DeployThisError):
    pass


class AWSCredentialsError(DeployThisError):
    pass


class BitbucketError(DeployThisError):
    pass


# Guidance printed for well-known failures, most specific first.
ERROR_GUIDANCE = [
    (
        EnvironmentValidationError,
        "Environment validation failed. Please check your .env and .env.dt files.",
    ),
    (
        TerraformInitError,
        "Terraform initialization failed. Please check your Terraform configuration.",
    ),
    (
        TerraformPlanError,
        "Terraform plan generation failed. Please review your Terraform configuration for errors.",
    ),
    (
        TerraformApplyError,
        "Terraform apply failed. Please review the error message and your Terraform configuration.",
    ),
    (
        TerraformDestroyError,
        "Terraform destroy failed. Please review the error message and your Terraform configuration.",
    ),
    (
        AWSCredentialsError,
        "AWS credentials are invalid or not set. Please check your AWS configuration.",
    ),
]


def guidance_for(error: BaseException, default: str) -> str:
    """Return the guidance message matching an error, or the default"""
    for error_type, message in ERROR_GUIDANCE:
        if isinstance(error, error_type):
            return message
    return default


def handle_error(message: str = "Unknown error.", error: object = None) -> None:
    """
    Print an error with its details and exit with status 1.
    The stack trace is included when DEBUG=1.
    """
    print(f"{Colors.FAIL}Error: {message}{Colors.ENDC}", file=sys.stderr)

    if isinstance(error, BaseException):
        print(f"Details: {error}", file=sys.stderr)
        if os.environ.get("DEBUG") == "1":
            stack = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
            print(f"Stack trace: {stack}", file=sys.stderr)
        logging.debug("Unhandled %s", type(error).__name__, exc_info=error)
    elif isinstance(error, str):
        print(f"Additional info: {error}", file=sys.stderr)

    sys.exit(1)
