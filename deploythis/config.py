"""Configuration for DeployThis

This module contains the fixed settings of the CLI: file names, Terraform
timeouts, AWS policies and Bitbucket API settings.
Project-specific values live in the project's .env and .env.dt.<stage> files.
"""

from pathlib import Path

# Project layout
ENV_FILE_NAME = ".env"
DT_ENV_FILE_PREFIX = ".env.dt."
TERRAFORMS_DIR_NAME = ".terraforms"
PLAN_FILE_NAME = "infra.plan"
GENERATED_CONFIG_FILE_NAME = "infra.generated.tf"
TERRAFORM_FILE_EXTENSIONS = (".tf", ".sh", ".md")

# Packaged templates
TEMPLATES_DIR = Path(__file__).parent / "templates"
TERRAFORM_TEMPLATES_DIR = TEMPLATES_DIR / "terraforms"
ENV_EXAMPLE_FILE = TEMPLATES_DIR / "environments" / ".env-example"
DT_ENV_EXAMPLE_FILE = TEMPLATES_DIR / "environments" / ".env.dt.stage-example"

# Stages and deployment types
TARGET_ENVIRONMENTS = ["staging", "production"]
DEPLOYMENT_TYPES = ["single", "asg"]
DEPLOYMENT_TYPE_MARKERS = {"single": "SINGLE.md", "asg": "ASG.md"}

# Terraform settings
TERRAFORM_CMD = "terraform"
TERRAFORM_TIMEOUTS = {
    "init": 300,
    "plan": 600,
    "apply": 1800,  # 30 minutes
    "destroy": 1200,  # 20 minutes
    "import": 300,
    "show": 120,
    "version": 10,
}

# Terraform addresses of the shared network resources
VPC_RESOURCE_ADDRESS = "aws_vpc.VPC"
IGW_RESOURCE_ADDRESS = "aws_internet_gateway.InternetGateway"

# Partial destroy targets in reverse dependency order (VPC and IGW excluded)
PARTIAL_DESTROY_TARGETS = [
    # dependent resources
    "aws_autoscaling_attachment.asg_attachment_alb",
    "aws_autoscaling_lifecycle_hook.termination_hook",
    "aws_autoscaling_policy.cpu_policy",
    "aws_autoscaling_policy.memory_policy",
    "aws_cloudwatch_metric_alarm.high_cpu",
    # core resources
    "aws_codedeploy_deployment_group.app_dg",
    "aws_autoscaling_group.app",
    "aws_lb_listener.http",
    "aws_lb_listener.https",
    "aws_lb.app",
    "aws_launch_template.app",
    # supporting resources
    "aws_ecr_repository.app_repo",
    "aws_codedeploy_app.app",
    "aws_lb_target_group.app",
    "aws_iam_role_policy_attachment.codedeploy_policy",
    "aws_iam_role_policy_attachment.ec2_policy",
    "aws_iam_instance_profile.ec2_profile",
    "aws_iam_role.codedeploy_role",
    "aws_iam_role.ec2_role",
    "aws_key_pair.dt_keypair",
    "local_file.dt_rsa_private",
    "tls_private_key.dt_private",
    # network resources
    "aws_ssm_parameter.current_instance_type",
    "aws_route_table_association.public[0]",
    "aws_route_table_association.public[1]",
    "aws_route_table.public",
    "aws_subnet.public[0]",
    "aws_subnet.public[1]",
    "aws_security_group.ec2",
    "aws_security_group.alb",
]

# Managed policies attached to DeployThis service accounts
REQUIRED_IAM_POLICIES = [
    "arn:aws:iam::aws:policy/AmazonEC2FullAccess",
    "arn:aws:iam::aws:policy/AmazonVPCFullAccess",
    "arn:aws:iam::aws:policy/AmazonS3FullAccess",
    "arn:aws:iam::aws:policy/AmazonRDSFullAccess",
    "arn:aws:iam::aws:policy/ElasticLoadBalancingFullAccess",
    "arn:aws:iam::aws:policy/AWSCodeDeployFullAccess",
    "arn:aws:iam::aws:policy/AmazonECS_FullAccess",
    "arn:aws:iam::aws:policy/CloudWatchFullAccess",
]
SERVICE_ACCOUNT_TAG_KEY = "ServiceAccount"
SERVICE_ACCOUNT_TAG_VALUE = "ServiceAccounts"

# Minimum versions of the external tools used by a deployment
REQUIRED_TOOLS = {
    "terraform": "1.0.0",
    "aws": "2.0.0",
    "docker": "20.0.0",
    "git": "2.0.0",
}

# Bitbucket API
BITBUCKET_API_URL = "https://api.bitbucket.org/2.0"
BITBUCKET_TIMEOUT = 30  # Seconds
BITBUCKET_REPOSITORY_KEYS = ["PROJECT_NAME", "DEPLOYER"]
BITBUCKET_DEFAULT_STAGES = ["staging", "test"]
BITBUCKET_SECURED_MARKERS = ["key", "secret", "password"]

# Shown in place of unset values
UNDEFINED_TEXT = "Not set"
