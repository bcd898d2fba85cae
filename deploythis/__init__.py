"""
DeployThis (dt) - AWS infrastructure deployment through Terraform.
"""

__version__ = "1.3.0"
