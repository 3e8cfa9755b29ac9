"""Audit Terraform and Terragrunt module usage across repositories."""

__version__ = "0.4.0"
