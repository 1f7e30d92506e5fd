"""Kubernetes operator handing IAM access keys to Vault AWS secrets engines."""

__version__ = "0.1.0"
