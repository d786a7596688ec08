"""
State Storage Module
S3 backend and KMS secrets provider for Pulumi state
"""

from .functions import create_state_storage_resources, state_bucket_name

__all__ = ["create_state_storage_resources", "state_bucket_name"]
