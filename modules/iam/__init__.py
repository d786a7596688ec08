"""
IAM Module for EKS
Cluster and node roles plus a read-only user
"""

from .functions import create_iam_resources, assume_role_policy, readonly_eks_policy

__all__ = ["create_iam_resources", "assume_role_policy", "readonly_eks_policy"]
