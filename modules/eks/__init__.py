"""
EKS Module
Control plane, managed node group, add-ons and access entries
"""

from .functions import create_eks_resources, kubeconfig_command

__all__ = ["create_eks_resources", "kubeconfig_command"]
