"""
Pulumi modules for the Retail Store EKS infrastructure
Function-based: each module returns a dict of outputs and resource references
"""

from .vpc import create_vpc_resources
from .iam import create_iam_resources
from .eks import create_eks_resources
from .workloads import create_workload_resources
from .state_storage import create_state_storage_resources

__all__ = [
    "create_vpc_resources",
    "create_iam_resources",
    "create_eks_resources",
    "create_workload_resources",
    "create_state_storage_resources"
]
