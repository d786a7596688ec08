"""
Workloads Module
Retail store sample application on EKS
"""

from .components import Component, retail_store_components, component_by_name, deployment_order
from .functions import create_workload_resources

__all__ = [
    "Component",
    "retail_store_components",
    "component_by_name",
    "deployment_order",
    "create_workload_resources"
]
