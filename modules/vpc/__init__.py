"""
VPC Module for EKS
Public and private subnets across availability zones with NAT egress
"""

from .functions import create_vpc_resources, plan_subnet_cidrs, resolve_subnet_cidrs

__all__ = ["create_vpc_resources", "plan_subnet_cidrs", "resolve_subnet_cidrs"]
