"""
Configuration management for the Retail Store EKS deployment
"""

import ipaddress
import pulumi
from typing import Dict

from modules.vpc.functions import resolve_subnet_cidrs

UI_SERVICE_TYPES = ("ClusterIP", "NodePort", "LoadBalancer")


class Config:
    """Centralized configuration management for the EKS deployment"""

    def __init__(self):
        self.config = pulumi.Config()

        # AWS Configuration
        self.aws_region = pulumi.Config("aws").get("region") or "us-east-1"

        # Cluster Configuration
        self.cluster_name = self.config.get("cluster_name") or "retail-store-eks"
        self.cluster_version = self.config.get("cluster_version") or "1.31"
        self.endpoint_public_access = self._get_bool("endpoint_public_access", True)
        self.endpoint_private_access = self._get_bool("endpoint_private_access", True)

        # Node Configuration
        self.node_instance_types = self.config.get_object("node_instance_types") or ["t3.medium"]
        self.node_desired_size = self._get_int("node_desired_size", 2)
        self.node_max_size = self._get_int("node_max_size", 3)
        self.node_min_size = self._get_int("node_min_size", 1)
        self.node_disk_size = self._get_int("node_disk_size", 20)
        self.enable_spot_instances = self._get_bool("enable_spot_instances", False)

        # VPC Configuration
        self.vpc_cidr = self.config.get("vpc_cidr") or "10.0.0.0/16"
        self.az_count = self._get_int("az_count", 2)
        self.public_subnet_cidrs = self.config.get_object("public_subnet_cidrs")
        self.private_subnet_cidrs = self.config.get_object("private_subnet_cidrs")
        self.single_nat_gateway = self._get_bool("single_nat_gateway", True)

        # Logging Configuration
        self.cluster_enabled_log_types = self.config.get_object("cluster_enabled_log_types") or ["api", "audit", "authenticator"]
        self.cloudwatch_log_group_retention_in_days = self._get_int("cloudwatch_log_group_retention_in_days", 7)

        # Read-only access
        self.readonly_user_name = self.config.get("readonly_user_name") or f"{self.cluster_name}-readonly"
        self.create_readonly_access_key = self._get_bool("create_readonly_access_key", False)

        # Retail store application
        self.retail_store_namespace = self.config.get("retail_store_namespace") or "retail-store"
        self.retail_store_version = self.config.get("retail_store_version") or "1.2.1"
        self.retail_store_replicas = self._get_int("retail_store_replicas", 1)
        self.retail_store_manifest_url = self.config.get("retail_store_manifest_url") or ""
        self.ui_service_type = self.config.get("ui_service_type") or "LoadBalancer"

        # Additional tags
        self.additional_tags = self.config.get_object("tags") or {}

    def _get_int(self, key: str, default: int) -> int:
        value = self.config.get_int(key)
        return default if value is None else value

    def _get_bool(self, key: str, default: bool) -> bool:
        # get_bool returns None when unset
        value = self.config.get_bool(key)
        return default if value is None else value

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Project": "retail-store-eks",
            "Cluster": self.cluster_name,
            "ManagedBy": "pulumi",
        }
        base_tags.update(self.additional_tags)
        return base_tags

    @property
    def capacity_type(self) -> str:
        """Get node group capacity type based on spot instance configuration"""
        return "SPOT" if self.enable_spot_instances else "ON_DEMAND"

    def validate(self) -> None:
        """
        Check settings that AWS would otherwise reject halfway through an update

        Raises:
            ValueError: naming the offending configuration key
        """
        if self.node_min_size < 0:
            raise ValueError(f"node_min_size must be >= 0, got {self.node_min_size}")
        if self.node_min_size > self.node_desired_size:
            raise ValueError(
                f"node_min_size ({self.node_min_size}) must not exceed node_desired_size ({self.node_desired_size})")
        if self.node_desired_size > self.node_max_size:
            raise ValueError(
                f"node_desired_size ({self.node_desired_size}) must not exceed node_max_size ({self.node_max_size})")
        if self.node_max_size < 1:
            raise ValueError(f"node_max_size must be >= 1, got {self.node_max_size}")
        if not self.node_instance_types:
            raise ValueError("node_instance_types must name at least one instance type")

        # EKS requires subnets in at least two availability zones
        if self.az_count < 2:
            raise ValueError(f"az_count must be >= 2, got {self.az_count}")

        try:
            vpc_network = ipaddress.ip_network(self.vpc_cidr)
        except ValueError as e:
            raise ValueError(f"vpc_cidr is not a valid CIDR block: {self.vpc_cidr}") from e

        try:
            public_cidrs, private_cidrs = resolve_subnet_cidrs(
                self.vpc_cidr, self.az_count, self.public_subnet_cidrs, self.private_subnet_cidrs)
        except ValueError as e:
            raise ValueError(
                f"vpc_cidr {self.vpc_cidr} cannot be split into default subnets ({e}); "
                "set public_subnet_cidrs and private_subnet_cidrs explicitly") from e

        # Planned subnets are checked too, so a configured list cannot collide with them
        subnets = []
        for key, cidrs in (("public_subnet_cidrs", public_cidrs),
                           ("private_subnet_cidrs", private_cidrs)):
            if len(cidrs) != self.az_count:
                raise ValueError(f"{key} must list {self.az_count} CIDR blocks (one per AZ), got {len(cidrs)}")
            for cidr in cidrs:
                try:
                    network = ipaddress.ip_network(cidr)
                except ValueError as e:
                    raise ValueError(f"{key} contains an invalid CIDR block: {cidr}") from e
                if not network.subnet_of(vpc_network):
                    raise ValueError(f"{key} entry {cidr} is outside vpc_cidr {self.vpc_cidr}")
                subnets.append(network)

        for i, first in enumerate(subnets):
            for second in subnets[i + 1:]:
                if first.overlaps(second):
                    raise ValueError(f"Subnet CIDR blocks overlap: {first} and {second}")

        if self.ui_service_type not in UI_SERVICE_TYPES:
            raise ValueError(
                f"ui_service_type must be one of {', '.join(UI_SERVICE_TYPES)}, got {self.ui_service_type}")
        if self.retail_store_replicas < 1:
            raise ValueError(f"retail_store_replicas must be >= 1, got {self.retail_store_replicas}")


def get_config() -> Config:
    """Get the global configuration instance"""
    return Config()
