"""
EKS Module Functions
Creates the EKS control plane, managed node group, add-ons and access entries
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Optional

VIEW_POLICY_ARN = "arn:aws:eks::aws:cluster-access-policy/AmazonEKSViewPolicy"

DEFAULT_ADDONS = ["vpc-cni", "kube-proxy", "coredns"]

# Add-ons that schedule pods and therefore need nodes before they go healthy
NODE_DEPENDENT_ADDONS = {"coredns"}


def kubeconfig_command(region: str, cluster_name: str) -> str:
    """Command that merges the cluster into the local kubeconfig"""
    return f"aws eks update-kubeconfig --region {region} --name {cluster_name}"


def create_cloudwatch_log_group(name: str, retention_days: int = 7, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create CloudWatch log group for EKS control plane logs

    EKS writes to /aws/eks/<cluster>/cluster and the group must exist before
    the cluster for the retention setting to apply.
    """
    tags = tags or {}

    log_group = aws.cloudwatch.LogGroup(
        f"{name}-eks-log-group",
        name=f"/aws/eks/{name}/cluster",
        retention_in_days=retention_days,
        tags={
            **tags,
            "Name": f"{name}-eks-log-group",
            "Module": "eks"
        }
    )

    return {
        "log_group": log_group,
        "log_group_name": log_group.name
    }


def create_eks_cluster(name: str, version: str, role_arn: pulumi.Output[str],
                       subnet_ids: List[pulumi.Output[str]],
                       enabled_log_types: List[str] = None,
                       endpoint_private_access: bool = True,
                       endpoint_public_access: bool = True,
                       depends_on: Optional[List[pulumi.Resource]] = None,
                       tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS cluster

    Args:
        name: Cluster name
        version: Kubernetes version
        role_arn: IAM role ARN for cluster
        subnet_ids: Subnets for the control plane ENIs (public and private)
        enabled_log_types: Control plane log types to ship to CloudWatch
        endpoint_private_access: Enable private API endpoint
        endpoint_public_access: Enable public API endpoint
        depends_on: Resources that must exist first (role attachments, log group)
        tags: Additional tags

    Returns:
        Dict with cluster resource and outputs
    """
    tags = tags or {}
    enabled_log_types = enabled_log_types or ["api", "audit", "authenticator"]

    cluster = aws.eks.Cluster(
        f"{name}-cluster",
        name=name,
        version=version,
        role_arn=role_arn,
        vpc_config=aws.eks.ClusterVpcConfigArgs(
            subnet_ids=subnet_ids,
            endpoint_private_access=endpoint_private_access,
            endpoint_public_access=endpoint_public_access
        ),
        access_config=aws.eks.ClusterAccessConfigArgs(
            authentication_mode="API_AND_CONFIG_MAP",
            bootstrap_cluster_creator_admin_permissions=True
        ),
        enabled_cluster_log_types=enabled_log_types,
        tags={
            **tags,
            "Name": f"{name}-cluster",
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )

    return {
        "cluster": cluster,
        "cluster_id": cluster.id,
        "cluster_arn": cluster.arn,
        "cluster_endpoint": cluster.endpoint,
        "cluster_version": cluster.version,
        "cluster_certificate_authority_data": cluster.certificate_authority.data
    }


def create_node_group(name: str, cluster_name: pulumi.Output[str], role_arn: pulumi.Output[str],
                      subnet_ids: List[pulumi.Output[str]],
                      instance_types: List[str], desired_size: int, max_size: int, min_size: int,
                      disk_size: int, capacity_type: str = "ON_DEMAND",
                      depends_on: Optional[List[pulumi.Resource]] = None,
                      tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS managed node group in the private subnets

    Args:
        name: Node group name prefix
        cluster_name: EKS cluster name
        role_arn: IAM role ARN for node group
        subnet_ids: Private subnet IDs
        instance_types: List of EC2 instance types
        desired_size: Desired number of nodes
        max_size: Maximum number of nodes
        min_size: Minimum number of nodes
        disk_size: EBS volume size in GB
        capacity_type: Capacity type (ON_DEMAND or SPOT)
        depends_on: Node role policy attachments
        tags: Additional tags

    Returns:
        Dict with node group resource and outputs
    """
    tags = tags or {}

    node_group = aws.eks.NodeGroup(
        f"{name}-node-group",
        cluster_name=cluster_name,
        node_group_name=f"{name}-nodes",
        node_role_arn=role_arn,
        subnet_ids=subnet_ids,
        capacity_type=capacity_type,
        instance_types=instance_types,
        disk_size=disk_size,
        scaling_config=aws.eks.NodeGroupScalingConfigArgs(
            desired_size=desired_size,
            max_size=max_size,
            min_size=min_size
        ),
        update_config=aws.eks.NodeGroupUpdateConfigArgs(
            max_unavailable=1
        ),
        tags={
            **tags,
            "Name": f"{name}-node-group",
            "Module": "eks"
        },
        opts=pulumi.ResourceOptions(
            depends_on=depends_on or [],
            # Cluster autoscaler and manual scaling move desired_size
            ignore_changes=["scalingConfig.desiredSize"]
        )
    )

    return {
        "node_group": node_group,
        "node_group_arn": node_group.arn,
        "node_group_status": node_group.status
    }


def create_eks_addons(name: str, cluster_name: pulumi.Output[str],
                      addon_names: List[str] = None,
                      node_group=None,
                      tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create EKS managed add-ons

    Args:
        name: Cluster name
        cluster_name: EKS cluster name output
        addon_names: Add-ons to install
        node_group: Node group that pod-running add-ons wait for
        tags: Additional tags

    Returns:
        Dict with addon resources keyed by add-on name
    """
    tags = tags or {}
    addon_names = DEFAULT_ADDONS if addon_names is None else addon_names
    addons = {}

    for addon_name in addon_names:
        opts = None
        if node_group is not None and addon_name in NODE_DEPENDENT_ADDONS:
            opts = pulumi.ResourceOptions(depends_on=[node_group])

        addons[addon_name] = aws.eks.Addon(
            f"{name}-{addon_name}-addon",
            cluster_name=cluster_name,
            addon_name=addon_name,
            resolve_conflicts_on_create="OVERWRITE",
            resolve_conflicts_on_update="OVERWRITE",
            tags={
                **tags,
                "Name": f"{name}-{addon_name}-addon",
                "Module": "eks"
            },
            opts=opts
        )

    return {"addons": addons}


def create_readonly_access(name: str, cluster_name: pulumi.Output[str],
                           principal_arn: pulumi.Output[str],
                           tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Grant an IAM principal cluster-wide view access through an EKS access entry

    Args:
        name: Cluster name
        cluster_name: EKS cluster name output
        principal_arn: IAM user or role ARN
        tags: Additional tags

    Returns:
        Dict with access entry and policy association
    """
    tags = tags or {}

    access_entry = aws.eks.AccessEntry(
        f"{name}-readonly-access",
        cluster_name=cluster_name,
        principal_arn=principal_arn,
        type="STANDARD",
        tags={
            **tags,
            "Module": "eks"
        }
    )

    association = aws.eks.AccessPolicyAssociation(
        f"{name}-readonly-view",
        cluster_name=cluster_name,
        principal_arn=principal_arn,
        policy_arn=VIEW_POLICY_ARN,
        access_scope=aws.eks.AccessPolicyAssociationAccessScopeArgs(type="cluster"),
        opts=pulumi.ResourceOptions(depends_on=[access_entry])
    )

    return {
        "access_entry": access_entry,
        "policy_association": association
    }


def create_eks_resources(cluster_name: str, cluster_version: str,
                         cluster_role_arn: pulumi.Output[str], node_group_role_arn: pulumi.Output[str],
                         public_subnet_ids: List[pulumi.Output[str]],
                         private_subnet_ids: List[pulumi.Output[str]],
                         node_instance_types: List[str],
                         node_desired_size: int, node_max_size: int, node_min_size: int,
                         node_disk_size: int, capacity_type: str = "ON_DEMAND",
                         cluster_enabled_log_types: List[str] = None,
                         cloudwatch_log_group_retention_in_days: int = 7,
                         endpoint_private_access: bool = True,
                         endpoint_public_access: bool = True,
                         readonly_principal_arn: Optional[pulumi.Output[str]] = None,
                         cluster_depends_on: Optional[List[pulumi.Resource]] = None,
                         node_group_depends_on: Optional[List[pulumi.Resource]] = None,
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create complete EKS infrastructure

    Args:
        cluster_name: EKS cluster name
        cluster_version: Kubernetes version
        cluster_role_arn: IAM role ARN for cluster
        node_group_role_arn: IAM role ARN for node group
        public_subnet_ids: Public subnet IDs (load balancers)
        private_subnet_ids: Private subnet IDs (nodes)
        node_instance_types: List of EC2 instance types
        node_desired_size: Desired number of nodes
        node_max_size: Maximum number of nodes
        node_min_size: Minimum number of nodes
        node_disk_size: EBS volume size in GB
        capacity_type: Capacity type (ON_DEMAND or SPOT)
        cluster_enabled_log_types: List of enabled log types
        cloudwatch_log_group_retention_in_days: Log retention in days
        endpoint_private_access: Enable private API endpoint
        endpoint_public_access: Enable public API endpoint
        readonly_principal_arn: IAM principal granted view access
        cluster_depends_on: Cluster role policy attachments
        node_group_depends_on: Node role policy attachments
        tags: Additional tags

    Returns:
        Dict with all EKS resources and outputs
    """
    tags = tags or {}

    log_group_result = create_cloudwatch_log_group(
        cluster_name,
        cloudwatch_log_group_retention_in_days,
        tags
    )

    cluster_result = create_eks_cluster(
        name=cluster_name,
        version=cluster_version,
        role_arn=cluster_role_arn,
        subnet_ids=list(private_subnet_ids) + list(public_subnet_ids),
        enabled_log_types=cluster_enabled_log_types,
        endpoint_private_access=endpoint_private_access,
        endpoint_public_access=endpoint_public_access,
        depends_on=[log_group_result["log_group"], *(cluster_depends_on or [])],
        tags=tags
    )

    pulumi.log.info(
        f"Node group {cluster_name}-nodes: {node_min_size}/{node_desired_size}/{node_max_size} "
        f"(min/desired/max) x {', '.join(node_instance_types)} {capacity_type}"
    )

    node_group_result = create_node_group(
        name=cluster_name,
        cluster_name=cluster_result["cluster"].name,
        role_arn=node_group_role_arn,
        subnet_ids=private_subnet_ids,
        instance_types=node_instance_types,
        desired_size=node_desired_size,
        max_size=node_max_size,
        min_size=node_min_size,
        disk_size=node_disk_size,
        capacity_type=capacity_type,
        depends_on=node_group_depends_on,
        tags=tags
    )

    addons_result = create_eks_addons(
        name=cluster_name,
        cluster_name=cluster_result["cluster"].name,
        node_group=node_group_result["node_group"],
        tags=tags
    )

    readonly_result = None
    if readonly_principal_arn is not None:
        readonly_result = create_readonly_access(
            cluster_name,
            cluster_result["cluster"].name,
            readonly_principal_arn,
            tags
        )

    return {
        "cluster_id": cluster_result["cluster_id"],
        "cluster_arn": cluster_result["cluster_arn"],
        "cluster_endpoint": cluster_result["cluster_endpoint"],
        "cluster_version_output": cluster_result["cluster_version"],
        "cluster_certificate_authority_data": cluster_result["cluster_certificate_authority_data"],
        "node_group_arn": node_group_result["node_group_arn"],
        "node_group_status": node_group_result["node_group_status"],
        "addon_names": list(addons_result["addons"].keys()),
        # Keep references to resources for dependencies
        "_log_group": log_group_result["log_group"],
        "_cluster": cluster_result["cluster"],
        "_node_group": node_group_result["node_group"],
        "_addons": addons_result["addons"],
        "_readonly_access": readonly_result
    }
