"""
IAM Module Functions
Creates IAM roles for the EKS cluster and node group, and a read-only user
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict

CLUSTER_POLICY_ARNS = [
    ("cluster", "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy"),
]

NODE_POLICY_ARNS = [
    ("worker", "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"),
    ("cni", "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"),
    ("registry", "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"),
]


def assume_role_policy(service: str) -> str:
    """Trust policy letting an AWS service principal assume the role"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Action": "sts:AssumeRole",
            "Effect": "Allow",
            "Principal": {"Service": service}
        }]
    })


def readonly_eks_policy() -> str:
    """Policy allowing a user to discover clusters and fetch kubeconfig"""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Sid": "EKSReadOnly",
            "Effect": "Allow",
            "Action": [
                "eks:DescribeCluster",
                "eks:DescribeNodegroup",
                "eks:DescribeAddon",
                "eks:ListClusters",
                "eks:ListNodegroups",
                "eks:ListAddons",
                "eks:AccessKubernetesApi"
            ],
            "Resource": "*"
        }]
    })


def create_service_role(name: str, role_suffix: str, service: str, policies,
                        tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create an IAM role trusted by an AWS service and attach managed policies

    Args:
        name: Role name prefix (the cluster name)
        role_suffix: Suffix identifying the role, e.g. "cluster" or "node"
        service: Service principal allowed to assume the role
        policies: Sequence of (short_name, policy_arn)
        tags: Additional tags

    Returns:
        Dict with role resource, attachments and outputs
    """
    tags = tags or {}

    role = aws.iam.Role(
        f"{name}-{role_suffix}-role",
        name=f"{name}-{role_suffix}-role",
        assume_role_policy=assume_role_policy(service),
        tags={
            **tags,
            "Name": f"{name}-{role_suffix}-role",
            "Module": "iam"
        }
    )

    policy_attachments = {}
    for policy_name, policy_arn in policies:
        policy_attachments[policy_name] = aws.iam.RolePolicyAttachment(
            f"{name}-{role_suffix}-{policy_name}-policy",
            policy_arn=policy_arn,
            role=role.name
        )

    return {
        "role": role,
        "policy_attachments": policy_attachments,
        "role_arn": role.arn,
        "role_name": role.name
    }


def create_readonly_user(name: str, user_name: str, create_access_key: bool = False,
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create an IAM user limited to describing the cluster

    Kubernetes-level read access is granted separately through an EKS
    access entry once the cluster exists.

    Args:
        name: Resource name prefix
        user_name: IAM user name
        create_access_key: Also create a programmatic access key
        tags: Additional tags

    Returns:
        Dict with user resources and outputs
    """
    tags = tags or {}

    user = aws.iam.User(
        f"{name}-readonly-user",
        name=user_name,
        tags={
            **tags,
            "Name": user_name,
            "Module": "iam"
        }
    )

    policy = aws.iam.UserPolicy(
        f"{name}-readonly-user-policy",
        user=user.name,
        policy=readonly_eks_policy()
    )

    access_key = None
    if create_access_key:
        pulumi.log.info(f"Creating access key for read-only user {user_name}")
        access_key = aws.iam.AccessKey(
            f"{name}-readonly-access-key",
            user=user.name
        )

    return {
        "user": user,
        "policy": policy,
        "access_key": access_key,
        "user_arn": user.arn,
        "user_name": user.name
    }


def create_iam_resources(cluster_name: str,
                         readonly_user_name: str = "",
                         create_readonly_access_key: bool = False,
                         tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create IAM resources for EKS

    Args:
        cluster_name: EKS cluster name
        readonly_user_name: Name of the read-only IAM user
        create_readonly_access_key: Create an access key for the read-only user
        tags: Additional tags

    Returns:
        Dict with all IAM resources and outputs
    """
    tags = tags or {}
    readonly_user_name = readonly_user_name or f"{cluster_name}-readonly"

    cluster_role_result = create_service_role(
        cluster_name, "cluster", "eks.amazonaws.com", CLUSTER_POLICY_ARNS, tags
    )
    node_role_result = create_service_role(
        cluster_name, "node", "ec2.amazonaws.com", NODE_POLICY_ARNS, tags
    )
    readonly_result = create_readonly_user(
        cluster_name, readonly_user_name, create_readonly_access_key, tags
    )

    access_key = readonly_result["access_key"]

    return {
        "cluster_role_arn": cluster_role_result["role_arn"],
        "cluster_role_name": cluster_role_result["role_name"],
        "node_group_role_arn": node_role_result["role_arn"],
        "node_group_role_name": node_role_result["role_name"],
        "readonly_user_arn": readonly_result["user_arn"],
        "readonly_user_name": readonly_result["user_name"],
        "readonly_access_key_id": access_key.id if access_key else None,
        "readonly_secret_access_key": access_key.secret if access_key else None,
        # Keep references to resources for dependencies
        "_cluster_role": cluster_role_result["role"],
        "_node_role": node_role_result["role"],
        "_cluster_policy_attachments": list(cluster_role_result["policy_attachments"].values()),
        "_node_policy_attachments": list(node_role_result["policy_attachments"].values()),
        "_readonly_user": readonly_result["user"]
    }
