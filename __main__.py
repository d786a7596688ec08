"""
Retail Store on EKS
VPC -> IAM -> EKS -> retail store sample application
"""
import pulumi
from config import get_config
from modules.vpc import create_vpc_resources
from modules.iam import create_iam_resources
from modules.eks import create_eks_resources, kubeconfig_command
from modules.workloads import create_workload_resources

# Configuration
config = get_config()
config.validate()
tags = config.common_tags

# 1. Network infrastructure
network = create_vpc_resources(
    cluster_name=config.cluster_name,
    vpc_cidr=config.vpc_cidr,
    az_count=config.az_count,
    public_subnet_cidrs=config.public_subnet_cidrs,
    private_subnet_cidrs=config.private_subnet_cidrs,
    single_nat_gateway=config.single_nat_gateway,
    tags=tags)

# 2. IAM roles and read-only user
iam = create_iam_resources(
    cluster_name=config.cluster_name,
    readonly_user_name=config.readonly_user_name,
    create_readonly_access_key=config.create_readonly_access_key,
    tags=tags)

# 3. EKS cluster, node group and managed add-ons
eks = create_eks_resources(
    cluster_name=config.cluster_name,
    cluster_version=config.cluster_version,
    cluster_role_arn=iam["cluster_role_arn"],
    node_group_role_arn=iam["node_group_role_arn"],
    public_subnet_ids=network["public_subnet_ids"],
    private_subnet_ids=network["private_subnet_ids"],
    node_instance_types=config.node_instance_types,
    node_desired_size=config.node_desired_size,
    node_max_size=config.node_max_size,
    node_min_size=config.node_min_size,
    node_disk_size=config.node_disk_size,
    capacity_type=config.capacity_type,
    cluster_enabled_log_types=config.cluster_enabled_log_types,
    cloudwatch_log_group_retention_in_days=config.cloudwatch_log_group_retention_in_days,
    endpoint_private_access=config.endpoint_private_access,
    endpoint_public_access=config.endpoint_public_access,
    readonly_principal_arn=iam["readonly_user_arn"],
    cluster_depends_on=iam["_cluster_policy_attachments"],
    node_group_depends_on=iam["_node_policy_attachments"],
    tags=tags)

# 4. Retail store application (after nodes exist)
workloads = create_workload_resources(
    cluster_name=config.cluster_name,
    cluster_endpoint=eks["cluster_endpoint"],
    cluster_ca_data=eks["cluster_certificate_authority_data"],
    namespace=config.retail_store_namespace,
    version=config.retail_store_version,
    replicas=config.retail_store_replicas,
    ui_service_type=config.ui_service_type,
    manifest_url=config.retail_store_manifest_url,
    region=config.aws_region,
    depends_on=[eks["_node_group"], *eks["_addons"].values()])

# Exports
pulumi.export("cluster_name", config.cluster_name)
pulumi.export("cluster_endpoint", eks["cluster_endpoint"])
pulumi.export("cluster_version", eks["cluster_version_output"])
pulumi.export("vpc_id", network["vpc_id"])
pulumi.export("public_subnet_ids", network["public_subnet_ids"])
pulumi.export("private_subnet_ids", network["private_subnet_ids"])
pulumi.export("availability_zones", network["availability_zones"])
pulumi.export("node_group_status", eks["node_group_status"])
pulumi.export("addons_installed", eks["addon_names"])
pulumi.export("kubeconfig_command", kubeconfig_command(config.aws_region, config.cluster_name))
pulumi.export("readonly_user_arn", iam["readonly_user_arn"])
if iam["readonly_access_key_id"] is not None:
    pulumi.export("readonly_access_key_id", iam["readonly_access_key_id"])
    pulumi.export("readonly_secret_access_key", pulumi.Output.secret(iam["readonly_secret_access_key"]))
pulumi.export("retail_store_namespace", workloads["namespace_name"])
pulumi.export("retail_store_components", workloads["component_names"])
if workloads["ui_hostname"] is not None:
    pulumi.export("retail_store_url", workloads["ui_hostname"].apply(
        lambda hostname: f"http://{hostname}" if hostname else ""))
