"""
State Storage Bootstrap - run once before the cluster stack
Creates the S3 bucket and KMS key holding the cluster stack's state and secrets
"""

import pulumi

from modules.state_storage import create_state_storage_resources

# Configuration
config = pulumi.Config()
cluster_name = config.get("cluster_name") or "retail-store-eks"
aws_region = pulumi.Config("aws").get("region") or "us-east-1"

tags = {
    "Project": "retail-store-eks",
    "ManagedBy": "pulumi",
    "Purpose": "state-storage-bootstrap"
}

state_storage = create_state_storage_resources(cluster_name, aws_region, tags)

# Exports
pulumi.export("bucket_name", state_storage["bucket_name_output"])
pulumi.export("kms_key_arn", state_storage["kms_key_arn"])
pulumi.export("backend_config", state_storage["backend_config"])
pulumi.export("backend_configuration_commands", state_storage["configuration_commands"])
