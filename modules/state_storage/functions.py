"""
State Storage Module Functions
Creates the S3 bucket and KMS key backing the Pulumi state of the cluster stack
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List


def state_bucket_name(cluster_name: str, aws_region: str) -> str:
    """Bucket names are global; the region suffix keeps stacks in different regions apart"""
    return f"{cluster_name}-pulumi-state-{aws_region}"


def create_s3_bucket(name: str, bucket_name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create S3 bucket for Pulumi state storage

    Args:
        name: Resource name
        bucket_name: S3 bucket name
        tags: Additional tags

    Returns:
        Dict with bucket resource and outputs
    """
    tags = tags or {}

    bucket = aws.s3.Bucket(
        f"{name}-pulumi-state-bucket",
        bucket=bucket_name,
        tags={
            **tags,
            "Name": f"{name}-pulumi-state",
            "Purpose": "Pulumi state storage",
            "Module": "state-storage"
        },
        opts=pulumi.ResourceOptions(protect=True)
    )

    return {
        "bucket": bucket,
        "bucket_id": bucket.id,
        "bucket_name": bucket_name
    }


def configure_s3_bucket_settings(name: str, bucket_id: 'pulumi.Output[str]',
                                 noncurrent_days: int = 30) -> Dict[str, any]:
    """
    Versioning, encryption, public access block and lifecycle for the state bucket

    Args:
        name: Resource name prefix
        bucket_id: S3 bucket ID
        noncurrent_days: Days to keep superseded state versions

    Returns:
        Dict with bucket configuration resources
    """
    versioning = aws.s3.BucketVersioning(
        f"{name}-state-bucket-versioning",
        bucket=bucket_id,
        versioning_configuration=aws.s3.BucketVersioningVersioningConfigurationArgs(
            status="Enabled"
        )
    )

    encryption = aws.s3.BucketServerSideEncryptionConfiguration(
        f"{name}-state-bucket-encryption",
        bucket=bucket_id,
        rules=[
            aws.s3.BucketServerSideEncryptionConfigurationRuleArgs(
                apply_server_side_encryption_by_default=aws.s3.BucketServerSideEncryptionConfigurationRuleApplyServerSideEncryptionByDefaultArgs(
                    sse_algorithm="AES256"
                ),
                bucket_key_enabled=True
            )
        ]
    )

    public_access_block = aws.s3.BucketPublicAccessBlock(
        f"{name}-state-bucket-pab",
        bucket=bucket_id,
        block_public_acls=True,
        block_public_policy=True,
        ignore_public_acls=True,
        restrict_public_buckets=True
    )

    lifecycle = aws.s3.BucketLifecycleConfiguration(
        f"{name}-state-bucket-lifecycle",
        bucket=bucket_id,
        rules=[
            aws.s3.BucketLifecycleConfigurationRuleArgs(
                id="state_lifecycle",
                status="Enabled",
                filter=aws.s3.BucketLifecycleConfigurationRuleFilterArgs(
                    prefix=""
                ),
                noncurrent_version_expiration=aws.s3.BucketLifecycleConfigurationRuleNoncurrentVersionExpirationArgs(
                    noncurrent_days=noncurrent_days
                ),
                abort_incomplete_multipart_upload=aws.s3.BucketLifecycleConfigurationRuleAbortIncompleteMultipartUploadArgs(
                    days_after_initiation=1
                )
            )
        ],
        opts=pulumi.ResourceOptions(depends_on=[versioning])
    )

    return {
        "versioning": versioning,
        "encryption": encryption,
        "public_access_block": public_access_block,
        "lifecycle": lifecycle
    }


def create_secrets_key(name: str, tags: Dict[str, str] = None) -> Dict[str, any]:
    """KMS key used as the stack secrets provider"""
    tags = tags or {}

    kms_key = aws.kms.Key(
        f"{name}-pulumi-secrets-key",
        description=f"Pulumi secrets encryption key for {name}",
        key_usage="ENCRYPT_DECRYPT",
        enable_key_rotation=True,
        tags={
            **tags,
            "Name": f"{name}-pulumi-secrets",
            "Module": "state-storage"
        }
    )

    alias_name = f"alias/{name}-pulumi-secrets"
    alias = aws.kms.Alias(
        f"{name}-pulumi-secrets-alias",
        name=alias_name,
        target_key_id=kms_key.key_id
    )

    return {
        "kms_key": kms_key,
        "alias": alias,
        "kms_key_arn": kms_key.arn,
        "alias_name": alias_name
    }


def get_backend_configuration_commands(bucket_name: str, aws_region: str, alias_name: str,
                                       stack: str = "dev") -> List[str]:
    """Commands that point the cluster stack at the bootstrapped backend"""
    return [
        f"pulumi login s3://{bucket_name}?region={aws_region}",
        f"pulumi stack init {stack} --secrets-provider=awskms://{alias_name}?region={aws_region}",
        f"pulumi config set aws:region {aws_region}",
        "pulumi up"
    ]


def create_state_storage_resources(cluster_name: str,
                                   aws_region: str,
                                   tags: Dict[str, str] = None) -> Dict[str, any]:
    """
    Create complete state storage infrastructure

    Args:
        cluster_name: Cluster name for resource naming
        aws_region: AWS region
        tags: Additional tags for all resources

    Returns:
        Dict with all state storage resources and outputs
    """
    tags = tags or {}

    bucket_name = state_bucket_name(cluster_name, aws_region)
    pulumi.log.info(f"Setting up S3 bucket for state storage: {bucket_name}")

    bucket_result = create_s3_bucket(cluster_name, bucket_name, tags)
    bucket_config_result = configure_s3_bucket_settings(cluster_name, bucket_result["bucket_id"])
    key_result = create_secrets_key(cluster_name, tags)

    backend_config = {
        "backend_type": "s3",
        "bucket": bucket_name,
        "region": aws_region,
        "url": f"s3://{bucket_name}?region={aws_region}",
        "secrets_provider": f"awskms://{key_result['alias_name']}?region={aws_region}"
    }

    return {
        "bucket_name_output": bucket_result["bucket_id"],
        "kms_key_arn": key_result["kms_key_arn"],
        "backend_config": backend_config,
        "configuration_commands": get_backend_configuration_commands(
            bucket_name, aws_region, key_result["alias_name"]
        ),
        # Keep references to resources for dependencies
        "_bucket": bucket_result["bucket"],
        "_bucket_config": bucket_config_result,
        "_kms_key": key_result["kms_key"]
    }
