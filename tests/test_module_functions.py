"""
Unit tests for the Pulumi module functions
AWS and Kubernetes resource constructors are patched, so no engine is needed
"""

import json
import unittest
from types import SimpleNamespace
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modules.vpc.functions import create_vpc_resources, plan_subnet_cidrs, resolve_subnet_cidrs
from modules.iam.functions import create_iam_resources, assume_role_policy, readonly_eks_policy
from modules.eks.functions import create_eks_resources, kubeconfig_command, VIEW_POLICY_ARN
from modules.state_storage.functions import create_state_storage_resources


def named_mock(resource_name, **kwargs):
    """Stand-in resource that remembers its Pulumi name and arguments"""
    resource = Mock()
    resource.resource_name = resource_name
    resource.kwargs = kwargs
    resource.id = f"{resource_name}-id"
    resource.arn = f"arn:aws:test:::{resource_name}"
    resource.name = resource_name
    return resource


def patch_pulumi(test_case, module_name):
    """
    Patch the module's pulumi reference for the duration of a test

    ResourceOptions rejects mock resources in depends_on, so options are
    recorded as plain namespaces instead.
    """
    patcher = patch(f'modules.{module_name}.functions.pulumi')
    mock_pulumi = patcher.start()
    test_case.addCleanup(patcher.stop)
    mock_pulumi.ResourceOptions.side_effect = lambda **kwargs: SimpleNamespace(**kwargs)
    return mock_pulumi


class TestPlanSubnetCidrs(unittest.TestCase):
    """Subnet CIDR planning"""

    def test_sixteen_bit_vpc_uses_offset_layout(self):
        public, private = plan_subnet_cidrs("10.0.0.0/16", 3)
        self.assertEqual(private, ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"])
        self.assertEqual(public, ["10.0.101.0/24", "10.0.102.0/24", "10.0.103.0/24"])

    def test_small_vpc_falls_back_to_sequential(self):
        public, private = plan_subnet_cidrs("10.0.0.0/24", 2, new_prefix=26)
        self.assertEqual(private, ["10.0.0.0/26", "10.0.0.64/26"])
        self.assertEqual(public, ["10.0.0.128/26", "10.0.0.192/26"])

    def test_vpc_too_small(self):
        with self.assertRaises(ValueError):
            plan_subnet_cidrs("10.0.0.0/24", 3, new_prefix=26)

    def test_subnet_prefix_must_be_longer(self):
        with self.assertRaises(ValueError):
            plan_subnet_cidrs("10.0.0.0/16", 2, new_prefix=16)

    def test_resolve_keeps_explicit_lists_without_planning(self):
        public = ["10.0.0.0/26", "10.0.0.64/26"]
        private = ["10.0.0.128/26", "10.0.0.192/26"]
        # 10.0.0.0/24 has no room for the default /24 layout
        self.assertEqual(resolve_subnet_cidrs("10.0.0.0/24", 2, public, private), (public, private))

    def test_resolve_plans_missing_list(self):
        public, private = resolve_subnet_cidrs("10.0.0.0/16", 2, private_subnet_cidrs=["10.0.11.0/24", "10.0.12.0/24"])
        self.assertEqual(public, ["10.0.101.0/24", "10.0.102.0/24"])
        self.assertEqual(private, ["10.0.11.0/24", "10.0.12.0/24"])


class TestVpcFunctions(unittest.TestCase):
    """VPC resources"""

    def setUp(self):
        self.mock_pulumi = patch_pulumi(self, "vpc")

    def _create(self, mock_aws, **kwargs):
        mock_aws.get_availability_zones.return_value = Mock(names=["us-east-1a", "us-east-1b", "us-east-1c"])
        for constructor in ("Vpc", "InternetGateway", "Subnet", "Eip", "NatGateway",
                            "RouteTable", "Route", "RouteTableAssociation"):
            getattr(mock_aws.ec2, constructor).side_effect = named_mock
        params = dict(cluster_name="test-cluster", vpc_cidr="10.0.0.0/16")
        params.update(kwargs)
        return create_vpc_resources(**params)

    def test_vpc_function_structure(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._create(mock_aws)

            for key in ("vpc_id", "vpc_cidr_block", "public_subnet_ids", "private_subnet_ids",
                        "nat_gateway_ids", "availability_zones"):
                self.assertIn(key, result)
            self.assertEqual(result["availability_zones"], ["us-east-1a", "us-east-1b"])
            self.assertEqual(len(result["public_subnet_ids"]), 2)
            self.assertEqual(len(result["private_subnet_ids"]), 2)
            self.assertEqual(result["private_subnet_cidrs"], ["10.0.1.0/24", "10.0.2.0/24"])

    def test_subnet_role_tags(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._create(mock_aws)

            for subnet in result["_public_subnets"]:
                tags = subnet.kwargs["tags"]
                self.assertEqual(tags["kubernetes.io/role/elb"], "1")
                self.assertEqual(tags["kubernetes.io/cluster/test-cluster"], "shared")
                self.assertTrue(subnet.kwargs["map_public_ip_on_launch"])
            for subnet in result["_private_subnets"]:
                tags = subnet.kwargs["tags"]
                self.assertEqual(tags["kubernetes.io/role/internal-elb"], "1")
                self.assertNotIn("kubernetes.io/role/elb", tags)
                self.assertFalse(subnet.kwargs["map_public_ip_on_launch"])

    def test_single_nat_gateway_shared_by_private_route_tables(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._create(mock_aws, single_nat_gateway=True)

            self.assertEqual(mock_aws.ec2.NatGateway.call_count, 1)
            private_routes = [c.kwargs for c in mock_aws.ec2.Route.call_args_list if "nat_gateway_id" in c.kwargs]
            self.assertEqual(len(private_routes), 2)
            self.assertTrue(all(r["nat_gateway_id"] == result["nat_gateway_ids"][0] for r in private_routes))

    def test_nat_gateway_per_az(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._create(mock_aws, single_nat_gateway=False)

            self.assertEqual(mock_aws.ec2.NatGateway.call_count, 2)
            private_routes = [c.kwargs for c in mock_aws.ec2.Route.call_args_list if "nat_gateway_id" in c.kwargs]
            self.assertEqual([r["nat_gateway_id"] for r in private_routes], result["nat_gateway_ids"])

    def test_public_route_goes_to_internet_gateway(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._create(mock_aws)

            public_routes = [c.kwargs for c in mock_aws.ec2.Route.call_args_list if "gateway_id" in c.kwargs]
            self.assertEqual(len(public_routes), 1)
            self.assertEqual(public_routes[0]["gateway_id"], result["_igw"].id)
            self.assertEqual(public_routes[0]["destination_cidr_block"], "0.0.0.0/0")

    def test_explicit_subnets_in_small_vpc(self):
        public = ["10.0.0.0/26", "10.0.0.64/26"]
        private = ["10.0.0.128/26", "10.0.0.192/26"]
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._create(mock_aws, vpc_cidr="10.0.0.0/24",
                                  public_subnet_cidrs=public, private_subnet_cidrs=private)

            self.assertEqual(result["public_subnet_cidrs"], public)
            self.assertEqual(result["private_subnet_cidrs"], private)
            cidrs = [c.kwargs["cidr_block"] for c in mock_aws.ec2.Subnet.call_args_list]
            self.assertEqual(cidrs, public + private)

    def test_nat_gateways_wait_for_internet_gateway(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            result = self._create(mock_aws)

            opts = mock_aws.ec2.NatGateway.call_args.kwargs["opts"]
            self.assertEqual(opts.depends_on, [result["_igw"]])

    def test_not_enough_availability_zones(self):
        with patch('modules.vpc.functions.aws') as mock_aws:
            mock_aws.get_availability_zones.return_value = Mock(names=["us-east-1a"])
            with self.assertRaises(ValueError):
                create_vpc_resources(cluster_name="test-cluster", vpc_cidr="10.0.0.0/16", az_count=2)
            mock_aws.ec2.Vpc.assert_not_called()


class TestIamFunctions(unittest.TestCase):
    """IAM roles and read-only user"""

    def test_policy_documents(self):
        trust = json.loads(assume_role_policy("eks.amazonaws.com"))
        self.assertEqual(trust["Statement"][0]["Principal"], {"Service": "eks.amazonaws.com"})
        self.assertEqual(trust["Statement"][0]["Action"], "sts:AssumeRole")

        readonly = json.loads(readonly_eks_policy())
        actions = readonly["Statement"][0]["Action"]
        self.assertIn("eks:DescribeCluster", actions)
        self.assertTrue(all(action.startswith("eks:") for action in actions))

    def test_iam_function_structure(self):
        with patch('modules.iam.functions.aws') as mock_aws:
            mock_aws.iam.Role.side_effect = named_mock
            mock_aws.iam.RolePolicyAttachment.side_effect = named_mock
            mock_aws.iam.User.side_effect = named_mock
            mock_aws.iam.UserPolicy.side_effect = named_mock

            result = create_iam_resources(cluster_name="test-cluster")

            for key in ("cluster_role_arn", "cluster_role_name", "node_group_role_arn",
                        "node_group_role_name", "readonly_user_arn", "readonly_user_name"):
                self.assertIn(key, result)
            self.assertIsNone(result["readonly_access_key_id"])
            mock_aws.iam.AccessKey.assert_not_called()

            attached = [c.kwargs["policy_arn"] for c in mock_aws.iam.RolePolicyAttachment.call_args_list]
            self.assertIn("arn:aws:iam::aws:policy/AmazonEKSClusterPolicy", attached)
            self.assertIn("arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy", attached)
            self.assertIn("arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy", attached)
            self.assertIn("arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly", attached)
            self.assertEqual(len(result["_node_policy_attachments"]), 3)

            self.assertEqual(mock_aws.iam.User.call_args.kwargs["name"], "test-cluster-readonly")

    def test_readonly_access_key(self):
        with patch('modules.iam.functions.aws') as mock_aws:
            mock_aws.iam.AccessKey.side_effect = named_mock

            result = create_iam_resources(cluster_name="test-cluster", readonly_user_name="viewer",
                                          create_readonly_access_key=True)

            mock_aws.iam.AccessKey.assert_called_once()
            self.assertEqual(result["readonly_access_key_id"], "test-cluster-readonly-access-key-id")
            self.assertEqual(mock_aws.iam.User.call_args.kwargs["name"], "viewer")


class TestEksFunctions(unittest.TestCase):
    """EKS cluster, node group, add-ons and access entries"""

    def setUp(self):
        self.mock_pulumi = patch_pulumi(self, "eks")

    def _create(self, mock_aws, **kwargs):
        mock_aws.eks.Cluster.side_effect = named_mock
        mock_aws.eks.NodeGroup.side_effect = named_mock
        mock_aws.eks.Addon.side_effect = named_mock
        mock_aws.eks.AccessEntry.side_effect = named_mock
        mock_aws.cloudwatch.LogGroup.side_effect = named_mock
        params = dict(
            cluster_name="test-cluster",
            cluster_version="1.31",
            cluster_role_arn="arn:aws:iam::123456789012:role/cluster",
            node_group_role_arn="arn:aws:iam::123456789012:role/node",
            public_subnet_ids=["subnet-pub-1", "subnet-pub-2"],
            private_subnet_ids=["subnet-priv-1", "subnet-priv-2"],
            node_instance_types=["t3.medium"],
            node_desired_size=2,
            node_max_size=3,
            node_min_size=1,
            node_disk_size=20,
        )
        params.update(kwargs)
        return create_eks_resources(**params)

    def test_eks_function_structure(self):
        with patch('modules.eks.functions.aws') as mock_aws:
            result = self._create(mock_aws)

            for key in ("cluster_id", "cluster_arn", "cluster_endpoint", "cluster_version_output",
                        "cluster_certificate_authority_data", "node_group_arn", "node_group_status"):
                self.assertIn(key, result)
            self.assertEqual(result["addon_names"], ["vpc-cni", "kube-proxy", "coredns"])
            self.assertIsNone(result["_readonly_access"])

    def test_nodes_run_in_private_subnets(self):
        with patch('modules.eks.functions.aws') as mock_aws:
            self._create(mock_aws)

            node_kwargs = mock_aws.eks.NodeGroup.call_args.kwargs
            self.assertEqual(node_kwargs["subnet_ids"], ["subnet-priv-1", "subnet-priv-2"])
            self.assertEqual(node_kwargs["capacity_type"], "ON_DEMAND")
            self.assertEqual(node_kwargs["instance_types"], ["t3.medium"])

            scaling = mock_aws.eks.NodeGroupScalingConfigArgs.call_args.kwargs
            self.assertEqual(scaling, {"desired_size": 2, "max_size": 3, "min_size": 1})

            vpc_config = mock_aws.eks.ClusterVpcConfigArgs.call_args.kwargs
            self.assertEqual(set(vpc_config["subnet_ids"]),
                             {"subnet-pub-1", "subnet-pub-2", "subnet-priv-1", "subnet-priv-2"})

    def test_cluster_waits_for_log_group_and_role_policies(self):
        attachment = Mock()
        with patch('modules.eks.functions.aws') as mock_aws:
            result = self._create(mock_aws, cluster_depends_on=[attachment])

            opts = mock_aws.eks.Cluster.call_args.kwargs["opts"]
            self.assertIn(result["_log_group"], opts.depends_on)
            self.assertIn(attachment, opts.depends_on)
            self.assertEqual(mock_aws.cloudwatch.LogGroup.call_args.kwargs["name"], "/aws/eks/test-cluster/cluster")

    def test_coredns_waits_for_node_group(self):
        with patch('modules.eks.functions.aws') as mock_aws:
            result = self._create(mock_aws)

            coredns = result["_addons"]["coredns"]
            self.assertEqual(coredns.kwargs["opts"].depends_on, [result["_node_group"]])
            self.assertIsNone(result["_addons"]["vpc-cni"].kwargs["opts"])

    def test_readonly_access_entry(self):
        with patch('modules.eks.functions.aws') as mock_aws:
            result = self._create(mock_aws, readonly_principal_arn="arn:aws:iam::123456789012:user/viewer")

            self.assertIsNotNone(result["_readonly_access"])
            entry_kwargs = mock_aws.eks.AccessEntry.call_args.kwargs
            self.assertEqual(entry_kwargs["principal_arn"], "arn:aws:iam::123456789012:user/viewer")
            association_kwargs = mock_aws.eks.AccessPolicyAssociation.call_args.kwargs
            self.assertEqual(association_kwargs["policy_arn"], VIEW_POLICY_ARN)
            mock_aws.eks.AccessPolicyAssociationAccessScopeArgs.assert_called_with(type="cluster")

    def test_kubeconfig_command(self):
        self.assertEqual(
            kubeconfig_command("eu-west-1", "shop"),
            "aws eks update-kubeconfig --region eu-west-1 --name shop"
        )


class TestStateStorageFunctions(unittest.TestCase):
    """Pulumi state backend"""

    def setUp(self):
        self.mock_pulumi = patch_pulumi(self, "state_storage")

    def test_state_storage_function_structure(self):
        with patch('modules.state_storage.functions.aws') as mock_aws:
            mock_aws.s3.Bucket.side_effect = named_mock
            mock_aws.kms.Key.side_effect = named_mock

            result = create_state_storage_resources(
                cluster_name="test-cluster",
                aws_region="us-east-1"
            )

            self.assertIn("bucket_name_output", result)
            self.assertIn("kms_key_arn", result)
            self.assertIn("configuration_commands", result)

            backend_config = result["backend_config"]
            self.assertEqual(backend_config["backend_type"], "s3")
            self.assertEqual(backend_config["bucket"], "test-cluster-pulumi-state-us-east-1")
            self.assertEqual(backend_config["url"], "s3://test-cluster-pulumi-state-us-east-1?region=us-east-1")
            self.assertEqual(backend_config["secrets_provider"],
                             "awskms://alias/test-cluster-pulumi-secrets?region=us-east-1")
            self.assertEqual(result["configuration_commands"][0],
                             "pulumi login s3://test-cluster-pulumi-state-us-east-1?region=us-east-1")

            mock_aws.s3.BucketVersioning.assert_called_once()
            mock_aws.s3.BucketPublicAccessBlock.assert_called_once()
            mock_aws.dynamodb.Table.assert_not_called()


if __name__ == "__main__":
    unittest.main(verbosity=2)
