"""
VPC Module Functions
Creates VPC, public/private subnets, NAT gateways and route tables for EKS
"""

import ipaddress
import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any, Optional, Tuple

# Public subnets start at this network number when the VPC block has room
PUBLIC_NETNUM_OFFSET = 100


def plan_subnet_cidrs(vpc_cidr: str, az_count: int, new_prefix: int = 24) -> Tuple[List[str], List[str]]:
    """
    Split the VPC block into one private and one public subnet per AZ

    Private subnets take network numbers 1..n and public subnets 101..100+n,
    e.g. 10.0.1.0/24 and 10.0.101.0/24 for a 10.0.0.0/16 VPC. Blocks too
    small for that layout are allocated sequentially instead.

    Args:
        vpc_cidr: VPC CIDR block
        az_count: Number of availability zones
        new_prefix: Prefix length of each subnet

    Returns:
        Tuple of (public_cidrs, private_cidrs)
    """
    network = ipaddress.ip_network(vpc_cidr)
    if new_prefix <= network.prefixlen:
        raise ValueError(f"Subnet prefix /{new_prefix} must be longer than VPC prefix /{network.prefixlen}")

    capacity = 2 ** (new_prefix - network.prefixlen)
    if capacity < 2 * az_count:
        raise ValueError(f"{vpc_cidr} cannot hold {2 * az_count} /{new_prefix} subnets")

    if capacity > PUBLIC_NETNUM_OFFSET + az_count:
        private_netnums = range(1, az_count + 1)
        public_netnums = range(PUBLIC_NETNUM_OFFSET + 1, PUBLIC_NETNUM_OFFSET + az_count + 1)
    else:
        private_netnums = range(0, az_count)
        public_netnums = range(az_count, 2 * az_count)

    size = network.num_addresses // capacity

    def subnet(netnum: int) -> str:
        return str(ipaddress.ip_network((network.network_address + netnum * size, new_prefix)))

    return [subnet(n) for n in public_netnums], [subnet(n) for n in private_netnums]


def resolve_subnet_cidrs(vpc_cidr: str, az_count: int,
                         public_subnet_cidrs: Optional[List[str]] = None,
                         private_subnet_cidrs: Optional[List[str]] = None) -> Tuple[List[str], List[str]]:
    """
    Subnet CIDRs actually used: configured lists win, missing ones are planned

    The VPC block is only planned when a list is missing, so explicit subnets
    can use blocks too small for the default layout.
    """
    if public_subnet_cidrs is not None and private_subnet_cidrs is not None:
        return list(public_subnet_cidrs), list(private_subnet_cidrs)

    planned_public, planned_private = plan_subnet_cidrs(vpc_cidr, az_count)
    public = planned_public if public_subnet_cidrs is None else list(public_subnet_cidrs)
    private = planned_private if private_subnet_cidrs is None else list(private_subnet_cidrs)
    return public, private


def create_vpc(name: str, cidr: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """Create VPC with DNS settings"""
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        f"{name}-vpc",
        cidr_block=cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={
            **tags,
            "Name": f"{name}-vpc",
            "Module": "vpc"
        }
    )

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block
    }


def create_internet_gateway(name: str, vpc_id: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """Create Internet Gateway for VPC"""
    tags = tags or {}

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-igw",
            "Module": "vpc"
        }
    )

    return {
        "igw": igw,
        "igw_id": igw.id
    }


def create_subnets(name: str, vpc_id: pulumi.Output[str], subnet_cidrs: List[str],
                   availability_zones: List[str], public: bool,
                   tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one subnet per availability zone

    Public subnets get public IPs on launch and the ELB role tag; private
    subnets get the internal-ELB role tag. Both are tagged as shared with
    the cluster so the load balancer controller can discover them.

    Args:
        name: Resource name prefix (the cluster name)
        vpc_id: VPC ID
        subnet_cidrs: List of CIDR blocks, one per AZ
        availability_zones: List of availability zones
        public: Create public (True) or private (False) subnets
        tags: Additional tags

    Returns:
        Dict with subnet resources and outputs
    """
    tags = tags or {}
    kind = "public" if public else "private"
    role_tag = "kubernetes.io/role/elb" if public else "kubernetes.io/role/internal-elb"

    subnets = []
    for i, cidr in enumerate(subnet_cidrs):
        subnet = aws.ec2.Subnet(
            f"{name}-{kind}-subnet-{i+1}",
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=availability_zones[i],
            map_public_ip_on_launch=public,
            tags={
                **tags,
                "Name": f"{name}-{kind}-subnet-{i+1}",
                "Type": kind,
                f"kubernetes.io/cluster/{name}": "shared",
                role_tag: "1",
                "Module": "vpc"
            }
        )
        subnets.append(subnet)

    return {
        "subnets": subnets,
        "subnet_ids": [subnet.id for subnet in subnets]
    }


def create_nat_gateways(name: str, public_subnet_ids: List[pulumi.Output[str]],
                        single_nat_gateway: bool = True, igw=None,
                        tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create NAT gateways for private subnet egress

    Args:
        name: Resource name prefix
        public_subnet_ids: Public subnets to place the gateways in
        single_nat_gateway: Share one gateway across all AZs
        igw: Internet gateway the NAT gateways depend on
        tags: Additional tags

    Returns:
        Dict with NAT gateway resources and outputs
    """
    tags = tags or {}
    subnet_ids = public_subnet_ids[:1] if single_nat_gateway else public_subnet_ids
    opts = pulumi.ResourceOptions(depends_on=[igw]) if igw is not None else None

    eips = []
    nat_gateways = []
    for i, subnet_id in enumerate(subnet_ids):
        eip = aws.ec2.Eip(
            f"{name}-nat-eip-{i+1}",
            domain="vpc",
            tags={
                **tags,
                "Name": f"{name}-nat-eip-{i+1}",
                "Module": "vpc"
            },
            opts=opts
        )
        nat_gateway = aws.ec2.NatGateway(
            f"{name}-nat-{i+1}",
            allocation_id=eip.id,
            subnet_id=subnet_id,
            tags={
                **tags,
                "Name": f"{name}-nat-{i+1}",
                "Module": "vpc"
            },
            opts=opts
        )
        eips.append(eip)
        nat_gateways.append(nat_gateway)

    return {
        "eips": eips,
        "nat_gateways": nat_gateways,
        "nat_gateway_ids": [nat.id for nat in nat_gateways]
    }


def create_public_route_table(name: str, vpc_id: pulumi.Output[str], igw_id: pulumi.Output[str],
                              subnet_ids: List[pulumi.Output[str]], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """Create route table sending public subnet traffic to the internet gateway"""
    tags = tags or {}

    route_table = aws.ec2.RouteTable(
        f"{name}-public-rt",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-public-rt",
            "Module": "vpc"
        }
    )

    route = aws.ec2.Route(
        f"{name}-public-route",
        route_table_id=route_table.id,
        destination_cidr_block="0.0.0.0/0",
        gateway_id=igw_id
    )

    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        association = aws.ec2.RouteTableAssociation(
            f"{name}-public-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        )
        associations.append(association)

    return {
        "route_table": route_table,
        "route": route,
        "associations": associations,
        "route_table_id": route_table.id
    }


def create_private_route_tables(name: str, vpc_id: pulumi.Output[str], nat_gateway_ids: List[pulumi.Output[str]],
                                subnet_ids: List[pulumi.Output[str]], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one route table per private subnet, routed through a NAT gateway

    With a single NAT gateway every private subnet routes through it;
    otherwise subnet i uses the gateway in AZ i.
    """
    tags = tags or {}

    route_tables = []
    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        nat_gateway_id = nat_gateway_ids[i % len(nat_gateway_ids)]

        route_table = aws.ec2.RouteTable(
            f"{name}-private-rt-{i+1}",
            vpc_id=vpc_id,
            tags={
                **tags,
                "Name": f"{name}-private-rt-{i+1}",
                "Module": "vpc"
            }
        )

        aws.ec2.Route(
            f"{name}-private-route-{i+1}",
            route_table_id=route_table.id,
            destination_cidr_block="0.0.0.0/0",
            nat_gateway_id=nat_gateway_id
        )

        association = aws.ec2.RouteTableAssociation(
            f"{name}-private-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        )
        route_tables.append(route_table)
        associations.append(association)

    return {
        "route_tables": route_tables,
        "associations": associations,
        "route_table_ids": [rt.id for rt in route_tables]
    }


def create_vpc_resources(cluster_name: str, vpc_cidr: str, az_count: int = 2,
                         public_subnet_cidrs: Optional[List[str]] = None,
                         private_subnet_cidrs: Optional[List[str]] = None,
                         single_nat_gateway: bool = True,
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete VPC infrastructure for EKS

    Args:
        cluster_name: EKS cluster name
        vpc_cidr: VPC CIDR block
        az_count: Number of availability zones to span
        public_subnet_cidrs: Explicit public subnet CIDRs (planned from vpc_cidr when omitted)
        private_subnet_cidrs: Explicit private subnet CIDRs (planned from vpc_cidr when omitted)
        single_nat_gateway: Share one NAT gateway across all AZs
        tags: Additional tags for all resources

    Returns:
        Dict with all VPC resources and outputs
    """
    tags = tags or {}

    azs = aws.get_availability_zones(state="available")
    if len(azs.names) < az_count:
        raise ValueError(f"Region has {len(azs.names)} available AZs, {az_count} requested")
    availability_zones = list(azs.names[:az_count])

    public_subnet_cidrs, private_subnet_cidrs = resolve_subnet_cidrs(
        vpc_cidr, az_count, public_subnet_cidrs, private_subnet_cidrs
    )

    pulumi.log.info(
        f"VPC {vpc_cidr} across {', '.join(availability_zones)}: "
        f"public {public_subnet_cidrs}, private {private_subnet_cidrs}"
    )

    vpc_result = create_vpc(cluster_name, vpc_cidr, tags)
    igw_result = create_internet_gateway(cluster_name, vpc_result["vpc_id"], tags)

    public_result = create_subnets(
        cluster_name, vpc_result["vpc_id"], public_subnet_cidrs,
        availability_zones, public=True, tags=tags
    )
    private_result = create_subnets(
        cluster_name, vpc_result["vpc_id"], private_subnet_cidrs,
        availability_zones, public=False, tags=tags
    )

    nat_result = create_nat_gateways(
        cluster_name, public_result["subnet_ids"],
        single_nat_gateway=single_nat_gateway, igw=igw_result["igw"], tags=tags
    )

    public_rt_result = create_public_route_table(
        cluster_name, vpc_result["vpc_id"], igw_result["igw_id"],
        public_result["subnet_ids"], tags
    )
    private_rt_result = create_private_route_tables(
        cluster_name, vpc_result["vpc_id"], nat_result["nat_gateway_ids"],
        private_result["subnet_ids"], tags
    )

    return {
        "vpc_id": vpc_result["vpc_id"],
        "vpc_cidr_block": vpc_result["vpc_cidr_block"],
        "public_subnet_ids": public_result["subnet_ids"],
        "private_subnet_ids": private_result["subnet_ids"],
        "public_subnet_cidrs": public_subnet_cidrs,
        "private_subnet_cidrs": private_subnet_cidrs,
        "nat_gateway_ids": nat_result["nat_gateway_ids"],
        "availability_zones": availability_zones,
        # Keep references to resources for dependencies
        "_vpc": vpc_result["vpc"],
        "_igw": igw_result["igw"],
        "_public_subnets": public_result["subnets"],
        "_private_subnets": private_result["subnets"],
        "_nat_gateways": nat_result["nat_gateways"],
        "_public_route_table": public_rt_result["route_table"],
        "_private_route_tables": private_rt_result["route_tables"]
    }
