"""Managed Kubernetes control plane blueprint.

Declares the GREEN platform: a small VPC with private endpoints, the
cluster and worker IAM roles, an EKS cluster without default capacity, one
managed node group, and three add-ons (cluster autoscaler, Flux v2 and the
AWS Load Balancer Controller).
"""

from __future__ import annotations

from infragraph.models.config import TargetConfig
from infragraph.models.resources import ResourceKind
from infragraph.stack import Stack

DEFAULT_STACK_NAME = "GREEN-InfraStack"

VPC_CIDR = "172.0.0.0/26"
KUBERNETES_VERSION = "1.27"
INTERFACE_ENDPOINT_SERVICES = ("ec2", "ecr.api", "eks")

CLUSTER_ROLE_POLICIES = [
    "AmazonEKSClusterPolicy",
    "AmazonEKSVPCResourceController",
]

# AmazonEKSVPCResourceController allows security groups for pods.
WORKER_ROLE_POLICIES = [
    "AmazonEKSWorkerNodePolicy",
    "AmazonEC2ContainerRegistryReadOnly",
    "AmazonEKS_CNI_Policy",
    "AmazonEKSVPCResourceController",
]


def build_platform_stack(target: TargetConfig | None = None, name: str = DEFAULT_STACK_NAME) -> Stack:
    """Declare every resource of the platform in *target*."""
    target = target or TargetConfig()
    stack = Stack(name, target=target)

    repo_url = stack.add_parameter("FluxRepoURL", description="The URL to the git repository to use for Flux")
    repo_branch = stack.add_parameter("FluxRepoBranch", description="Branch to use from the repository", default="main")
    repo_path = stack.add_parameter("FluxRepoPath", description="Which path to start the sync from")

    # DNS hostnames and support are required by the private cluster endpoint.
    vpc = stack.add(
        ResourceKind.NETWORK,
        "GREEN-VPC",
        {
            "cidr": VPC_CIDR,
            "max_azs": 2,
            "nat_gateways": 1,
            "enable_dns_hostnames": True,
            "enable_dns_support": True,
            "subnets": [
                {"name": "GREEN-PUBLIC", "type": "public"},
                {"name": "GREEN-PRIVATE_WITH_EGRESS", "type": "private_with_egress"},
            ],
            "gateway_endpoints": {"S3": "s3"},
        },
    )

    for service in INTERFACE_ENDPOINT_SERVICES:
        stack.add(
            ResourceKind.ENDPOINT,
            f"{service.replace('.', '-')}-endpoint",
            {
                "vpc_id": vpc.ref("vpc_id"),
                "service": f"com.amazonaws.{target.region}.{service}",
                "port": 443,
                "subnet_ids": vpc.ref("private_subnet_ids"),
            },
        )

    cluster_role = stack.add(
        ResourceKind.ROLE,
        "GREEN-ClusterRole",
        {"assumed_by": "eks.amazonaws.com", "managed_policies": list(CLUSTER_ROLE_POLICIES)},
    )

    # TODO: switch endpoint_access to private once the VPC is reached through the transit gateway.
    cluster = stack.add(
        ResourceKind.CLUSTER,
        "GREEN-Cluster",
        {
            "version": KUBERNETES_VERSION,
            "vpc_id": vpc.ref("vpc_id"),
            "subnet_ids": vpc.ref("private_subnet_ids"),
            "role_arn": cluster_role.ref("arn"),
            "default_capacity": 0,
            "kubectl_layer": "v27",
            "endpoint_access": "public_and_private",
        },
    )

    worker_role = stack.add(
        ResourceKind.ROLE,
        "GREEN-WorkerRole",
        {"assumed_by": "ec2.amazonaws.com", "managed_policies": list(WORKER_ROLE_POLICIES)},
    )

    node_group = stack.add(
        ResourceKind.NODE_GROUP,
        "GREEN-WorkerNodeGroup",
        {
            "cluster_name": cluster.ref("name"),
            "subnet_ids": vpc.ref("private_subnet_ids"),
            "node_role_arn": worker_role.ref("arn"),
            "min_size": 1,
            "max_size": 2,
            "ami_type": "BOTTLEROCKET_ARM_64",
        },
    )

    stack.add(
        ResourceKind.ADDON,
        "GREEN-ClusterAutoscaler",
        {
            "chart": "cluster-autoscaler",
            "cluster_name": cluster.ref("name"),
            "oidc_issuer": cluster.ref("oidc_issuer"),
            "namespace": "kube-system",
        },
        depends_on=[node_group],
    )

    stack.add(
        ResourceKind.ADDON,
        "FluxV2",
        {
            "chart": "flux2",
            "cluster_name": cluster.ref("name"),
            "namespace": "flux-system",
            "secret_name": "github-keypair",
            "repo_url": repo_url,
            "repo_branch": repo_branch,
            "repo_path": repo_path,
        },
        depends_on=[node_group],
    )

    stack.add(
        ResourceKind.ADDON,
        "AWSLoadBalancerController",
        {
            "chart": "aws-load-balancer-controller",
            "cluster_name": cluster.ref("name"),
            "oidc_issuer": cluster.ref("oidc_issuer"),
            "vpc_id": vpc.ref("vpc_id"),
            "namespace": "kube-system",
        },
        depends_on=[node_group],
    )

    return stack
