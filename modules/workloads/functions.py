"""
Workloads Module Functions
Deploys the retail store sample application onto the EKS cluster
"""

import json
import pulumi
import pulumi_kubernetes as k8s
from typing import Any, Dict, List, Optional

from .components import (
    CONTAINER_PORT,
    SERVICE_PORT,
    Component,
    deployment_order,
    retail_store_components,
)

PART_OF = "retail-store"


def build_kubeconfig(cluster_name: str, endpoint: str, ca_data: str, region: str = "") -> str:
    """
    Kubeconfig for the cluster authenticating through `aws eks get-token`

    Args:
        cluster_name: EKS cluster name
        endpoint: API server endpoint
        ca_data: Base64 cluster CA certificate
        region: AWS region passed to the token command

    Returns:
        Kubeconfig as a JSON string
    """
    args = ["eks", "get-token", "--cluster-name", cluster_name]
    if region:
        args += ["--region", region]

    return json.dumps({
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {
                "server": endpoint,
                "certificate-authority-data": ca_data
            }
        }],
        "contexts": [{
            "name": cluster_name,
            "context": {"cluster": cluster_name, "user": cluster_name}
        }],
        "current-context": cluster_name,
        "users": [{
            "name": cluster_name,
            "user": {
                "exec": {
                    "apiVersion": "client.authentication.k8s.io/v1beta1",
                    "command": "aws",
                    "args": args
                }
            }
        }]
    })


def load_balancer_hostname(status: Any) -> str:
    """First ingress hostname (or IP) from a Service status, empty until assigned"""
    load_balancer = getattr(status, "load_balancer", None) if status else None
    ingress = getattr(load_balancer, "ingress", None) if load_balancer else None
    if not ingress:
        return ""
    return ingress[0].hostname or ingress[0].ip or ""


def component_labels(component: Component) -> Dict[str, str]:
    return {
        "app.kubernetes.io/name": component.name,
        "app.kubernetes.io/component": "service",
        "app.kubernetes.io/part-of": PART_OF,
        "app.kubernetes.io/managed-by": "pulumi"
    }


def selector_labels(component: Component) -> Dict[str, str]:
    return {
        "app.kubernetes.io/name": component.name,
        "app.kubernetes.io/component": "service"
    }


def create_kubernetes_provider(name: str, cluster_endpoint: 'pulumi.Output[str]',
                               cluster_ca_data: 'pulumi.Output[str]', region: str = "",
                               depends_on: Optional[List[pulumi.Resource]] = None) -> k8s.Provider:
    """
    Create Kubernetes provider for EKS cluster

    Args:
        name: Cluster name
        cluster_endpoint: EKS cluster endpoint
        cluster_ca_data: EKS cluster CA certificate data
        region: AWS region for token generation
        depends_on: Resources the cluster must have before workloads (node group)

    Returns:
        Kubernetes provider instance
    """
    kubeconfig = pulumi.Output.all(cluster_endpoint, cluster_ca_data).apply(
        lambda args: build_kubeconfig(name, args[0], args[1], region)
    )

    return k8s.Provider(
        f"{name}-k8s-provider",
        kubeconfig=kubeconfig,
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )


def create_namespace(name: str, namespace: str, provider: k8s.Provider) -> Dict[str, any]:
    """Create the namespace the application runs in"""
    ns = k8s.core.v1.Namespace(
        f"{name}-{namespace}-namespace",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=namespace,
            labels={
                "name": namespace,
                "app.kubernetes.io/part-of": PART_OF,
                "managed-by": "pulumi"
            }
        ),
        opts=pulumi.ResourceOptions(provider=provider)
    )

    return {
        "namespace": ns,
        "namespace_name": ns.metadata.name
    }


def create_component_deployment(name: str, component: Component, namespace_name: 'pulumi.Output[str]',
                                version: str, replicas: int, provider: k8s.Provider,
                                depends_on: Optional[List[pulumi.Resource]] = None) -> Dict[str, any]:
    """
    Deploy one retail store component: ServiceAccount and Deployment

    Args:
        name: Resource name prefix
        component: Component to deploy
        namespace_name: Namespace name
        version: Image tag
        replicas: Pod replicas
        provider: Kubernetes provider
        depends_on: Deployments of the components this one calls

    Returns:
        Dict with service account and deployment resources
    """
    labels = component_labels(component)

    service_account = k8s.core.v1.ServiceAccount(
        f"{name}-{component.name}-sa",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=component.name,
            namespace=namespace_name,
            labels=labels
        ),
        opts=pulumi.ResourceOptions(provider=provider)
    )

    probe_action = k8s.core.v1.HTTPGetActionArgs(
        path=component.health_path,
        port=CONTAINER_PORT
    )

    container = k8s.core.v1.ContainerArgs(
        name=component.name,
        image=component.image_uri(version),
        image_pull_policy="IfNotPresent",
        ports=[k8s.core.v1.ContainerPortArgs(
            name="http",
            container_port=CONTAINER_PORT,
            protocol="TCP"
        )],
        env=[k8s.core.v1.EnvVarArgs(name=key, value=value) for key, value in component.env.items()],
        liveness_probe=k8s.core.v1.ProbeArgs(
            http_get=probe_action,
            initial_delay_seconds=45,
            period_seconds=20
        ),
        readiness_probe=k8s.core.v1.ProbeArgs(
            http_get=probe_action,
            initial_delay_seconds=10,
            period_seconds=5,
            failure_threshold=3
        ),
        resources=k8s.core.v1.ResourceRequirementsArgs(
            requests={
                "cpu": component.cpu,
                "memory": component.memory
            },
            limits={
                "memory": component.memory
            }
        ),
        security_context=k8s.core.v1.SecurityContextArgs(
            run_as_non_root=True,
            run_as_user=1000,
            allow_privilege_escalation=False,
            read_only_root_filesystem=True,
            capabilities=k8s.core.v1.CapabilitiesArgs(drop=["ALL"])
        ),
        volume_mounts=[k8s.core.v1.VolumeMountArgs(name="tmp-volume", mount_path="/tmp")]
    )

    deployment = k8s.apps.v1.Deployment(
        f"{name}-{component.name}-deployment",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=component.name,
            namespace=namespace_name,
            labels=labels
        ),
        spec=k8s.apps.v1.DeploymentSpecArgs(
            replicas=replicas,
            selector=k8s.meta.v1.LabelSelectorArgs(
                match_labels=selector_labels(component)
            ),
            template=k8s.core.v1.PodTemplateSpecArgs(
                metadata=k8s.meta.v1.ObjectMetaArgs(labels=labels),
                spec=k8s.core.v1.PodSpecArgs(
                    service_account_name=component.name,
                    security_context=k8s.core.v1.PodSecurityContextArgs(fs_group=1000),
                    containers=[container],
                    volumes=[k8s.core.v1.VolumeArgs(
                        name="tmp-volume",
                        empty_dir=k8s.core.v1.EmptyDirVolumeSourceArgs(medium="Memory")
                    )]
                )
            )
        ),
        opts=pulumi.ResourceOptions(
            provider=provider,
            depends_on=[service_account, *(depends_on or [])]
        )
    )

    return {
        "service_account": service_account,
        "deployment": deployment
    }


def create_component_service(name: str, component: Component, namespace_name: 'pulumi.Output[str]',
                             provider: k8s.Provider, service_type: str = "ClusterIP") -> Dict[str, any]:
    """Expose a component on port 80 inside (or, for the UI, outside) the cluster"""
    service = k8s.core.v1.Service(
        f"{name}-{component.name}-service",
        metadata=k8s.meta.v1.ObjectMetaArgs(
            name=component.name,
            namespace=namespace_name,
            labels=component_labels(component)
        ),
        spec=k8s.core.v1.ServiceSpecArgs(
            type=service_type,
            selector=selector_labels(component),
            ports=[k8s.core.v1.ServicePortArgs(
                name="http",
                port=SERVICE_PORT,
                target_port="http",
                protocol="TCP"
            )]
        ),
        opts=pulumi.ResourceOptions(provider=provider)
    )

    return {
        "service": service,
        "service_name": component.name
    }


def ui_service_transformation(service_type: str):
    """ConfigFile transformation setting the type of the manifest's ui Service"""
    def transform(obj: Dict[str, Any], opts: pulumi.ResourceOptions) -> None:
        if obj.get("kind") == "Service" and obj.get("metadata", {}).get("name") == "ui":
            obj.setdefault("spec", {})["type"] = service_type

    return transform


def apply_manifest(name: str, manifest_url: str, provider: k8s.Provider,
                   ui_service_type: str = "LoadBalancer") -> Dict[str, Any]:
    """Apply the published all-in-one manifest instead of the native definitions"""
    pulumi.log.info(f"Applying retail store manifest from {manifest_url}, UI via {ui_service_type}")
    manifest = k8s.yaml.ConfigFile(
        f"{name}-retail-store-manifest",
        file=manifest_url,
        transformations=[ui_service_transformation(ui_service_type)],
        opts=pulumi.ResourceOptions(provider=provider)
    )

    ui_hostname = None
    if ui_service_type == "LoadBalancer":
        ui_service = manifest.get_resource("v1/Service", "ui")
        ui_hostname = ui_service.apply(lambda service: service.status).apply(load_balancer_hostname)

    return {
        "manifest": manifest,
        "ui_hostname": ui_hostname
    }


def create_workload_resources(cluster_name: str,
                              cluster_endpoint: 'pulumi.Output[str]',
                              cluster_ca_data: 'pulumi.Output[str]',
                              namespace: str = "retail-store",
                              version: str = "1.2.1",
                              replicas: int = 1,
                              ui_service_type: str = "LoadBalancer",
                              manifest_url: str = "",
                              region: str = "",
                              depends_on: Optional[List[pulumi.Resource]] = None) -> Dict[str, any]:
    """
    Deploy the retail store application

    Args:
        cluster_name: EKS cluster name
        cluster_endpoint: EKS cluster endpoint
        cluster_ca_data: EKS cluster CA certificate data
        namespace: Namespace for the application
        version: Retail store image tag
        replicas: Replicas per component
        ui_service_type: Service type exposing the UI
        manifest_url: Apply this manifest instead of the native definitions
        region: AWS region for token generation
        depends_on: Resources that must be ready first (node group, add-ons)

    Returns:
        Dict with workload resources and outputs
    """
    k8s_provider = create_kubernetes_provider(
        cluster_name, cluster_endpoint, cluster_ca_data, region, depends_on
    )

    if manifest_url:
        manifest_result = apply_manifest(cluster_name, manifest_url, k8s_provider, ui_service_type)
        return {
            "namespace_name": "default",
            "component_names": [],
            "ui_service_name": "ui",
            "ui_hostname": manifest_result["ui_hostname"],
            "_k8s_provider": k8s_provider,
            "_manifest": manifest_result["manifest"],
            "_deployments": {},
            "_services": {}
        }

    namespace_result = create_namespace(cluster_name, namespace, k8s_provider)

    deployments = {}
    services = {}
    for component in deployment_order(retail_store_components()):
        upstream = [deployments[dependency] for dependency in component.dependencies]
        deployment_result = create_component_deployment(
            cluster_name, component, namespace_result["namespace_name"],
            version, replicas, k8s_provider, depends_on=upstream
        )
        service_type = ui_service_type if component.name == "ui" else "ClusterIP"
        service_result = create_component_service(
            cluster_name, component, namespace_result["namespace_name"],
            k8s_provider, service_type
        )
        deployments[component.name] = deployment_result["deployment"]
        services[component.name] = service_result["service"]

    pulumi.log.info(
        f"Retail store {version}: {', '.join(deployments)} in namespace {namespace}, UI via {ui_service_type}"
    )

    ui_hostname = None
    if ui_service_type == "LoadBalancer":
        ui_hostname = services["ui"].status.apply(load_balancer_hostname)

    return {
        "namespace_name": namespace_result["namespace_name"],
        "component_names": list(deployments.keys()),
        "ui_service_name": "ui",
        "ui_hostname": ui_hostname,
        # Keep references to resources for dependencies
        "_k8s_provider": k8s_provider,
        "_namespace": namespace_result["namespace"],
        "_manifest": None,
        "_deployments": deployments,
        "_services": services
    }
