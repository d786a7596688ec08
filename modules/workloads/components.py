"""
Retail store sample application components
Images published by aws-containers/retail-store-sample-app
"""

from typing import Dict, List, NamedTuple, Sequence, Tuple

IMAGE_REGISTRY = "public.ecr.aws/aws-containers"

CONTAINER_PORT = 8080
SERVICE_PORT = 80

JAVA_OPTS = "-XX:MaxRAMPercentage=75.0 -Djava.security.egd=file:/dev/urandom"


class Component(NamedTuple):
    """One microservice of the retail store"""
    name: str
    image: str
    health_path: str
    env: Dict[str, str]
    dependencies: Tuple[str, ...] = ()
    memory: str = "256Mi"
    cpu: str = "100m"

    def image_uri(self, version: str) -> str:
        return f"{IMAGE_REGISTRY}/{self.image}:{version}"

    @property
    def service_url(self) -> str:
        return f"http://{self.name}:{SERVICE_PORT}"


def retail_store_components() -> List[Component]:
    """
    Components of the retail store wired for in-memory persistence

    The UI reaches every backend through its Service DNS name; checkout
    submits orders to the orders service.
    """
    catalog = Component(
        name="catalog",
        image="retail-store-sample-catalog",
        health_path="/health",
        env={"RETAIL_CATALOG_PERSISTENCE_PROVIDER": "in-memory"},
        memory="128Mi",
    )
    carts = Component(
        name="carts",
        image="retail-store-sample-cart",
        health_path="/actuator/health/liveness",
        env={
            "RETAIL_CART_PERSISTENCE_PROVIDER": "in-memory",
            "JAVA_OPTS": JAVA_OPTS,
        },
        memory="512Mi",
    )
    orders = Component(
        name="orders",
        image="retail-store-sample-orders",
        health_path="/actuator/health/liveness",
        env={
            "RETAIL_ORDERS_PERSISTENCE_PROVIDER": "in-memory",
            "RETAIL_ORDERS_MESSAGING_PROVIDER": "in-memory",
            "JAVA_OPTS": JAVA_OPTS,
        },
        memory="512Mi",
    )
    checkout = Component(
        name="checkout",
        image="retail-store-sample-checkout",
        health_path="/health",
        env={
            "RETAIL_CHECKOUT_PERSISTENCE_PROVIDER": "in-memory",
            "RETAIL_CHECKOUT_ENDPOINTS_ORDERS": orders.service_url,
        },
        dependencies=("orders",),
        memory="256Mi",
    )
    ui = Component(
        name="ui",
        image="retail-store-sample-ui",
        health_path="/actuator/health/liveness",
        env={
            "RETAIL_UI_ENDPOINTS_CATALOG": catalog.service_url,
            "RETAIL_UI_ENDPOINTS_CARTS": carts.service_url,
            "RETAIL_UI_ENDPOINTS_ORDERS": orders.service_url,
            "RETAIL_UI_ENDPOINTS_CHECKOUT": checkout.service_url,
            "JAVA_OPTS": JAVA_OPTS,
        },
        dependencies=("catalog", "carts", "orders", "checkout"),
        memory="512Mi",
    )
    return [ui, catalog, carts, orders, checkout]


def component_by_name(components: Sequence[Component], name: str) -> Component:
    for component in components:
        if component.name == name:
            return component
    raise KeyError(f"Unknown retail store component: {name}")


def deployment_order(components: Sequence[Component]) -> List[Component]:
    """
    Order components so every component follows its dependencies

    Components without ordering constraints keep their input order.

    Raises:
        ValueError: on an unknown dependency or a dependency cycle
    """
    by_name = {component.name: component for component in components}
    for component in components:
        for dependency in component.dependencies:
            if dependency not in by_name:
                raise ValueError(f"{component.name} depends on unknown component {dependency}")

    ordered = []
    state = {}  # name -> "visiting" | "done"

    def visit(component: Component, path: List[str]) -> None:
        status = state.get(component.name)
        if status == "done":
            return
        if status == "visiting":
            cycle = " -> ".join(path[path.index(component.name):] + [component.name])
            raise ValueError(f"Dependency cycle between components: {cycle}")
        state[component.name] = "visiting"
        for dependency in component.dependencies:
            visit(by_name[dependency], path + [component.name])
        state[component.name] = "done"
        ordered.append(component)

    for component in components:
        visit(component, [])
    return ordered
