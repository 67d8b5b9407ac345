"""Factory for watch sources backed by the Kubernetes API."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

from kubesync.collector.listwatch import ALL_NAMESPACES, KubeListWatch, ListWatch
from kubesync.collector.multiwatch import multi_namespace_list_watch
from kubesync.collector.reflector import Reflector
from kubesync.models.snapshots import ResourceKind


@dataclass(frozen=True)
class ResourceApi:
    """Where a resource kind is listed: API class plus list method names."""

    api_class: str
    cluster_list: str
    namespaced_list: str | None = None


RESOURCE_APIS: dict[ResourceKind, ResourceApi] = {
    ResourceKind.PODS: ResourceApi("CoreV1Api", "list_pod_for_all_namespaces", "list_namespaced_pod"),
    ResourceKind.SERVICES: ResourceApi("CoreV1Api", "list_service_for_all_namespaces", "list_namespaced_service"),
    ResourceKind.NAMESPACES: ResourceApi("CoreV1Api", "list_namespace"),
    ResourceKind.NODES: ResourceApi("CoreV1Api", "list_node"),
    ResourceKind.DEPLOYMENTS: ResourceApi(
        "AppsV1Api", "list_deployment_for_all_namespaces", "list_namespaced_deployment"
    ),
    ResourceKind.DAEMONSETS: ResourceApi(
        "AppsV1Api", "list_daemon_set_for_all_namespaces", "list_namespaced_daemon_set"
    ),
    ResourceKind.REPLICASETS: ResourceApi(
        "AppsV1Api", "list_replica_set_for_all_namespaces", "list_namespaced_replica_set"
    ),
    ResourceKind.INGRESSES: ResourceApi(
        "NetworkingV1Api", "list_ingress_for_all_namespaces", "list_namespaced_ingress"
    ),
}


class SourceFactory:
    """Creates reflectors for resource kinds.

    Built without an API client when no cluster configuration could be
    loaded; :meth:`create` then returns None and collectors stay idle.
    """

    def __init__(self, api_client: Any | None, namespaces: Sequence[str] = (ALL_NAMESPACES,)) -> None:
        self._api_client = api_client
        self._namespaces = list(namespaces) or [ALL_NAMESPACES]

    @property
    def enabled(self) -> bool:
        return self._api_client is not None

    def create(
        self,
        kind: ResourceKind,
        *,
        field_selector: str = "",
        label_selector: str = "",
        namespaces: Sequence[str] | None = None,
    ) -> Reflector | None:
        if self._api_client is None:
            return None
        api = RESOURCE_APIS[kind]
        instance = getattr(k8s_client, api.api_class)(self._api_client)
        selectors = {"field_selector": field_selector, "label_selector": label_selector}

        if api.namespaced_list is None:
            list_watch: ListWatch = KubeListWatch(getattr(instance, api.cluster_list), **selectors)
        else:
            namespaced_list = getattr(instance, api.namespaced_list)
            cluster_list = getattr(instance, api.cluster_list)

            def factory(namespace: str) -> ListWatch:
                if namespace == ALL_NAMESPACES:
                    return KubeListWatch(cluster_list, **selectors)
                return KubeListWatch(namespaced_list, namespace=namespace, **selectors)

            list_watch = multi_namespace_list_watch(
                namespaces if namespaces is not None else self._namespaces, factory
            )

        name = str(kind)
        if field_selector or label_selector:
            name = f"{kind}[{field_selector or label_selector}]"
        return Reflector(list_watch, name=name)
