from typing import Union

from kubernetes import client
from kubernetes.client.rest import ApiException


class K8sServices:
    """Service accounts, cluster-role bindings & secrets of a single Kubernetes cluster.

    Objects are exchanged as plain JSON-style dicts (the same shape 'kubectl get -o json' prints); lookups of missing
    objects return None, any other API error is raised as 'ApiException'.
    """

    def __init__(self, api_client: client.ApiClient = None) -> None:
        super().__init__()
        self._api_client: client.ApiClient = api_client
        self._core: client.CoreV1Api = client.CoreV1Api(api_client) if api_client is not None else None
        self._rbac: client.RbacAuthorizationV1Api = \
            client.RbacAuthorizationV1Api(api_client) if api_client is not None else None

    def _to_dict(self, obj) -> dict:
        return self._api_client.sanitize_for_serialization(obj)

    def _find(self, reader, *args) -> Union[None, dict]:
        try:
            return self._to_dict(reader(*args))
        except ApiException as e:
            if e.status == 404:
                return None
            else:
                raise

    def find_service_account(self, namespace: str, name: str) -> Union[None, dict]:
        return self._find(self._core.read_namespaced_service_account, name, namespace)

    def create_service_account(self, namespace: str, manifest: dict) -> dict:
        return self._to_dict(self._core.create_namespaced_service_account(namespace=namespace, body=manifest))

    def find_cluster_role_binding(self, name: str) -> Union[None, dict]:
        return self._find(self._rbac.read_cluster_role_binding, name)

    def create_cluster_role_binding(self, manifest: dict) -> dict:
        return self._to_dict(self._rbac.create_cluster_role_binding(body=manifest))

    def find_secret(self, namespace: str, name: str) -> Union[None, dict]:
        return self._find(self._core.read_namespaced_secret, name, namespace)
