import base64
import binascii
import json
import re
import time
from typing import Callable, Union

import requests
from colors import bold, underline
from gitlab.exceptions import GitlabError
from kubernetes.client.rest import ApiException

from context import Options
from gitlab_services import GitLabServices, GitLabTarget, RegisteredCluster
from k8s_services import K8sServices
from kubeconfig import ClusterInfo
from util import Logger, MissingCredential, GitLabUnreachable, NotFound, ProvisioningError, TokenNotFound, \
    SecretFetchError, EmptyToken, RegistrationError

SERVICE_ACCOUNT_NAME = 'gitlab-admin'
CLUSTER_ROLE_BINDING_NAME = 'gitlab-admin'
CLUSTER_ROLE_NAME = 'cluster-admin'
ENVIRONMENT_SCOPE = '*'


def build_service_account_manifest(name: str = SERVICE_ACCOUNT_NAME) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {
            "name": name
        }
    }


def build_cluster_role_binding_manifest(namespace: str,
                                        name: str = CLUSTER_ROLE_BINDING_NAME,
                                        service_account: str = SERVICE_ACCOUNT_NAME,
                                        cluster_role: str = CLUSTER_ROLE_NAME) -> dict:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": {
            "name": name
        },
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": cluster_role
        },
        "subjects": [
            {
                "kind": "ServiceAccount",
                "name": service_account,
                "namespace": namespace
            }
        ]
    }


def connect_gitlab(options: Options,
                   factory: Callable[..., GitLabServices] = GitLabServices) -> GitLabServices:
    if not options.gitlab_api_token:
        raise MissingCredential("GitLab API token is required "
                                "(use '--gitlab-api-token' or the GITLAB_API_TOKEN environment variable)")
    if not options.gitlab_id:
        raise MissingCredential(f"GitLab {options.target_kind} id is required")
    return factory(token=options.gitlab_api_token, url=options.gitlab_url)


def validate_gitlab(options: Options, svc: GitLabServices, logger: Logger) -> GitLabTarget:
    kind: str = options.target_kind
    logger.info(f":mag: Looking up GitLab {kind} '{options.gitlab_id}' at {svc.url}...")
    try:
        if options.use_group:
            attributes: dict = svc.find_group(options.gitlab_id)
        else:
            attributes: dict = svc.find_project(options.gitlab_id)
    except (GitlabError, requests.exceptions.RequestException) as e:
        raise GitLabUnreachable(f"unable to get GitLab {kind} '{options.gitlab_id}': {e}") from e

    if attributes is None:
        raise NotFound(f"unable to get GitLab {kind}: '{options.gitlab_id}' was not found")

    target = GitLabTarget(gitlab_id=options.gitlab_id, use_group=options.use_group, attributes=attributes)
    logger.info(f":white_check_mark: Found GitLab {kind} {bold(target.name)}")
    return target


def _get_or_create(logger: Logger,
                   description: str,
                   finder: Callable[[], Union[None, dict]],
                   creator: Callable[[], dict],
                   manifest: dict,
                   verbose: bool = False) -> dict:
    # lookup failures other than "not found" fall through to creation, which decides
    try:
        existing: dict = finder()
    except ApiException as e:
        logger.warn(f"Could not look up {description} ({e.status} {e.reason}); will attempt to create it")
        existing = None

    if existing is not None:
        logger.info(f":recycle: Using existing {description}")
        return existing

    if verbose:
        logger.info(f"Creating {description} from:\n{json.dumps(manifest, indent=2)}")
    try:
        created: dict = creator()
    except ApiException as e:
        raise ProvisioningError(f"unable to create {description}: {e.status} {e.reason}") from e
    logger.info(f":sparkles: Created {description}")
    return created


def ensure_service_account(svc: K8sServices, namespace: str, logger: Logger, verbose: bool = False) -> dict:
    manifest: dict = build_service_account_manifest()
    name: str = manifest['metadata']['name']
    return _get_or_create(logger=logger,
                          description=f"service account '{namespace}/{name}'",
                          finder=lambda: svc.find_service_account(namespace, name),
                          creator=lambda: svc.create_service_account(namespace, manifest),
                          manifest=manifest,
                          verbose=verbose)


def ensure_cluster_role_binding(svc: K8sServices, namespace: str, logger: Logger, verbose: bool = False) -> dict:
    manifest: dict = build_cluster_role_binding_manifest(namespace)
    name: str = manifest['metadata']['name']
    return _get_or_create(logger=logger,
                          description=f"cluster role binding '{name}'",
                          finder=lambda: svc.find_cluster_role_binding(name),
                          creator=lambda: svc.create_cluster_role_binding(manifest),
                          manifest=manifest,
                          verbose=verbose)


def find_token_secret_name(service_account: dict, name: str = SERVICE_ACCOUNT_NAME) -> Union[None, str]:
    pattern = re.compile(f"^{re.escape(name)}-token-")
    for secret in service_account.get('secrets') or []:
        secret_name: str = secret.get('name')
        if secret_name and pattern.match(secret_name):
            return secret_name
    return None


def decode_token(secret: dict) -> str:
    data: dict = secret.get('data') or {}
    encoded: str = data.get('token')
    if not encoded:
        return ''
    try:
        return base64.b64decode(encoded).decode('utf-8').strip()
    except (binascii.Error, UnicodeDecodeError) as e:
        name: str = secret.get('metadata', {}).get('name')
        raise SecretFetchError(f"malformed token in secret '{name}': {e}") from e


def _read_token_secret_name(svc: K8sServices, namespace: str) -> Union[None, str]:
    try:
        service_account: dict = svc.find_service_account(namespace, SERVICE_ACCOUNT_NAME)
    except ApiException as e:
        raise SecretFetchError(f"unable to get service account '{namespace}/{SERVICE_ACCOUNT_NAME}': "
                               f"{e.status} {e.reason}") from e
    if service_account is None:
        raise TokenNotFound(f"service account '{namespace}/{SERVICE_ACCOUNT_NAME}' does not exist")
    return find_token_secret_name(service_account)


def _read_token(svc: K8sServices, namespace: str, secret_name: str) -> str:
    try:
        secret: dict = svc.find_secret(namespace, secret_name)
    except ApiException as e:
        raise SecretFetchError(f"unable to get service account token secret '{namespace}/{secret_name}': "
                               f"{e.status} {e.reason}") from e
    if secret is None:
        raise SecretFetchError(f"service account token secret '{namespace}/{secret_name}' does not exist")
    return decode_token(secret)


def extract_token(svc: K8sServices,
                  namespace: str,
                  logger: Logger,
                  timeout_ms: int,
                  interval_ms: int,
                  sleep: Callable[[float], None] = time.sleep,
                  verbose: bool = False) -> str:
    """
    Read the bearer token of the 'gitlab-admin' service account.

    The cluster creates the token secret (and fills its data) asynchronously after the service account is created, so
    this polls with exponential backoff until the token shows up or 'timeout_ms' elapses.
    """
    waited_ms: int = 0
    while True:
        token: str = ''
        secret_name: str = _read_token_secret_name(svc, namespace)
        if secret_name is not None:
            token = _read_token(svc, namespace, secret_name)
            if token:
                logger.info(f":key: Read service account token from secret '{namespace}/{secret_name}'")
                return token

        remaining_ms: int = timeout_ms - waited_ms
        if remaining_ms <= 0:
            if secret_name is None:
                raise TokenNotFound(f"no token secret found for service account "
                                    f"'{namespace}/{SERVICE_ACCOUNT_NAME}' (waited {waited_ms / 1000}s)")
            else:
                raise EmptyToken(f"no data in service account token secret "
                                 f"'{namespace}/{secret_name}' (waited {waited_ms / 1000}s)")

        delay_ms: int = min(interval_ms, remaining_ms)
        if verbose:
            logger.info(f":hourglass: Service account token not available yet, retrying in {delay_ms}ms")
        sleep(delay_ms / 1000)
        waited_ms += delay_ms
        interval_ms *= 2


def register_cluster(svc: GitLabServices,
                     target: GitLabTarget,
                     cluster: ClusterInfo,
                     token: str,
                     logger: Logger) -> RegisteredCluster:
    if not token:
        raise EmptyToken(f"refusing to register cluster '{cluster.name}' without a service account token")

    data: dict = {
        "name": cluster.name,
        "environment_scope": ENVIRONMENT_SCOPE,
        "platform_kubernetes_attributes": {
            "api_url": cluster.host,
            "token": token,
            "ca_cert": cluster.ca_cert
        }
    }
    try:
        if target.use_group:
            response: dict = svc.add_group_cluster(target.gitlab_id, data)
        else:
            response: dict = svc.add_project_cluster(target.gitlab_id, data)
    except (GitlabError, requests.exceptions.RequestException) as e:
        raise RegistrationError(f"unable to assign kubernetes cluster to {target.kind}: {e}") from e

    owner: dict = response.get(target.kind) or {}
    registered = RegisteredCluster(cluster_id=response['id'],
                                   name=response.get('name', cluster.name),
                                   web_url=owner.get('web_url') or target.web_url)
    logger.info(f":id: Registered cluster {bold(registered.name)} (id {registered.cluster_id})")
    logger.info(f"Cluster successfully added to {target.kind}!")
    logger.info(f"To finish up visit: {registered.cluster_url} and install Helm and Runner.")
    return registered


class Bootstrapper:

    def __init__(self,
                 options: Options,
                 cluster: ClusterInfo,
                 k8s: K8sServices,
                 gitlab_factory: Callable[..., GitLabServices] = GitLabServices,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        super().__init__()
        self._options: Options = options
        self._cluster: ClusterInfo = cluster
        self._k8s: K8sServices = k8s
        self._gitlab_factory: Callable[..., GitLabServices] = gitlab_factory
        self._sleep: Callable[[float], None] = sleep

    def execute(self) -> RegisteredCluster:
        options: Options = self._options

        with Logger(f":link: {underline('GitLab:')}") as logger:
            gitlab_svc: GitLabServices = connect_gitlab(options, self._gitlab_factory)
            target: GitLabTarget = validate_gitlab(options, gitlab_svc, logger)

        with Logger(f":wrench: {underline(f'Cluster {self._cluster.name}:')}") as logger:
            ensure_service_account(self._k8s, options.namespace, logger, options.verbose)
            ensure_cluster_role_binding(self._k8s, options.namespace, logger, options.verbose)
            token: str = extract_token(svc=self._k8s,
                                       namespace=options.namespace,
                                       logger=logger,
                                       timeout_ms=options.token_timeout_ms,
                                       interval_ms=options.token_interval_ms,
                                       sleep=self._sleep,
                                       verbose=options.verbose)

        with Logger(f":rocket: {underline('Registration:')}") as logger:
            return register_cluster(gitlab_svc, target, self._cluster, token, logger)
