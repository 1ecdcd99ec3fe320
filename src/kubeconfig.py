import base64
import binascii
from pathlib import Path
from typing import Mapping, Union

import jsonschema
import yaml
from jsonschema import ValidationError
from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from util import ConfigLoadError, NoContext

schema = {
    "type": "object",
    "properties": {
        "current-context": {"type": ["string", "null"]},
        "contexts": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["name", "context"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "context": {
                        "type": "object",
                        "required": ["cluster"],
                        "properties": {
                            "cluster": {"type": "string", "minLength": 1}
                        }
                    }
                }
            }
        },
        "clusters": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["name", "cluster"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "cluster": {
                        "type": "object",
                        "properties": {
                            "server": {"type": "string"},
                            "certificate-authority": {"type": "string"},
                            "certificate-authority-data": {"type": "string"}
                        }
                    }
                }
            }
        }
    }
}


class ClusterInfo:
    """The Kubernetes cluster selected by the active kubeconfig context, plus an API client connected to it."""

    def __init__(self,
                 kubeconfig: Path,
                 context_name: str,
                 name: str,
                 host: str,
                 ca_cert: str,
                 api_client: client.ApiClient = None) -> None:
        super().__init__()
        self._kubeconfig: Path = kubeconfig
        self._context_name: str = context_name
        self._name: str = name
        self._host: str = host
        self._ca_cert: str = ca_cert
        self._api_client: client.ApiClient = api_client

    @property
    def kubeconfig(self) -> Path:
        return self._kubeconfig

    @property
    def context_name(self) -> str:
        return self._context_name

    @property
    def name(self) -> str:
        return self._name

    @property
    def host(self) -> str:
        return self._host

    @property
    def ca_cert(self) -> str:
        return self._ca_cert

    @property
    def api_client(self) -> client.ApiClient:
        return self._api_client


def resolve_kubeconfig_path(path: str = None) -> Path:
    if path:
        return Path(path)
    try:
        home: Path = Path.home()
    except (RuntimeError, KeyError) as e:
        raise ConfigLoadError(f"can't get home dir: {e}") from e
    return home / '.kube' / 'config'


def read_kubeconfig(path: Path) -> dict:
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f.read())
    except OSError as e:
        raise ConfigLoadError(f"error reading kubeconfig at '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"kubeconfig at '{path}' is malformed: {e}") from e

    if data is None:
        data = {}
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        raise ConfigLoadError(f"kubeconfig at '{path}' failed validation: {e.message}") from e
    return data


def _find_named(items: list, name: str) -> Union[None, dict]:
    for item in items if items else []:
        if item['name'] == name:
            return item
    return None


def select_context(kubeconfig: Mapping, context_name: str = None) -> dict:
    contexts: list = kubeconfig.get('contexts') or []
    if len(contexts) < 1:
        raise NoContext("no contexts found in kubeconfig")

    if not context_name:
        context_name = kubeconfig.get('current-context')
        if not context_name:
            raise NoContext("no context currently set")

    context: dict = _find_named(contexts, context_name)
    if context is None:
        raise NoContext(f"context '{context_name}' not found in kubeconfig")
    return context


def read_ca_cert(cluster: Mapping, kubeconfig_path: Path) -> str:
    if cluster.get('certificate-authority-data'):
        try:
            return base64.b64decode(cluster['certificate-authority-data']).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ConfigLoadError(f"invalid certificate-authority-data in kubeconfig: {e}") from e

    elif cluster.get('certificate-authority'):
        ca_path: Path = Path(cluster['certificate-authority'])
        if not ca_path.is_absolute():
            ca_path = kubeconfig_path.parent / ca_path
        try:
            with open(ca_path, 'r') as f:
                return f.read()
        except OSError as e:
            raise ConfigLoadError(f"error reading certificate authority file '{ca_path}': {e}") from e

    else:
        return ''


def load_cluster_info(path: str = None, context_name: str = None) -> ClusterInfo:
    kubeconfig_path: Path = resolve_kubeconfig_path(path)
    kubeconfig: dict = read_kubeconfig(kubeconfig_path)
    context: dict = select_context(kubeconfig, context_name)
    cluster_name: str = context['context']['cluster']

    cluster_entry: dict = _find_named(kubeconfig.get('clusters'), cluster_name)
    if cluster_entry is None:
        raise ConfigLoadError(f"cluster '{cluster_name}' (of context '{context['name']}') not found in kubeconfig")
    ca_cert: str = read_ca_cert(cluster_entry['cluster'], kubeconfig_path)

    configuration = client.Configuration()
    try:
        config.load_kube_config(config_file=str(kubeconfig_path),
                                context=context['name'],
                                client_configuration=configuration,
                                persist_config=False)
    except ConfigException as e:
        raise ConfigLoadError(f"error building config from kubeconfig path: {e}") from e

    return ClusterInfo(kubeconfig=kubeconfig_path,
                       context_name=context['name'],
                       name=cluster_name,
                       host=configuration.host,
                       ca_cert=ca_cert,
                       api_client=client.ApiClient(configuration))
