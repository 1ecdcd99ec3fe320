import os
from importlib.metadata import PackageNotFoundError, version
from typing import Mapping

from colors import bold, underline

from util import Logger, MissingArgument, UserError

DEFAULT_NAMESPACE = 'kube-system'
DEFAULT_TOKEN_TIMEOUT_MS = 30 * 1000
DEFAULT_TOKEN_INTERVAL_MS = 500


class Context:

    def __init__(self, env: Mapping[str, str] = os.environ) -> None:
        super().__init__()
        self._env: Mapping[str, str] = env

        try:
            self._version: str = version('kubectl-gitlab-bootstrap')
        except PackageNotFoundError:
            self._version: str = "0.0.0"

        # whether increased verbosity was requested
        self._verbose: bool = \
            True if "VERBOSE" in env and env["VERBOSE"].lower() in ['1', 'yes', 'true'] else False

    @property
    def version(self) -> str:
        return self._version

    @property
    def verbose(self) -> bool:
        return self._verbose

    @verbose.setter
    def verbose(self, value: bool):
        self._verbose = value

    @property
    def gitlab_api_token(self) -> str:
        return self._env.get('GITLAB_API_TOKEN', '')


class Options:
    """Immutable inputs of a single bootstrap invocation, resolved from the command line and the environment."""

    @staticmethod
    def from_arguments(args, context: Context) -> 'Options':
        ids = args.id if args.id is not None else []
        if len(ids) != 1:
            raise MissingArgument(f"GitLab project id is required (exactly one, got {len(ids)})")

        return Options(gitlab_id=ids[0],
                       gitlab_api_token=args.gitlab_api_token if args.gitlab_api_token else context.gitlab_api_token,
                       gitlab_url=args.gitlab_url,
                       use_group=args.gitlab_use_group,
                       kubeconfig=args.kubeconfig,
                       kube_context=args.context,
                       namespace=args.namespace,
                       token_timeout_ms=args.token_timeout_ms,
                       token_interval_ms=args.token_interval_ms,
                       verbose=args.verbose or context.verbose)

    def __init__(self,
                 gitlab_id: str,
                 gitlab_api_token: str,
                 gitlab_url: str = None,
                 use_group: bool = False,
                 kubeconfig: str = None,
                 kube_context: str = None,
                 namespace: str = DEFAULT_NAMESPACE,
                 token_timeout_ms: int = DEFAULT_TOKEN_TIMEOUT_MS,
                 token_interval_ms: int = DEFAULT_TOKEN_INTERVAL_MS,
                 verbose: bool = False) -> None:
        super().__init__()
        if token_timeout_ms < 0:
            raise UserError(f"token timeout cannot be negative (got {token_timeout_ms})")
        if token_interval_ms <= 0:
            raise UserError(f"token poll interval must be positive (got {token_interval_ms})")
        self._gitlab_id: str = gitlab_id
        self._gitlab_api_token: str = gitlab_api_token
        self._gitlab_url: str = gitlab_url
        self._use_group: bool = use_group
        self._kubeconfig: str = kubeconfig
        self._kube_context: str = kube_context
        self._namespace: str = namespace if namespace else DEFAULT_NAMESPACE
        self._token_timeout_ms: int = token_timeout_ms
        self._token_interval_ms: int = token_interval_ms
        self._verbose: bool = verbose

    @property
    def gitlab_id(self) -> str:
        return self._gitlab_id

    @property
    def gitlab_api_token(self) -> str:
        return self._gitlab_api_token

    @property
    def gitlab_url(self) -> str:
        return self._gitlab_url

    @property
    def use_group(self) -> bool:
        return self._use_group

    @property
    def target_kind(self) -> str:
        return 'group' if self._use_group else 'project'

    @property
    def kubeconfig(self) -> str:
        return self._kubeconfig

    @property
    def kube_context(self) -> str:
        return self._kube_context

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def token_timeout_ms(self) -> int:
        return self._token_timeout_ms

    @property
    def token_interval_ms(self) -> int:
        return self._token_interval_ms

    @property
    def verbose(self) -> bool:
        return self._verbose

    def display(self) -> None:
        with Logger(header=f":clipboard: {underline('Options:')}") as logger:
            values = {
                'target': f"{self.target_kind} {self.gitlab_id}",
                'gitlab-url': self.gitlab_url if self.gitlab_url else '(default)',
                'gitlab-api-token': '(set)' if self.gitlab_api_token else '(missing)',
                'kubeconfig': self.kubeconfig if self.kubeconfig else '(default)',
                'context': self.kube_context if self.kube_context else '(current)',
                'namespace': self.namespace,
            }
            largest_name_length: int = len(max(list(values.keys()), key=lambda key: len(key)))
            for name, value in values.items():
                logger.info(f":point_right: {name.ljust(largest_name_length, '.')}..: {bold(str(value))}")
