#!/usr/bin/env python3

import argparse
import os
import sys
import traceback
from typing import Callable, Mapping, Sequence

from colors import bold, green, underline

from bootstrap import Bootstrapper
from context import Context, Options, DEFAULT_NAMESPACE, DEFAULT_TOKEN_TIMEOUT_MS, DEFAULT_TOKEN_INTERVAL_MS
from gitlab_services import GitLabServices
from k8s_services import K8sServices
from kubeconfig import ClusterInfo, load_cluster_info
from util import UserError, Logger


def parse_bool(value: str) -> bool:
    if value.lower() in ['1', 'yes', 'true', 't', 'y']:
        return True
    elif value.lower() in ['0', 'no', 'false', 'f', 'n']:
        return False
    else:
        raise argparse.ArgumentTypeError(f"invalid boolean value: '{value}'")


def parse_arguments(context: Context, argv: Sequence[str] = None):
    argparser = argparse.ArgumentParser(prog='kubectl gitlab-bootstrap',
                                        description=f"Bootstraps a Kubernetes cluster into a GitLab project, "
                                                    f"v{context.version}.")
    argparser.add_argument('id', nargs='*', metavar='ID', help='the GitLab project (or group) id')
    argparser.add_argument('--version', action='version', version=context.version)
    argparser.add_argument('--gitlab-api-token', dest='gitlab_api_token', metavar='TOKEN',
                           help='private token from GitLab; pulled from env["GITLAB_API_TOKEN"] if not provided')
    argparser.add_argument('--gitlab-url', dest='gitlab_url', metavar='URL',
                           help='set to override default connection to GitLab')
    argparser.add_argument('--gitlab-use-group', dest='gitlab_use_group', action='store_true',
                           help='add the cluster to the group identified by the id rather than a project '
                                '(also accepts --gitlab-use-group=true|false)')
    argparser.add_argument('--kubeconfig', dest='kubeconfig', metavar='PATH',
                           help='path to the kubeconfig file to use (defaults to ~/.kube/config)')
    argparser.add_argument('--context', dest='context', metavar='NAME',
                           help='the kubeconfig context to use (defaults to the current context)')
    argparser.add_argument('-n', '--namespace', dest='namespace', default=DEFAULT_NAMESPACE, metavar='NAMESPACE',
                           help=f'namespace of the GitLab service account (defaults to {DEFAULT_NAMESPACE})')
    argparser.add_argument('--token-timeout-ms', dest='token_timeout_ms', type=int,
                           default=DEFAULT_TOKEN_TIMEOUT_MS, metavar='MS',
                           help='how long to wait for the service account token to become available')
    argparser.add_argument('--token-interval-ms', dest='token_interval_ms', type=int,
                           default=DEFAULT_TOKEN_INTERVAL_MS, metavar='MS',
                           help='initial interval between service account token lookups (doubles on each retry)')
    argparser.add_argument('-v', '--verbose', action='store_true', dest='verbose', help="increase verbosity")
    # only the '--gitlab-use-group=VALUE' form carries a value, the bare flag never consumes the next word
    argv = list(sys.argv[1:] if argv is None else argv)
    use_group_values = [arg.split('=', 1)[1] for arg in argv if arg.startswith('--gitlab-use-group=')]
    args = argparser.parse_args([arg for arg in argv if not arg.startswith('--gitlab-use-group=')])
    for value in use_group_values:
        try:
            args.gitlab_use_group = parse_bool(value)
        except argparse.ArgumentTypeError as e:
            argparser.error(str(e))
    return args


def run(args,
        context: Context,
        k8s_factory: Callable[..., K8sServices] = K8sServices,
        gitlab_factory: Callable[..., GitLabServices] = GitLabServices) -> None:
    options: Options = Options.from_arguments(args, context)
    if options.verbose:
        options.display()

    cluster: ClusterInfo = load_cluster_info(options.kubeconfig, options.kube_context)
    if options.verbose:
        with Logger(f":globe_with_meridians: {underline('Kubernetes:')}") as logger:
            logger.info(f":point_right: kubeconfig: {bold(str(cluster.kubeconfig))}")
            logger.info(f":point_right: context...: {bold(cluster.context_name)}")
            logger.info(f":point_right: cluster...: {bold(cluster.name)} ({cluster.host})")

    Bootstrapper(options=options,
                 cluster=cluster,
                 k8s=k8s_factory(cluster.api_client),
                 gitlab_factory=gitlab_factory).execute()


def main(argv: Sequence[str] = None, env: Mapping[str, str] = os.environ):
    # create the shared context
    context: Context = Context(env=env)
    print('')
    with Logger(green(underline(bold(f":heavy_check_mark: GitLab bootstrap v{context.version}")))) as logger:
        logger.info(f":ship: {bold('Kubernetes, meet GitLab.')}")

    try:
        args = parse_arguments(context, argv)
        context.verbose = context.verbose or args.verbose
        run(args, context)

    except UserError as e:
        with Logger(indent_amount=0, spacious=False) as logger:
            if context.verbose:
                logger.error(traceback.format_exc().strip())
            else:
                logger.error(e.message)
        exit(1)

    except KeyboardInterrupt:
        with Logger(indent_amount=0, spacious=False) as logger:
            logger.error("Interrupted.")
        exit(1)

    except Exception:
        # always print stacktrace since this exception is an unexpected exception
        with Logger(indent_amount=0, spacious=False) as logger:
            logger.error(traceback.format_exc().strip())
        exit(1)


if __name__ == "__main__":
    main()
