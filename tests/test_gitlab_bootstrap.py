import argparse
import base64
from pathlib import Path

import pytest

import gitlab_bootstrap
from context import Context
from gitlab_bootstrap import main, parse_arguments, parse_bool, run
from kubeconfig import ClusterInfo
from mock_gitlab_services import MockGitLabServices
from mock_k8s_services import MockK8sServices

PROJECTS = {'123': {'id': 123, 'web_url': 'https://gitlab.example/proj'}}


def fail_load_cluster_info(*args, **kwargs):
    pytest.fail("kubeconfig must not be loaded")


def fake_load_cluster_info(path: str = None, context_name: str = None) -> ClusterInfo:
    return ClusterInfo(kubeconfig=Path(path if path else '/home/user/.kube/config'),
                       context_name=context_name if context_name else 'dev',
                       name='dev-cluster',
                       host='https://1.2.3.4:6443',
                       ca_cert='CA')


def bootstrapped_cluster() -> MockK8sServices:
    return MockK8sServices(objects={
        'ServiceAccount-kube-system-gitlab-admin': {
            'metadata': {'name': 'gitlab-admin'},
            'secrets': [{'name': 'gitlab-admin-token-abc123'}]
        },
        'ClusterRoleBinding-gitlab-admin': {'metadata': {'name': 'gitlab-admin'}},
        'Secret-kube-system-gitlab-admin-token-abc123': {
            'data': {'token': base64.b64encode(b'the-token').decode('utf-8')}
        }
    })


@pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("YES", True),
                                            ("false", False), ("0", False), ("no", False)])
def test_parse_bool(value: str, expected: bool):
    assert parse_bool(value) == expected


def test_parse_bool_invalid():
    with pytest.raises(argparse.ArgumentTypeError, match="invalid boolean value: 'maybe'"):
        parse_bool('maybe')


@pytest.mark.parametrize("argv", [[], ['123', '456']])
def test_main_missing_id(monkeypatch, capsys, argv):
    monkeypatch.setattr(gitlab_bootstrap, 'load_cluster_info', fail_load_cluster_info)
    with pytest.raises(SystemExit) as info:
        main(argv=argv, env={'GITLAB_API_TOKEN': 'secret'})
    assert info.value.code == 1
    err: str = capsys.readouterr().err
    assert 'GitLab project id is required' in err
    assert 'Traceback' not in err


def test_main_verbose_prints_traceback(monkeypatch, capsys):
    monkeypatch.setattr(gitlab_bootstrap, 'load_cluster_info', fail_load_cluster_info)
    with pytest.raises(SystemExit) as info:
        main(argv=['-v'], env={})
    assert info.value.code == 1
    err: str = capsys.readouterr().err
    assert 'Traceback' in err
    assert 'MissingArgument' in err


def test_main_missing_kubeconfig(capsys, tmp_path: Path):
    with pytest.raises(SystemExit) as info:
        main(argv=['123', '--kubeconfig', str(tmp_path / 'missing')], env={'GITLAB_API_TOKEN': 'secret'})
    assert info.value.code == 1
    assert 'error reading kubeconfig' in capsys.readouterr().err


@pytest.mark.parametrize("argv,env", [
    (['123'], {'GITLAB_API_TOKEN': 'secret'}),
    (['123', '--gitlab-api-token', 'secret'], {}),
])
def test_run(monkeypatch, capsys, argv, env):
    monkeypatch.setattr(gitlab_bootstrap, 'load_cluster_info', fake_load_cluster_info)
    gitlab_svc: MockGitLabServices = MockGitLabServices(projects=PROJECTS, cluster_id=42)
    created = []

    def gitlab_factory(token: str, url: str = None) -> MockGitLabServices:
        created.append((token, url))
        return gitlab_svc

    context: Context = Context(env=env)
    run(parse_arguments(context, argv), context,
        k8s_factory=lambda api_client: bootstrapped_cluster(),
        gitlab_factory=gitlab_factory)

    assert created == [('secret', None)]
    assert [call[0] for call in gitlab_svc.calls] == ['find_project', 'add_project_cluster']
    assert capsys.readouterr().out.rstrip().endswith(
        'To finish up visit: https://gitlab.example/proj/clusters/42 and install Helm and Runner.')


def test_run_without_token(monkeypatch):
    monkeypatch.setattr(gitlab_bootstrap, 'load_cluster_info', fake_load_cluster_info)
    context: Context = Context(env={})
    with pytest.raises(gitlab_bootstrap.UserError, match='GitLab API token is required'):
        run(parse_arguments(context, ['123']), context,
            k8s_factory=lambda api_client: bootstrapped_cluster(),
            gitlab_factory=lambda **kwargs: pytest.fail("GitLab must not be contacted"))


def test_main_interrupted(monkeypatch, capsys):
    def interrupt(*args, **kwargs):
        raise KeyboardInterrupt()

    monkeypatch.setattr(gitlab_bootstrap, 'load_cluster_info', interrupt)
    with pytest.raises(SystemExit) as info:
        main(argv=['123'], env={'GITLAB_API_TOKEN': 'secret'})
    assert info.value.code == 1
    assert 'Interrupted.' in capsys.readouterr().err
