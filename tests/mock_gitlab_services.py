from typing import Mapping, MutableSequence, Tuple, Union

from gitlab_services import GitLabServices


class MockGitLabServices(GitLabServices):

    def __init__(self,
                 token: str = 'random-string-here',
                 url: str = None,
                 projects: Mapping[str, dict] = None,
                 groups: Mapping[str, dict] = None,
                 cluster_id: int = 42,
                 find_error: Exception = None,
                 add_error: Exception = None) -> None:
        super().__init__(token=token, url=url)
        self.token: str = token
        self._projects: Mapping[str, dict] = projects if projects else {}
        self._groups: Mapping[str, dict] = groups if groups else {}
        self._cluster_id: int = cluster_id
        self._find_error: Exception = find_error
        self._add_error: Exception = add_error
        self.calls: MutableSequence[Tuple] = []

    def find_project(self, project_id: str) -> Union[None, dict]:
        self.calls.append(('find_project', project_id))
        if self._find_error is not None:
            raise self._find_error
        return self._projects.get(project_id)

    def find_group(self, group_id: str) -> Union[None, dict]:
        self.calls.append(('find_group', group_id))
        if self._find_error is not None:
            raise self._find_error
        return self._groups.get(group_id)

    def add_project_cluster(self, project_id: str, data: dict) -> dict:
        self.calls.append(('add_project_cluster', project_id, data))
        if self._add_error is not None:
            raise self._add_error
        return {'id': self._cluster_id, 'name': data['name'], 'project': self._projects[project_id]}

    def add_group_cluster(self, group_id: str, data: dict) -> dict:
        self.calls.append(('add_group_cluster', group_id, data))
        if self._add_error is not None:
            raise self._add_error
        return {'id': self._cluster_id, 'name': data['name'], 'group': self._groups[group_id]}
