from typing import Union

import gitlab
from gitlab.exceptions import GitlabGetError

DEFAULT_GITLAB_URL = 'https://gitlab.com'


def normalize_gitlab_url(url: str = None) -> str:
    if not url:
        return DEFAULT_GITLAB_URL
    url = url.rstrip('/')
    if url.endswith('/api/v4'):
        url = url[0:len(url) - len('/api/v4')]
    return url


class GitLabTarget:
    """The GitLab project or group a cluster is registered into, as confirmed by a lookup."""

    def __init__(self, gitlab_id: str, use_group: bool, attributes: dict) -> None:
        super().__init__()
        self._gitlab_id: str = gitlab_id
        self._use_group: bool = use_group
        self._attributes: dict = attributes

    @property
    def gitlab_id(self) -> str:
        return self._gitlab_id

    @property
    def use_group(self) -> bool:
        return self._use_group

    @property
    def kind(self) -> str:
        return 'group' if self._use_group else 'project'

    @property
    def name(self) -> str:
        for key in ['full_path', 'path_with_namespace', 'name']:
            if self._attributes.get(key):
                return self._attributes[key]
        return self._gitlab_id

    @property
    def web_url(self) -> str:
        return self._attributes.get('web_url')


class RegisteredCluster:

    def __init__(self, cluster_id: int, name: str, web_url: str) -> None:
        super().__init__()
        self._cluster_id: int = cluster_id
        self._name: str = name
        self._web_url: str = web_url

    @property
    def cluster_id(self) -> int:
        return self._cluster_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def web_url(self) -> str:
        """Web URL of the project or group owning the cluster."""
        return self._web_url

    @property
    def cluster_url(self) -> str:
        return f"{self._web_url}/clusters/{self._cluster_id}"


class GitLabServices:
    """Project & group lookups and cluster registration against a GitLab instance.

    Lookups return the object attributes as a dict, or None when GitLab answers 404. Any other failure is raised as-is
    ('gitlab.exceptions.GitlabError' or a 'requests' exception).
    """

    def __init__(self, token: str, url: str = None) -> None:
        super().__init__()
        self._url: str = normalize_gitlab_url(url)
        self._client: gitlab.Gitlab = gitlab.Gitlab(url=self._url, private_token=token)

    @property
    def url(self) -> str:
        return self._url

    def find_project(self, project_id: str) -> Union[None, dict]:
        try:
            return self._client.projects.get(project_id).attributes
        except GitlabGetError as e:
            if e.response_code == 404:
                return None
            else:
                raise

    def find_group(self, group_id: str) -> Union[None, dict]:
        try:
            return self._client.groups.get(group_id).attributes
        except GitlabGetError as e:
            if e.response_code == 404:
                return None
            else:
                raise

    def add_project_cluster(self, project_id: str, data: dict) -> dict:
        project = self._client.projects.get(project_id, lazy=True)
        return project.clusters.create(data).attributes

    def add_group_cluster(self, group_id: str, data: dict) -> dict:
        group = self._client.groups.get(group_id, lazy=True)
        return group.clusters.create(data).attributes
