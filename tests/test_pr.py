import json
from pathlib import Path

import httpx
import pytest

from conftest import FakeRepositoryClient
from modsync.config import build_run_options
from modsync.errors import ConfigurationError, DomainError
from modsync.modules import ManagedModule
from modsync.pr import GitHubClient, GitLabClient, PullRequest, pull_request_client, submit_pull_request
from modsync.repository import Repository


def _repository(tmp_path: Path, options: dict | None = None) -> Repository:
    module = ManagedModule("acme/widget", options=options or {}, project_root=tmp_path / "modules")
    return Repository(module, FakeRepositoryClient(module.working_directory, cloned=True))


def _recording_transport(responses: dict[tuple[str, str], object]):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=responses[(request.method, request.url.path)])

    return httpx.MockTransport(handler), seen


def test_github_pull_request_with_labels(tmp_path: Path):
    transport, seen = _recording_transport(
        {
            ("GET", "/repos/acme/widget/pulls"): [],
            ("POST", "/repos/acme/widget/pulls"): {"number": 42},
            ("POST", "/repos/acme/widget/issues/42/labels"): [{"name": "sync"}],
        }
    )
    options = build_run_options(branch="modsync", message="Update CI", pr=True, pr_labels="sync,automated")

    created = submit_pull_request(_repository(tmp_path), options, environ={"GITHUB_TOKEN": "secret"}, transport=transport)

    assert created is True
    assert [request.method for request in seen] == ["GET", "POST", "POST"]
    assert seen[0].url.params["head"] == "acme:modsync"
    assert seen[0].url.params["base"] == "master"
    assert seen[1].headers["Authorization"] == "Bearer secret"
    assert json.loads(seen[1].content) == {
        "title": "Update CI",
        "body": "Update CI",
        "head": "modsync",
        "base": "master",
    }
    assert json.loads(seen[2].content) == {"labels": ["sync", "automated"]}


def test_github_skips_when_pull_request_is_open(tmp_path: Path):
    transport, seen = _recording_transport({("GET", "/repos/acme/widget/pulls"): [{"number": 7}]})
    options = build_run_options(branch="modsync", message="Update CI", pr=True)

    assert submit_pull_request(_repository(tmp_path), options, environ={"GITHUB_TOKEN": "t"}, transport=transport) is False
    assert len(seen) == 1


def test_gitlab_merge_request(tmp_path: Path):
    transport, seen = _recording_transport(
        {
            ("GET", "/api/v4/projects/acme/widget/merge_requests"): [],
            ("POST", "/api/v4/projects/acme/widget/merge_requests"): {"iid": 3},
        }
    )
    options = build_run_options(
        branch="modsync", message="Update CI", pr=True, pr_target_branch="main", pr_labels="sync"
    )

    created = submit_pull_request(_repository(tmp_path), options, environ={"GITLAB_TOKEN": "t"}, transport=transport)

    assert created is True
    assert seen[1].headers["PRIVATE-TOKEN"] == "t"
    assert json.loads(seen[1].content)["target_branch"] == "main"
    assert json.loads(seen[1].content)["labels"] == "sync"


def test_module_options_select_forge(tmp_path: Path):
    repository = _repository(tmp_path, {"gitlab": {"token": "abc", "base_url": "https://git.example.com/api/v4"}})

    client = pull_request_client(repository.module, environ={"GITHUB_TOKEN": "ignored"})

    assert isinstance(client, GitLabClient)
    assert client.base_url == "https://git.example.com/api/v4"


def test_missing_token_is_configuration_error(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="No GitHub or GitLab token"):
        pull_request_client(_repository(tmp_path).module, environ={})


def test_noop_does_not_call_forge(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    options = build_run_options(branch="modsync", noop=True, pr=True)

    assert submit_pull_request(
        _repository(tmp_path), options, environ={}, transport=httpx.MockTransport(handler)
    ) is False


def test_http_errors_are_domain_errors(tmp_path: Path):
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"message": "Bad credentials"}))
    client = GitHubClient(token="t", base_url="https://api.github.com", transport=transport)
    request = PullRequest(title="Update CI", body="Update CI", source_branch="modsync", target_branch="master")

    with pytest.raises(DomainError, match="401"):
        client.open(_repository(tmp_path).module, request)
