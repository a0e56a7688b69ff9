"""Pull/merge request creation on GitHub and GitLab."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from .config import RunOptions
from .errors import ConfigurationError, DomainError
from .modules import ManagedModule
from .repository import Repository

logger = logging.getLogger(__name__)

GITHUB_BASE_URL = "https://api.github.com"
GITLAB_BASE_URL = "https://gitlab.com/api/v4"


@dataclass(frozen=True)
class PullRequest:
    title: str
    body: str
    source_branch: str
    target_branch: str
    labels: tuple[str, ...] = ()


class PullRequestClient(ABC):
    """Forge API used to propose a pushed branch for review."""

    def __init__(
        self,
        token: str,
        base_url: str,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    @abstractmethod
    def headers(self) -> dict[str, str]: ...

    @abstractmethod
    def open(self, module: ManagedModule, request: PullRequest) -> bool:
        """Create the request unless one is already open; return True when created."""

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            with httpx.Client(
                base_url=self.base_url,
                headers=self.headers(),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as error:
            raise DomainError(f"{method} {path} failed: {error.response.status_code} {error.response.text}") from error
        except httpx.RequestError as error:
            raise DomainError(f"{method} {path} failed: {error}") from error


class GitHubClient(PullRequestClient):
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def open(self, module: ManagedModule, request: PullRequest) -> bool:
        repo = f"/repos/{module.repository_namespace}/{module.repository_name}"
        existing = self._request(
            "GET",
            f"{repo}/pulls",
            params={
                "state": "open",
                "head": f"{module.repository_namespace}:{request.source_branch}",
                "base": request.target_branch,
            },
        )
        if existing:
            logger.info("Skipped! %d PRs found for branch '%s'", len(existing), request.source_branch)
            return False

        created = self._request(
            "POST",
            f"{repo}/pulls",
            json={
                "title": request.title,
                "body": request.body,
                "head": request.source_branch,
                "base": request.target_branch,
            },
        )
        logger.info("Submitted PR '%s' to %s - merges '%s' into '%s'",
                    request.title, module.repository_path, request.source_branch, request.target_branch)
        if request.labels:
            self._request("POST", f"{repo}/issues/{created['number']}/labels", json={"labels": list(request.labels)})
            logger.info("Attached the following labels to PR %s: %s", created["number"], ", ".join(request.labels))
        return True


class GitLabClient(PullRequestClient):
    def headers(self) -> dict[str, str]:
        return {"PRIVATE-TOKEN": self.token}

    def open(self, module: ManagedModule, request: PullRequest) -> bool:
        project = f"/projects/{quote(module.repository_path, safe='')}"
        existing = self._request(
            "GET",
            f"{project}/merge_requests",
            params={
                "state": "opened",
                "source_branch": request.source_branch,
                "target_branch": request.target_branch,
            },
        )
        if existing:
            logger.info("Skipped! %d MRs found for branch '%s'", len(existing), request.source_branch)
            return False

        payload: dict[str, Any] = {
            "title": request.title,
            "description": request.body,
            "source_branch": request.source_branch,
            "target_branch": request.target_branch,
        }
        if request.labels:
            payload["labels"] = ",".join(request.labels)
        self._request("POST", f"{project}/merge_requests", json=payload)
        logger.info("Submitted MR '%s' to %s - merges '%s' into '%s'",
                    request.title, module.repository_path, request.source_branch, request.target_branch)
        return True


def pull_request_client(
    module: ManagedModule,
    environ: Mapping[str, str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> PullRequestClient:
    environ = os.environ if environ is None else environ
    for key, client_class, token_var, url_var, default_url in (
        ("github", GitHubClient, "GITHUB_TOKEN", "GITHUB_BASE_URL", GITHUB_BASE_URL),
        ("gitlab", GitLabClient, "GITLAB_TOKEN", "GITLAB_BASE_URL", GITLAB_BASE_URL),
    ):
        settings = module.options.get(key) or {}
        token = settings.get("token") or environ.get(token_var)
        if token:
            base_url = settings.get("base_url") or environ.get(url_var) or default_url
            return client_class(token=token, base_url=base_url, transport=transport)

    raise ConfigurationError(
        f"No GitHub or GitLab token available for '{module.given_name}'. "
        "Set GITHUB_TOKEN or GITLAB_TOKEN, or configure one in the managed modules document."
    )


def submit_pull_request(
    repository: Repository,
    options: RunOptions,
    environ: Mapping[str, str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> bool:
    module = repository.module
    source_branch = (
        options.remote_branch or module.branch or options.branch or repository.client.current_branch() or ""
    )
    target_branch = options.pr_target_branch or repository.client.remote_default_branch()
    title = options.pr_title or options.message or "Update files managed by modsync"
    request = PullRequest(
        title=title,
        body=options.message or title,
        source_branch=source_branch,
        target_branch=target_branch,
        labels=options.pr_labels,
    )

    if options.noop:
        logger.info("Using no-op. Would submit PR '%s' to %s - merges '%s' into '%s'",
                    title, module.repository_path, source_branch, target_branch)
        return False
    return pull_request_client(module, environ, transport).open(module, request)
