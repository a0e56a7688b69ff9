from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from . import renderer
from .config import CONF_FILE, MODULE_FILES_DIR, RunOptions, config_path, load_config
from .errors import ConfigurationError, DomainError, RenderError
from .git import GitClient, RepositoryClient
from .modules import ManagedModule, load_managed_modules
from .pr import submit_pull_request
from .repository import Repository
from .settings import Settings

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ManagedModule], RepositoryClient]
PullRequestOpener = Callable[[Repository, RunOptions], bool]


class ErrorKind(str, Enum):
    ok = "ok"
    domain = "domain"
    unexpected = "unexpected"


@dataclass(frozen=True)
class ModuleResult:
    module: str
    kind: ErrorKind = ErrorKind.ok
    error: BaseException | None = None
    changed: bool = False
    pushed: bool = False
    version: str | None = None


@dataclass(frozen=True)
class UpdateReport:
    results: tuple[ModuleResult, ...] = ()
    aborted: bool = False
    fail_on_warnings: bool = False

    @property
    def skipped(self) -> tuple[str, ...]:
        if self.aborted:
            return ()
        return tuple(result.module for result in self.results if result.kind is not ErrorKind.ok)

    @property
    def exit_code(self) -> int:
        if self.aborted or (self.skipped and self.fail_on_warnings):
            return 1
        return 0


def default_client_factory(module: ManagedModule) -> RepositoryClient:
    return GitClient(module.working_directory)


def manage_file(module: ManagedModule, filename: str, settings: Settings, options: RunOptions) -> bool:
    """Render ``filename`` into the module, or remove it when marked ``delete``.

    Returns True when the file was rendered.
    """
    configs = settings.build_file_configs(filename)
    target = module.path(filename)
    if configs.get("delete"):
        renderer.remove(target)
        return False

    template_file = renderer.template_path(options.configs, filename)
    try:
        compiled = renderer.build(template_file)
        metadata = {
            "module_name": settings.additional_settings.get("module_name"),
            "namespace": settings.additional_settings.get("namespace"),
            "workdir": str(module.working_directory),
            "target_file": str(target),
        }
        text = renderer.render(compiled, configs, metadata)
        renderer.sync(text, target, compiled.mode)
    except Exception:
        logger.error("%s: Error while rendering file: '%s'", module.given_name, filename)
        raise
    return True


def manage_module(
    repository: Repository,
    template_files: list[str],
    defaults: dict,
    options: RunOptions,
    open_pull_request: PullRequestOpener = submit_pull_request,
) -> ModuleResult:
    module = repository.module
    logger.info("Syncing '%s'", module.given_name)
    if not options.offline:
        repository.prepare_workspace(module.branch or options.branch, operate_offline=False)

    settings = Settings.from_documents(
        defaults,
        module.load_module_configs(),
        module_name=module.repository_name,
        namespace=module.repository_namespace,
        git_base=options.git_base,
    )

    for filename in settings.unmanaged_files(template_files):
        logger.info("Not managing '%s' in '%s'", filename, module.given_name)

    files_to_manage = settings.managed_files(template_files)
    for filename in files_to_manage:
        manage_file(module, filename, settings, options)

    if options.noop:
        logger.info("Using no-op. Files in '%s' may be changed but will not be committed.", module.given_name)
        changed = repository.show_changes()
        if changed and options.pr:
            open_pull_request(repository, options)
        return ModuleResult(module=module.given_name, changed=changed)

    if options.offline:
        return ModuleResult(module=module.given_name)

    pushed = repository.submit_changes(files_to_manage, options)
    version = None
    if pushed and options.bump:
        version = repository.bump(options.message or "", options.changelog, remote_branch=options.remote_branch)
        if options.tag:
            repository.tag(version, options.tag_pattern)
    if pushed and options.pr:
        open_pull_request(repository, options)
    return ModuleResult(module=module.given_name, changed=pushed, pushed=pushed, version=version)


def process_module(
    repository: Repository,
    template_files: list[str],
    defaults: dict,
    options: RunOptions,
    open_pull_request: PullRequestOpener = submit_pull_request,
) -> ModuleResult:
    name = repository.module.given_name
    try:
        return manage_module(repository, template_files, defaults, options, open_pull_request)
    except RenderError as error:
        return ModuleResult(module=name, kind=ErrorKind.unexpected, error=error)
    except (ConfigurationError, DomainError) as error:
        return ModuleResult(module=name, kind=ErrorKind.domain, error=error)
    except Exception as error:
        return ModuleResult(module=name, kind=ErrorKind.unexpected, error=error)


def update(
    options: RunOptions,
    client_factory: ClientFactory = default_client_factory,
    open_pull_request: PullRequestOpener = submit_pull_request,
) -> UpdateReport:
    if not (options.noop or options.offline or options.message):
        raise ConfigurationError("A commit message is required, pass it with --message.")

    defaults = load_config(config_path(CONF_FILE, options.configs))
    if not isinstance(defaults, dict):
        raise ConfigurationError(f"Expected a mapping in {config_path(CONF_FILE, options.configs)}")
    template_files = renderer.find_template_files(config_path(MODULE_FILES_DIR, options.configs))
    modules = load_managed_modules(options)

    results: list[ModuleResult] = []
    for module in modules:
        repository = Repository(module, client_factory(module))
        result = process_module(repository, template_files, defaults, options, open_pull_request)
        results.append(result)
        if result.kind is ErrorKind.ok:
            continue

        logger.error("%s: %s", module.given_name, result.error or "Error during update")
        if not options.skip_broken:
            if result.kind is ErrorKind.unexpected:
                raise result.error
            return UpdateReport(results=tuple(results), aborted=True, fail_on_warnings=options.fail_on_warnings)
        logger.warning("Skipping '%s' as update process failed", module.given_name)

    return UpdateReport(results=tuple(results), fail_on_warnings=options.fail_on_warnings)
