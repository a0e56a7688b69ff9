from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

from .config import RunOptions
from .errors import ConfigurationError, DomainError, ExternalCommandError
from .modules import load_managed_modules
from .repository import Repository
from .sync import ClientFactory, default_client_factory

logger = logging.getLogger(__name__)

# Variables describing modsync's own interpreter; user commands get a clean slate.
STRIPPED_ENVIRONMENT = re.compile(r"^(PYTHON|PIP_|UV_|POETRY_|PDM_|VIRTUAL_ENV$|SOURCE_DATE_EPOCH$)")


def _require_branch(options: RunOptions) -> str:
    if options.branch is None:
        raise ConfigurationError("'branch' option is missing, please set it in configuration or in command line.")
    return options.branch


def command_environment(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    environ = os.environ if environ is None else environ
    return {key: value for key, value in environ.items() if not STRIPPED_ENVIRONMENT.match(key)}


def clone(options: RunOptions, client_factory: ClientFactory = default_client_factory) -> list[str]:
    cloned = []
    for module in load_managed_modules(options):
        repository = Repository(module, client_factory(module))
        if repository.is_cloned():
            continue
        repository.clone()
        cloned.append(module.given_name)
    return cloned


def execute(
    options: RunOptions,
    command_args: Sequence[str],
    client_factory: ClientFactory = default_client_factory,
) -> None:
    """Run ``command_args`` inside every module's working copy."""
    if not command_args:
        raise ConfigurationError("A command to execute is required.")

    failures: dict[str, str] = {}
    for module in load_managed_modules(options):
        logger.info("%s:", module.given_name)
        repository = Repository(module, client_factory(module))
        if not repository.is_cloned():
            repository.clone()
        repository.switch(None if options.default_branch else module.branch or options.branch)

        args = list(command_args)
        local_script = Path(args[0]).expanduser().resolve()
        if local_script.exists():
            args[0] = str(local_script)

        try:
            completed = subprocess.run(args, env=command_environment(), cwd=str(module.working_directory), check=False)
            status = f"exit code {completed.returncode}"
            failed = completed.returncode != 0
        except OSError as error:
            status = str(error)
            failed = True

        if failed:
            message = f"Command execution failed ('{' '.join(command_args)}': {status})"
            if options.fail_fast:
                raise ExternalCommandError(message, {module.given_name: message})
            failures[module.given_name] = message
            logger.error(message)

    if failures:
        details = "\n".join(f"  * {name}: {message}" for name, message in failures.items())
        raise ExternalCommandError(f"Error(s) during `execute` command:\n{details}", failures)


def reset(options: RunOptions, client_factory: ClientFactory = default_client_factory) -> None:
    branch = _require_branch(options)
    for module in load_managed_modules(options):
        Repository(module, client_factory(module)).reset_workspace(
            branch=branch,
            source_branch=options.source_branch,
            operate_offline=options.offline,
        )


def push(options: RunOptions, client_factory: ClientFactory = default_client_factory) -> None:
    branch = _require_branch(options)
    for module in load_managed_modules(options):
        try:
            Repository(module, client_factory(module)).push(branch, remote_branch=options.remote_branch)
        except DomainError as error:
            raise DomainError(f"{module.given_name}: {error}") from error
