"""Command line arguments passed to the bootstrapper in the install container."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


# Bootstrapper flags
SOURCE_FOLDER_FLAG = "source"
TARGET_FOLDER_FLAG = "target"
CONFIG_DIRECTORY_FLAG = "config-directory"
INPUT_DIRECTORY_FLAG = "input-directory"
INSTALL_PATH_FLAG = "install-path"
TARGET_VERSION_FLAG = "version"
TECHNOLOGY_FLAG = "technology"
FLAVOR_FLAG = "flavor"
FULLSTACK_FLAG = "fullstack"
TENANT_FLAG = "tenant"
ATTRIBUTE_FLAG = "attribute"
ATTRIBUTE_CONTAINER_FLAG = "attribute-container"


@dataclass(frozen=True)
class Arg:
    """A ``--name=value`` flag; a ``None`` value renders as a bare ``--name``."""

    name: str
    value: str | None = None

    def __str__(self) -> str:
        if self.value is None:
            return f"--{self.name}"
        return f"--{self.name}={self.value}"


def args_to_strings(args: Iterable[Arg]) -> list[str]:
    return [str(arg) for arg in args]
