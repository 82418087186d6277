"""Semantic version information for the plugin."""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass

import semver

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
}


def _runtime_os() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "win32":
        return "windows"
    return sys.platform


def _runtime_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine)


@dataclass(frozen=True)
class BuildInfo:
    """Version details fixed when the package is built."""

    version: str = ""
    git_sha: str = ""
    git_tree_state: str = ""
    release_status: str = "unreleased"

    def semantic_version(self) -> semver.Version:
        """Parse the version without its leading "v"; invalid versions give 0.0.0."""
        if not self.version:
            raise ValueError("version is not set")
        try:
            return semver.Version.parse(self.version[1:])
        except ValueError:
            return semver.Version(0, 0, 0)

    def full_version(self) -> str:
        """Version, with build information appended for unreleased builds."""
        if not self.version:
            return "UNKNOWN"
        if self.release_status == "released":
            return self.version
        if not self.git_sha:
            return f"{self.version}-unknown"
        if self.git_tree_state == "dirty":
            return f"{self.version}-{self.git_sha}.dirty"
        return f"{self.version}-{self.git_sha}"

    def full_version_with_runtime_info(self) -> str:
        """The full version followed by "<os>/<arch>"."""
        return f"{self.full_version()} {_runtime_os()}/{_runtime_arch()}"


BUILD = BuildInfo()


def get_version() -> semver.Version:
    return BUILD.semantic_version()


def get_git_sha() -> str:
    return BUILD.git_sha


def get_full_version() -> str:
    return BUILD.full_version()


def get_full_version_with_runtime_info() -> str:
    return BUILD.full_version_with_runtime_info()