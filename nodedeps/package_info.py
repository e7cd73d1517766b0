"""package.json metadata of the project being scanned."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from nodedeps.errors import ConfigurationError

logger = logging.getLogger("nodedeps.package_info")

PACKAGE_JSON = "package.json"


def _dependency_names(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}


@dataclass
class PackageInfo:
    """Name, version and declared dependencies of a Node project.

    ``name`` never contains the scope; ``scope`` keeps its leading ``@``.
    """

    name: str = ""
    version: str = ""
    scope: str = ""
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    peer_dependencies: Dict[str, str] = field(default_factory=dict)
    optional_dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageInfo":
        info = cls(
            name=str(data.get("name") or ""),
            version=str(data.get("version") or ""),
            dependencies=_dependency_names(data.get("dependencies")),
            dev_dependencies=_dependency_names(data.get("devDependencies")),
            peer_dependencies=_dependency_names(data.get("peerDependencies")),
            optional_dependencies=_dependency_names(data.get("optionalDependencies")),
        )
        info._remove_version_prefixes()
        info._split_scope_from_name()
        return info

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> "PackageInfo":
        """Read package.json from a project directory.

        Raises:
            ConfigurationError: If the file is missing or not a JSON object.
        """
        path = Path(directory) / PACKAGE_JSON
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ConfigurationError(f"{PACKAGE_JSON} not found in {path.parent}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"failed to parse {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a JSON object")
        return cls.from_dict(data)

    def _split_scope_from_name(self) -> None:
        if self.name.startswith("@") and "/" in self.name:
            parts = self.name.split("/")
            self.scope = parts[0]
            self.name = parts[1]

    def _remove_version_prefixes(self) -> None:
        # npm ignores a leading "v" or "="
        version = self.version
        if version.startswith("v"):
            version = version[1:]
        if version.startswith("="):
            version = version[1:]
        self.version = version

    def build_info_module_id(self) -> str:
        base = f"{self.name}:{self.version}"
        if not self.scope:
            return base
        return f"{self.scope.lstrip('@')}:{base}"

    def full_name(self) -> str:
        if not self.scope:
            return self.name
        return f"{self.scope}/{self.name}"

    def get_deploy_path(self) -> str:
        file_name = f"{self.name}-{self.version}.tgz"
        if not self.scope:
            return f"{self.name}/-/{file_name}"
        return f"{self.scope}/{self.name}/-/{file_name}"

    def direct_dependency_names(self) -> List[str]:
        """Names from all four dependency sections, first occurrence wins."""
        names: List[str] = []
        for section in (
            self.dependencies,
            self.dev_dependencies,
            self.peer_dependencies,
            self.optional_dependencies,
        ):
            for name in section:
                if name not in names:
                    names.append(name)
        return names

    def is_dev_only(self, name: str) -> bool:
        return name in self.dev_dependencies and name not in self.dependencies
