"""Configuration schema for dependency extraction, validated with Pydantic.

A single ``ExtractConfig`` is built once per run (from CLI flags, a TOML/JSON
file or a dict) and passed explicitly to every resolver.
"""

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator


class TypeRestriction(str, Enum):
    """Which dependency scopes npm should be asked for.

    DEFAULT behaves like ALL unless the npm args say otherwise.
    """

    DEFAULT = "default"
    ALL = "all"
    DEV_ONLY = "dev"
    PROD_ONLY = "prod"

    @classmethod
    def from_args(cls, args: List[str]) -> "TypeRestriction":
        """Derive the restriction from npm-style command-line args.

        Understands ``--include=``, ``--omit=``, ``--only=``, ``--production``
        and ``--dev``. The last argument that decides wins.
        """
        restriction = cls.DEFAULT
        for arg in args:
            flag, _, value = arg.partition("=")
            value = value.lower()
            if flag == "--production" and value in ("", "true"):
                restriction = cls.PROD_ONLY
            elif flag == "--dev" and value in ("", "true"):
                restriction = cls.DEV_ONLY
            elif flag == "--only":
                if value in ("prod", "production"):
                    restriction = cls.PROD_ONLY
                elif value in ("dev", "development"):
                    restriction = cls.DEV_ONLY
            elif flag == "--omit":
                if value == "dev":
                    restriction = cls.PROD_ONLY
                elif value == "prod":
                    restriction = cls.DEV_ONLY
            elif flag == "--include":
                if value in ("dev", "prod"):
                    restriction = cls.ALL
        return restriction

    def scopes(self) -> List[str]:
        """The ``npm ls --<scope>`` runs this restriction needs."""
        if self is TypeRestriction.DEV_ONLY:
            return ["dev"]
        if self is TypeRestriction.PROD_ONLY:
            return ["prod"]
        return ["dev", "prod"]


class ExtractConfig(BaseModel):
    """Options for a dependency extraction run.

    Attributes:
        threads: Worker count for concurrent checksum resolution.
        allow_partial_results: Use best-effort tool output and skip
            unresolvable yarn locators instead of failing.
        skip_install: Never run an install; fail with
            ProjectNotInstalledError when one would be needed.
        overwrite_package_lock: Refresh the lockfile when package.json is newer.
        ignore_node_modules: List from the lockfile even if node_modules exists.
        args: Extra args for ``ls``/``info`` commands.
        install_args: Extra args for the install command; giving any forces an install.
        type_restriction: Dependency scopes to collect (npm only).
    """

    threads: int = Field(default=3, ge=1, le=64)
    allow_partial_results: bool = False
    skip_install: bool = False
    overwrite_package_lock: bool = False
    ignore_node_modules: bool = False
    args: List[str] = Field(default_factory=list)
    install_args: List[str] = Field(default_factory=list)
    type_restriction: TypeRestriction = TypeRestriction.DEFAULT

    model_config = {"extra": "allow"}

    @field_validator("args", "install_args", mode="before")
    @classmethod
    def drop_blank_args(cls, value: Any) -> List[str]:
        """Accept a whitespace-separated string and drop blank entries."""
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split()
        return [str(v) for v in value if str(v).strip()]

    @field_validator("type_restriction", mode="before")
    @classmethod
    def parse_type_restriction(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or TypeRestriction.DEFAULT.value
        return value

    def effective_type_restriction(self) -> TypeRestriction:
        """Explicit restriction, or the one implied by ``args``."""
        if self.type_restriction is not TypeRestriction.DEFAULT:
            return self.type_restriction
        return TypeRestriction.from_args(self.args)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractConfig":
        """Create config from dictionary."""
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump(mode="json")
