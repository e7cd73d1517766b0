"""Resolver flow tests with the package manager replaced by a stub runner."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from packaging.version import Version

from nodedeps.cache.cacache import CacacheResolver
from nodedeps.config import ExtractConfig
from nodedeps.errors import (
    CacheError,
    ConfigurationError,
    ProjectNotInstalledError,
    ToolExecutionError,
    TraversalError,
)
from nodedeps.parsers.versions import SchemaVariant
from nodedeps.resolvers import get_resolver_class
from nodedeps.resolvers.npm import NpmResolver, read_lockfile_integrities
from nodedeps.resolvers.pnpm import PnpmResolver, filter_pnpm_unique_args, map_store_to_cache
from nodedeps.resolvers.yarn import YarnResolver
from nodedeps.runtime.process import ToolOutput


class StubRunner:
    """Answers tool commands from a table keyed by the first argument."""

    def __init__(self, version: str, responses: Optional[Dict[str, Any]] = None):
        self._version = version
        self.responses = responses or {}
        self.calls: List[tuple] = []

    def version(self) -> Version:
        return Version(self._version)

    def run(self, args, tolerate_partial: bool = False) -> ToolOutput:
        args = list(args)
        self.calls.append((args, tolerate_partial))
        response = self.responses.get(args[0], "")
        if callable(response):
            response = response(args)
        if isinstance(response, Exception):
            raise response
        return ToolOutput(stdout=response, stderr="", returncode=0)

    def commands(self) -> List[List[str]]:
        return [args for args, _ in self.calls]


def _integrity(content: bytes) -> str:
    return "sha512-" + base64.b64encode(hashlib.sha512(content).digest()).decode("ascii")


def _store_tarball(cache_root: Path, content: bytes) -> str:
    integrity = _integrity(content)
    path = CacacheResolver(cache_root).tarball_path(integrity)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return integrity


def _write_index(cache_root: Path, name: str, version: str, integrity: str) -> None:
    path = CacacheResolver(cache_root).index_path(name, version)
    path.parent.mkdir(parents=True, exist_ok=True)
    entry = json.dumps({"key": f"pacote:tarball:{name}@{version}", "integrity": integrity})
    path.write_text(f"\n{hashlib.sha1(entry.encode()).hexdigest()}\t{entry}\n", encoding="utf-8")


def _make_project(path: Path, lockfile: Optional[str] = None, node_modules: bool = True, **manifest) -> Path:
    data = {"name": "app", "version": "1.0.0"}
    data.update(manifest)
    (path / "package.json").write_text(json.dumps(data), encoding="utf-8")
    if lockfile:
        (path / lockfile).write_text("{}", encoding="utf-8")
    if node_modules:
        (path / "node_modules").mkdir()
    return path


# ----------------------------------------------------------------------
# npm
# ----------------------------------------------------------------------

A_CONTENT = b"a-tarball"
G_CONTENT = b"g-tarball"
H_CONTENT = b"h-tarball"


@pytest.fixture
def npm_project(tmp_path: Path) -> Dict[str, Any]:
    project = tmp_path / "app"
    project.mkdir()
    _make_project(project, lockfile=None)
    cache_dir = tmp_path / "npm-cache"
    cache_root = cache_dir / "_cacache"
    cache_root.mkdir(parents=True)

    a_integrity = _store_tarball(cache_root, A_CONTENT)
    g_integrity = _store_tarball(cache_root, G_CONTENT)
    h_integrity = _store_tarball(cache_root, H_CONTENT)
    _write_index(cache_root, "h", "1.0.0", h_integrity)

    lock = {
        "lockfileVersion": 3,
        "packages": {
            "": {"name": "app", "version": "1.0.0"},
            "node_modules/g": {"version": "1.0.0", "integrity": g_integrity},
        },
    }
    (project / "package-lock.json").write_text(json.dumps(lock), encoding="utf-8")

    tree = {
        "name": "app",
        "version": "1.0.0",
        "dependencies": {
            "a": {"version": "1.0.0", "integrity": a_integrity},
            "b": {"version": "1.0.0", "inBundle": True},
            "c": {"version": "1.0.0", "peerMissing": True},
            "d": {"version": "1.0.0", "integrity": _integrity(b"not cached"), "optional": True},
            "e": {"version": "1.0.0", "integrity": _integrity(b"also not cached")},
            "f": {"version": "1.0.0"},
            "g": {"version": "1.0.0"},
            "h": {"version": "1.0.0"},
        },
    }

    def _ls(args: List[str]) -> str:
        if "--prod" in args:
            return json.dumps(tree)
        return json.dumps({"name": "app", "version": "1.0.0", "dependencies": {}})

    runner = StubRunner("9.8.1", {"ls": _ls, "config": str(cache_dir) + "\n"})
    return {"project": project, "runner": runner}


def test_npm_resolve_classifies_every_record(npm_project, caplog) -> None:
    resolver = NpmResolver(npm_project["project"], runner=npm_project["runner"])

    with caplog.at_level(logging.WARNING, logger="nodedeps.resolvers.base"):
        result = resolver.resolve()

    assert result.tool == "npm"
    assert result.tool_version == "9.8.1"
    assert result.root_id == "app:1.0.0"
    assert [d.id for d in result.dependencies] == ["a:1.0.0", "g:1.0.0", "h:1.0.0"]
    assert result.missing_bundled == ["b:1.0.0"]
    assert result.missing_peer == ["c:1.0.0"]
    assert result.missing_optional == ["d:1.0.0"]
    assert result.missing_in_cache == ["e:1.0.0", "f:1.0.0"]

    a = result.dependencies[0]
    assert a.checksums == {
        "md5": hashlib.md5(A_CONTENT).hexdigest(),
        "sha1": hashlib.sha1(A_CONTENT).hexdigest(),
        "sha256": hashlib.sha256(A_CONTENT).hexdigest(),
    }
    assert a.scopes == ["prod"]
    assert a.requested_by == [["app:1.0.0"]]

    messages = [r.getMessage() for r in caplog.records]
    assert sum("bundleDependencies" in m for m in messages) == 1
    assert sum("peerDependency" in m for m in messages) == 1
    assert sum("optionalDependencies" in m for m in messages) == 1
    assert sum("missing in the npm cache" in m for m in messages) == 1


def test_npm_resolve_lists_each_scope(npm_project) -> None:
    runner = npm_project["runner"]
    NpmResolver(npm_project["project"], runner=runner).resolve()

    ls_calls = [(args, partial) for args, partial in runner.calls if args[0] == "ls"]
    assert [args[-1] for args, _ in ls_calls] == ["--dev", "--prod"]
    assert all(partial for _, partial in ls_calls)
    assert not any(args[0] == "install" for args in runner.commands())


def test_npm_resolve_prod_only(npm_project) -> None:
    runner = npm_project["runner"]
    config = ExtractConfig(args=["--omit=dev"])
    NpmResolver(npm_project["project"], config=config, runner=runner).resolve()

    ls_calls = [args for args in runner.commands() if args[0] == "ls"]
    assert len(ls_calls) == 1
    assert ls_calls[0] == ["ls", "--omit=dev", "--json=true", "--all", "--prod"]


def test_npm_resolve_applies_dependency_filter(npm_project) -> None:
    resolver = NpmResolver(npm_project["project"], runner=npm_project["runner"])

    result = resolver.resolve(lambda dep: dep.id != "a:1.0.0")

    assert [d.id for d in result.dependencies] == ["g:1.0.0", "h:1.0.0"]


def test_npm_resolve_filter_error_reports_all_failures(npm_project) -> None:
    resolver = NpmResolver(npm_project["project"], runner=npm_project["runner"])

    def _filter(dep) -> bool:
        if dep.id == "g:1.0.0":
            raise RuntimeError("rejected")
        return True

    with pytest.raises(TraversalError) as info:
        resolver.resolve(_filter)
    assert len(info.value.errors) == 1
    assert {r.id for r in info.value.kept} == {"a:1.0.0", "h:1.0.0"}


def test_npm_resolve_rejects_old_npm(npm_project) -> None:
    runner = StubRunner("5.3.0")
    with pytest.raises(ConfigurationError, match="5.4.0"):
        NpmResolver(npm_project["project"], runner=runner).resolve()


def test_npm_missing_cache_directory(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="package-lock.json")
    tree = {"dependencies": {"a": {"version": "1.0.0", "integrity": _integrity(b"x")}}}
    runner = StubRunner(
        "9.0.0",
        {"ls": json.dumps(tree), "config": str(tmp_path / "nowhere")},
    )
    with pytest.raises(CacheError, match="_cacache"):
        NpmResolver(project, runner=runner).resolve()


def test_npm_install_when_lockfile_missing(tmp_path: Path) -> None:
    project = _make_project(tmp_path, node_modules=False)
    runner = StubRunner("9.0.0")
    resolver = NpmResolver(project, runner=runner)

    resolver.prepare_project()

    assert runner.commands() == [["install", "--package-lock-only", "--ignore-scripts"]]


def test_npm_installed_project_is_listed_as_is(tmp_path: Path) -> None:
    project = _make_project(tmp_path, node_modules=True)
    runner = StubRunner("9.0.0")

    NpmResolver(project, runner=runner).prepare_project()

    assert runner.calls == []


def test_npm_install_args_force_install(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="package-lock.json")
    runner = StubRunner("9.0.0")
    config = ExtractConfig(install_args=["install", "--legacy-peer-deps", "--ignore-scripts"])

    NpmResolver(project, config=config, runner=runner).prepare_project()

    assert runner.commands() == [
        ["install", "--package-lock-only", "--ignore-scripts", "--legacy-peer-deps"]
    ]


def test_skip_install_raises_when_install_needed(tmp_path: Path) -> None:
    project = _make_project(tmp_path, node_modules=False)
    runner = StubRunner("9.0.0")
    config = ExtractConfig(skip_install=True)

    with pytest.raises(ProjectNotInstalledError, match="is not installed"):
        NpmResolver(project, config=config, runner=runner).prepare_project()
    assert runner.calls == []


def test_skip_install_with_lockfile_does_nothing(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="package-lock.json", node_modules=False)
    runner = StubRunner("9.0.0")

    NpmResolver(project, config=ExtractConfig(skip_install=True), runner=runner).prepare_project()

    assert runner.calls == []


def test_overwrite_lock_only_when_manifest_is_newer(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="package-lock.json", node_modules=False)
    config = ExtractConfig(overwrite_package_lock=True)

    os.utime(project / "package.json", (1000, 1000))
    os.utime(project / "package-lock.json", (2000, 2000))
    runner = StubRunner("9.0.0")
    NpmResolver(project, config=config, runner=runner).prepare_project()
    assert runner.calls == []

    os.utime(project / "package.json", (3000, 3000))
    runner = StubRunner("9.0.0")
    NpmResolver(project, config=config, runner=runner).prepare_project()
    assert runner.commands()[0][0] == "install"


def test_npm_lockfile_only_listing_without_node_modules(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="package-lock.json", node_modules=False)
    runner = StubRunner("9.0.0", {"ls": "{}"})
    resolver = NpmResolver(project, runner=runner)
    resolver.variant = SchemaVariant.NPM_MODERN

    resolver.collect_records("app:1.0.0")

    assert all("--package-lock-only" in args for args in runner.commands())

    resolver.variant = SchemaVariant.NPM_LEGACY
    runner.calls.clear()
    resolver.collect_records("app:1.0.0")
    assert not any("--package-lock-only" in args for args in runner.commands())


def test_read_lockfile_integrities_packages(tmp_path: Path) -> None:
    lock = tmp_path / "package-lock.json"
    lock.write_text(
        json.dumps(
            {
                "packages": {
                    "": {"version": "1.0.0"},
                    "node_modules/a": {"version": "1.0.0", "integrity": "sha512-AAA"},
                    "node_modules/a/node_modules/@s/b": {"version": "2.0.0", "integrity": "sha1-BBB"},
                    "node_modules/c": {"version": "3.0.0"},
                }
            }
        ),
        encoding="utf-8",
    )
    assert read_lockfile_integrities(lock) == {"a:1.0.0": "sha512-AAA", "@s/b:2.0.0": "sha1-BBB"}


def test_read_lockfile_integrities_legacy(tmp_path: Path) -> None:
    lock = tmp_path / "package-lock.json"
    lock.write_text(
        json.dumps(
            {
                "lockfileVersion": 1,
                "dependencies": {
                    "a": {
                        "version": "1.0.0",
                        "integrity": "sha512-AAA",
                        "dependencies": {"b": {"version": "2.0.0", "integrity": "sha1-BBB"}},
                    }
                },
            }
        ),
        encoding="utf-8",
    )
    assert read_lockfile_integrities(lock) == {"a:1.0.0": "sha512-AAA", "b:2.0.0": "sha1-BBB"}


def test_read_lockfile_integrities_missing_file(tmp_path: Path) -> None:
    assert read_lockfile_integrities(tmp_path / "package-lock.json") == {}


# ----------------------------------------------------------------------
# pnpm
# ----------------------------------------------------------------------


def test_filter_pnpm_unique_args() -> None:
    existing = ["install", "--lockfile-only"]
    assert filter_pnpm_unique_args(
        ["install", "--frozen-lockfile", "--lockfile-only", "--prefer-offline"], existing
    ) == ["--frozen-lockfile", "--prefer-offline"]


def test_map_store_to_cache_prefers_sibling_cache(tmp_path: Path) -> None:
    store = tmp_path / "store" / "v3"
    store.mkdir(parents=True)
    (tmp_path / "store" / "cache").mkdir()
    assert map_store_to_cache(store) == tmp_path / "store" / "cache"


def test_map_store_to_cache_falls_back_to_store(tmp_path: Path) -> None:
    store = tmp_path / "store" / "v3"
    store.mkdir(parents=True)
    assert map_store_to_cache(store) == store


def test_map_store_to_cache_missing(tmp_path: Path) -> None:
    with pytest.raises(CacheError, match="pnpm install"):
        map_store_to_cache(tmp_path / "store" / "v3")


def test_pnpm_resolve(tmp_path: Path) -> None:
    project = tmp_path / "app"
    project.mkdir()
    _make_project(project, lockfile="pnpm-lock.yaml")
    store = tmp_path / "store" / "v3"
    store.mkdir(parents=True)
    cache_root = tmp_path / "store" / "cache"
    cache_root.mkdir()
    a_integrity = _store_tarball(cache_root, A_CONTENT)

    output = [
        {
            "name": "app",
            "version": "1.0.0",
            "dependencies": {"a": {"version": "1.0.0", "integrity": a_integrity}},
            "optionalDependencies": {
                "fsevents": {"version": "2.3.3", "integrity": _integrity(b"fsevents")}
            },
            "devDependencies": {"jest": {"version": "29.0.0", "integrity": _integrity(b"jest")}},
        }
    ]
    runner = StubRunner("8.6.0", {"ls": json.dumps(output), "store": f"{store}\n"})

    result = PnpmResolver(project, runner=runner).resolve()

    assert [d.id for d in result.dependencies] == ["a:1.0.0"]
    assert result.dependencies[0].checksums["sha1"] == hashlib.sha1(A_CONTENT).hexdigest()
    assert result.missing_in_cache == ["jest:29.0.0"]
    assert result.missing_optional == ["fsevents:2.3.3"]
    ls_call = next(c for c in runner.calls if c[0][0] == "ls")
    assert ls_call == (["ls", "--json", "--long", "--depth", "Infinity"], True)


def test_pnpm_install_uses_lockfile_only(tmp_path: Path) -> None:
    project = _make_project(tmp_path, node_modules=False)
    runner = StubRunner("8.6.0")
    config = ExtractConfig(install_args=["install", "--lockfile-only", "--prefer-offline"])

    PnpmResolver(project, config=config, runner=runner).prepare_project()

    assert runner.commands() == [["install", "--lockfile-only", "--prefer-offline"]]


# ----------------------------------------------------------------------
# yarn
# ----------------------------------------------------------------------

YARN_LIST = json.dumps(
    {
        "type": "tree",
        "data": {
            "type": "list",
            "trees": [
                {"name": "a@1.2.0", "children": [{"name": "b@^2.0.0"}]},
                {"name": "b@2.1.0", "children": []},
            ],
        },
    }
)


def test_yarn_classic_resolve_has_no_checksums(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="yarn.lock", dependencies={"a": "^1.0.0"})
    runner = StubRunner("1.22.19", {"list": YARN_LIST})

    result = YarnResolver(project, runner=runner).resolve()

    assert result.root_id == "app:1.0.0"
    assert [d.id for d in result.dependencies] == ["a:1.2.0", "b:2.1.0"]
    assert all(d.checksums == {} for d in result.dependencies)
    assert result.dependencies[1].requested_by == [["a:1.2.0", "app:1.0.0"]]
    assert runner.commands()[0] == ["list", "--json", "--flat", "--no-progress"]


def test_yarn_root_id_keeps_scope(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="yarn.lock", name="@org/app")
    resolver = YarnResolver(project, runner=StubRunner("1.22.19", {"list": YARN_LIST}))

    result = resolver.resolve()

    assert result.root_id == "@org/app:1.0.0"


def test_yarn_lockfile_mismatch_is_a_configuration_error(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="yarn.lock")
    failure = ToolExecutionError(
        "error while running 'yarn info'",
        tool="yarn",
        returncode=1,
        stdout="Usage Error: The project in /x/package.json doesn't seem to be present in your lockfile",
    )
    runner = StubRunner("3.6.1", {"info": failure})

    with pytest.raises(ConfigurationError, match="yarn install"):
        YarnResolver(project, runner=runner).resolve()


def test_yarn_other_failures_propagate(tmp_path: Path) -> None:
    project = _make_project(tmp_path, lockfile="yarn.lock")
    failure = ToolExecutionError("boom", tool="yarn", returncode=1, stderr="network")
    runner = StubRunner("1.22.19", {"list": failure})

    with pytest.raises(ToolExecutionError):
        YarnResolver(project, runner=runner).resolve()


@pytest.mark.parametrize(
    "version, expected",
    [
        ("2.4.3", ["install"]),
        ("3.6.1", ["install", "--mode=update-lockfile"]),
    ],
)
def test_yarn_berry_install(tmp_path: Path, version: str, expected: List[str]) -> None:
    project = _make_project(tmp_path, node_modules=False)
    runner = StubRunner(version)
    resolver = YarnResolver(project, runner=runner)
    resolver.tool_version = Version(version)
    resolver.variant = SchemaVariant.YARN_BERRY

    resolver.prepare_project()

    assert runner.commands() == [expected]


def test_get_resolver_class() -> None:
    assert get_resolver_class("npm") is NpmResolver
    assert get_resolver_class("pnpm") is PnpmResolver
    assert get_resolver_class("yarn") is YarnResolver
    with pytest.raises(ValueError, match="bun"):
        get_resolver_class("bun")
