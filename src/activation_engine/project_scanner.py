"""
Project Scanner - builds WorkContext inputs from the filesystem.

Runs once per WorkContext construction, outside the pure classifier.
Probing is best-effort: a missing, unreadable or malformed manifest means
"marker absent", and probes still running when the timeout expires are
treated the same way.

Manifest dependency keys distinguish frameworks that share a manifest
format, e.g. React vs Vue in package.json or Laravel in composer.json.
"""

import json
import logging
import re
import tomllib
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Callable, Iterable

import yaml

from activation_engine.models import (
    TaskScope,
    TriggerKind,
    WorkContext,
    normalize_extension,
    split_marker,
)
from activation_engine.rule_index import RuleIndex

logger = logging.getLogger(__name__)

Marker = tuple[str, str | None]

REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
GO_REQUIRE = re.compile(r"^\s*(?:require\s+)?([\w.\-]+(?:/[\w.\-]+)+)\s+v", re.MULTILINE)


class MalformedManifest(Exception):
    """Manifest exists but cannot be parsed."""
    pass


def _normalize_requirement(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MalformedManifest(str(e))


def _load_toml(path: Path) -> Any:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise MalformedManifest(str(e))


def _load_yaml(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise MalformedManifest(str(e))


def _has_section_key(data: Any, sections: Iterable[str], key: str) -> bool:
    if not isinstance(data, dict):
        raise MalformedManifest("top-level value is not a mapping")
    return any(
        isinstance(data.get(section), dict) and key in data[section]
        for section in sections
    )


def _package_json(path: Path, key: str) -> bool:
    return _has_section_key(
        _load_json(path), ("dependencies", "devDependencies", "peerDependencies"), key
    )


def _composer_json(path: Path, key: str) -> bool:
    return _has_section_key(_load_json(path), ("require", "require-dev"), key)


def _pubspec_yaml(path: Path, key: str) -> bool:
    return _has_section_key(_load_yaml(path), ("dependencies", "dev_dependencies"), key)


def _cargo_toml(path: Path, key: str) -> bool:
    return _has_section_key(
        _load_toml(path), ("dependencies", "dev-dependencies", "build-dependencies"), key
    )


def _requirements_txt(path: Path, key: str) -> bool:
    wanted = _normalize_requirement(key)
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0]
        match = REQUIREMENT_NAME.match(line)
        if match and _normalize_requirement(match.group(1)) == wanted:
            return True
    return False


def _table(data: Any, *path: str) -> dict:
    """Nested mapping at ``path``; absent levels give {}, non-mappings are malformed."""
    for part in path:
        if not isinstance(data, dict):
            raise MalformedManifest(f"'{part}' parent is not a mapping")
        data = data.get(part)
        if data is None:
            return {}
    if not isinstance(data, dict):
        raise MalformedManifest(f"'{'.'.join(path)}' is not a mapping")
    return data


def _pyproject_toml(path: Path, key: str) -> bool:
    data = _load_toml(path)
    wanted = _normalize_requirement(key)
    requirements = _table(data, "project").get("dependencies") or []
    if not isinstance(requirements, list):
        raise MalformedManifest("project.dependencies is not an array")
    for requirement in requirements:
        match = REQUIREMENT_NAME.match(str(requirement))
        if match and _normalize_requirement(match.group(1)) == wanted:
            return True
    poetry = _table(data, "tool", "poetry", "dependencies")
    return any(_normalize_requirement(name) == wanted for name in poetry)


def _go_mod(path: Path, key: str) -> bool:
    return key in GO_REQUIRE.findall(path.read_text(encoding="utf-8"))


def _dotted_key(path: Path, key: str) -> bool:
    """Generic structured file: check a dotted key path."""
    suffix = path.suffix.lower()
    if suffix == ".json":
        data = _load_json(path)
    elif suffix == ".toml":
        data = _load_toml(path)
    elif suffix in (".yaml", ".yml"):
        data = _load_yaml(path)
    else:
        # Plain text marker: substring presence
        return key in path.read_text(encoding="utf-8")

    for part in key.split("."):
        if not isinstance(data, dict) or part not in data:
            return False
        data = data[part]
    return True


MANIFEST_READERS: dict[str, Callable[[Path, str], bool]] = {
    "package.json": _package_json,
    "composer.json": _composer_json,
    "pubspec.yaml": _pubspec_yaml,
    "Cargo.toml": _cargo_toml,
    "pyproject.toml": _pyproject_toml,
    "go.mod": _go_mod,
}


def _reader_for(filename: str) -> Callable[[Path, str], bool]:
    name = Path(filename).name
    if name in MANIFEST_READERS:
        return MANIFEST_READERS[name]
    if name.startswith("requirements") and name.endswith(".txt"):
        return _requirements_txt
    return _dotted_key


def probe_marker(root: Path, marker: Marker) -> bool:
    """
    Check one marker against a project root.

    Never raises: missing/unreadable files and malformed manifests are
    reported as absent.
    """
    filename, key = marker
    path = root / filename
    try:
        if not path.is_file():
            return False
        if key is None:
            return True
        return _reader_for(filename)(path, key)
    except MalformedManifest as e:
        logger.info(f"Malformed manifest {path} (treating '{key}' as absent): {e}")
        return False
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Cannot read {path} (treating as absent): {e}")
        return False


def marker_probes(index: RuleIndex) -> list[Marker]:
    """Markers the catalog can react to, in trigger order."""
    return [t.marker for t in index.triggers(TriggerKind.PROJECT_MARKER)]


def scan_project(
    root: Path, probes: Iterable[Marker], timeout: float = 2.0
) -> frozenset[Marker]:
    """
    Probe a project root for markers.

    Args:
        root: Project root directory
        probes: (filename, key) pairs to check
        timeout: Seconds allowed for all probes together

    Returns:
        Markers found; keyed markers also add their (filename, None) entry
    """
    root = Path(root)
    probes = list(dict.fromkeys(probes))
    if not probes or not root.is_dir():
        if not root.is_dir():
            logger.debug(f"Project root not found: {root}")
        return frozenset()

    found: set[Marker] = set()
    executor = ThreadPoolExecutor(max_workers=min(8, len(probes)))
    try:
        futures = {executor.submit(probe_marker, root, probe): probe for probe in probes}
        done, pending = wait(futures, timeout=timeout)
        for future in done:
            filename, key = futures[future]
            try:
                present = future.result()
            except Exception as e:
                logger.warning(f"Probe {filename}:{key} failed (treating as absent): {e}")
                continue
            if present:
                found.add((filename, key))
                found.add((filename, None))
        if pending:
            logger.warning(
                f"Project scan of {root} timed out after {timeout}s; "
                f"{len(pending)} probe(s) treated as absent"
            )
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    logger.debug(f"Project markers in {root}: {sorted(found, key=str)}")
    return frozenset(found)


def extensions_for(files: Iterable[str]) -> frozenset[str]:
    """
    File extensions touched by a set of paths.

    Both the last suffix and the two-part compound suffix are reported,
    so "welcome.blade.php" yields ".php" and ".blade.php".
    """
    extensions: set[str] = set()
    for file_path in files:
        suffixes = Path(file_path).suffixes
        if not suffixes:
            continue
        extensions.add(normalize_extension(suffixes[-1]))
        if len(suffixes) >= 2:
            extensions.add(normalize_extension("".join(suffixes[-2:])))
    return frozenset(extensions)


def parse_marker(value: str) -> Marker:
    """Parse ``file[:key]`` given on the command line or over MCP."""
    return split_marker(value)


def build_work_context(
    files: Iterable[str] = (),
    request_text: str = "",
    task_scope: TaskScope | str = TaskScope.FEATURE,
    project_root: Path | None = None,
    index: RuleIndex | None = None,
    markers: Iterable[Marker] = (),
    timeout: float = 2.0,
) -> WorkContext:
    """
    Assemble a WorkContext from raw host inputs.

    Args:
        files: Paths touched by the task
        request_text: Free-form task description
        task_scope: Scope tier (enum or its string value)
        project_root: Directory to probe for markers (skipped if None)
        index: Catalog whose marker triggers define the probes
        markers: Markers already known to the caller
        timeout: Probe budget in seconds
    """
    found: set[Marker] = set()
    for filename, key in markers:
        found.add((filename, key))
        found.add((filename, None))
    if project_root is not None and index is not None:
        found |= scan_project(Path(project_root), marker_probes(index), timeout)

    return WorkContext(
        touched_extensions=extensions_for(files),
        project_markers=frozenset(found),
        request_text=request_text or "",
        task_scope=TaskScope(task_scope),
    )
