"""Resolve user supplied flow paths into the set of files a Maestro run needs.

A flow path can be a single flow file, a directory, a glob pattern, or a
prebuilt zip. Every flow found directly is scanned for references to other
files (sub-flows, scripts, media); referenced YAML files are scanned in turn.
"""

from __future__ import annotations

import glob
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import structlog
import yaml

from testingbot.core.exceptions import ValidationError

logger = structlog.get_logger(__name__)

YAML_EXTENSIONS = (".yaml", ".yml")
CONFIG_FILE_NAME = "config.yaml"
GLOB_CHARS = ("*", "?", "[", "{")
URL_PREFIXES = ("http:", "https:", "file:")
TEMPLATE_TOKEN = re.compile(r"^\$\{[^}]*\}$")
FILE_EXTENSION = re.compile(r"\.[A-Za-z0-9]+$")
BRACES = re.compile(r"\{([^{}]*)\}")

# commands whose value is a file reference, either directly or via `file:`
FILE_COMMANDS = ("runFlow", "runScript")
MEDIA_COMMAND = "addMedia"
FILE_KEY = "file"


def is_yaml(path: str) -> bool:
    return path.lower().endswith(YAML_EXTENSIONS)


def is_glob_pattern(flow_path: str) -> bool:
    return any(ch in flow_path for ch in GLOB_CHARS)


def looks_like_path(value: str) -> bool:
    """Heuristic for free-standing strings that reference a file.

    Accepts relative-looking strings (``./``, ``../`` or containing ``/``)
    that end in a file extension. URLs and bare ``${...}`` tokens are
    rejected, and so are plain file names: those only count under a known
    command such as ``runScript``.
    """
    value = value.strip()
    if not value:
        return False
    if value.lower().startswith(URL_PREFIXES):
        return False
    if TEMPLATE_TOKEN.match(value):
        return False
    if not (value.startswith("./") or value.startswith("../") or "/" in value):
        return False
    return bool(FILE_EXTENSION.search(os.path.basename(value)))


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternatives, which :mod:`glob` does not support."""
    match = BRACES.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: List[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def glob_files(pattern: str) -> List[str]:
    """Sorted absolute paths of regular files matching ``pattern``."""
    matches: Set[str] = set()
    for expanded in expand_braces(pattern):
        for match in glob.glob(expanded, recursive=True):
            if os.path.isfile(match):
                matches.add(os.path.abspath(match))
    return sorted(matches)


def glob_root(pattern: str) -> str:
    """Longest leading directory of ``pattern`` without glob characters."""
    parts = pattern.replace("\\", "/").split("/")
    static: List[str] = []
    for part in parts[:-1]:
        if is_glob_pattern(part):
            break
        static.append(part)
    root = "/".join(static)
    if pattern.startswith("/") and not root:
        root = "/"
    return os.path.abspath(root or ".")


def extract_references(document: Any) -> List[str]:
    """Collect raw file references from one parsed YAML document."""
    refs: List[str] = []
    _collect(document, refs)
    return refs


def _collect(node: Any, refs: List[str]) -> None:
    if isinstance(node, list):
        for item in node:
            _collect(item, refs)
    elif isinstance(node, dict):
        for key, value in node.items():
            if key in FILE_COMMANDS and isinstance(value, str):
                refs.append(value)
            elif key == MEDIA_COMMAND:
                media = [value] if isinstance(value, str) else value
                if isinstance(media, list):
                    refs.extend(m for m in media if isinstance(m, str))
            elif key == FILE_KEY and isinstance(value, str):
                refs.append(value)
            else:
                # nested commands, onFlowStart/onFlowComplete, repeat/retry
                _collect(value, refs)
    elif isinstance(node, str) and looks_like_path(node):
        refs.append(node)


@dataclass
class ResolvedFlows:
    """Files to bundle for a run."""

    files: List[str] = field(default_factory=list)
    base_dir: Optional[str] = None
    # flows discovered directly, before dependency expansion
    flows: List[str] = field(default_factory=list)
    # set when the user passed a ready-made zip
    archive: Optional[str] = None

    @property
    def flow_count(self) -> int:
        return len(self.flows)


class FlowDependencyResolver:
    """Discover flow files and their transitive file dependencies."""

    def __init__(self) -> None:
        self._visited: Set[str] = set()
        self._parsed: Dict[str, List[Any]] = {}

    # ──────────────────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────────────────

    def resolve(self, flow_paths: Sequence[str]) -> ResolvedFlows:
        """Resolve ``flow_paths`` into a deduplicated file set.

        Raises:
            ValidationError: a zip mixed with other paths, an unsupported
                file type, or nothing found.
        """
        flow_paths = list(flow_paths)
        if not flow_paths:
            raise ValidationError("flows option is required")

        zips = [
            p for p in flow_paths if p.lower().endswith(".zip") and os.path.isfile(p)
        ]
        if zips:
            if len(flow_paths) > 1:
                raise ValidationError(
                    "A flows zip archive cannot be combined with other flow paths"
                )
            return ResolvedFlows(archive=os.path.abspath(zips[0]))

        self._visited = set()
        flows: List[str] = []
        extras: List[str] = []
        roots: List[str] = []

        for flow_path in flow_paths:
            found, config_file, root = self._discover_path(flow_path)
            if not found:
                if len(flow_paths) == 1:
                    raise ValidationError(self._nothing_found_message(flow_path))
                logger.warning("No flow files found", flow_path=flow_path)
                continue
            flows.extend(found)
            if config_file:
                extras.append(config_file)
            roots.append(root)

        if not flows:
            raise ValidationError(
                f"No flow files (.yaml, .yml) found in {', '.join(flow_paths)}"
            )

        ordered = _unique(flows)
        files = _unique(ordered + extras + self._dependencies_of(ordered))
        base_dir = roots[0] if len(set(roots)) == 1 else None

        logger.debug(
            "Resolved flow files",
            flows=len(ordered),
            files=len(files),
            base_dir=base_dir,
        )
        return ResolvedFlows(files=files, base_dir=base_dir, flows=ordered)

    # ──────────────────────────────────────────────────────────────────────
    # Direct discovery
    # ──────────────────────────────────────────────────────────────────────

    def _discover_path(self, flow_path: str) -> tuple:
        if os.path.isdir(flow_path):
            return self._discover_directory(os.path.abspath(flow_path))

        if os.path.isfile(flow_path):
            if not is_yaml(flow_path):
                ext = os.path.splitext(flow_path)[1]
                raise ValidationError(
                    f"Invalid flow file format. Expected .yaml, .yml, or .zip, got {ext}"
                )
            path = os.path.abspath(flow_path)
            return [path], None, os.path.dirname(path)

        if not is_glob_pattern(flow_path):
            raise ValidationError(f"flows path does not exist {flow_path}")

        matches = [m for m in glob_files(flow_path) if is_yaml(m)]
        return matches, None, glob_root(flow_path)

    def _discover_directory(self, directory: str) -> tuple:
        config_path = os.path.join(directory, CONFIG_FILE_NAME)
        config_file = config_path if os.path.isfile(config_path) else None
        patterns = self._config_flow_patterns(config_path) if config_file else []

        flows: List[str] = []
        if patterns:
            for pattern in patterns:
                matches = glob_files(os.path.join(directory, pattern))
                flows.extend(
                    m for m in matches if is_yaml(m) and m != config_path
                )
        else:
            for entry in sorted(os.listdir(directory)):
                path = os.path.join(directory, entry)
                if entry == CONFIG_FILE_NAME:
                    continue
                if os.path.isfile(path) and is_yaml(entry):
                    flows.append(path)

        return _unique(flows), config_file, directory

    def _config_flow_patterns(self, config_path: str) -> List[str]:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning(
                "Ignoring unreadable workspace config", path=config_path, error=str(exc)
            )
            return []
        if not isinstance(config, dict):
            return []
        patterns = config.get("flows") or []
        if isinstance(patterns, str):
            patterns = [patterns]
        return [p for p in patterns if isinstance(p, str)]

    def _nothing_found_message(self, flow_path: str) -> str:
        if os.path.isdir(flow_path):
            return f"No flow files (.yaml, .yml) found in directory {flow_path}"
        return f"No flow files found matching pattern {flow_path}"

    # ──────────────────────────────────────────────────────────────────────
    # Dependency discovery
    # ──────────────────────────────────────────────────────────────────────

    def _dependencies_of(self, flows: Iterable[str]) -> List[str]:
        self._visited.update(flows)
        deps: List[str] = []
        for flow in flows:
            deps.extend(self._walk(flow))
        return deps

    def _walk(self, flow_file: str) -> List[str]:
        """Depth-first walk; every path is yielded at most once per resolve."""
        found: List[str] = []
        base = os.path.dirname(flow_file)
        for ref in self._references(flow_file):
            dep = os.path.normpath(os.path.join(base, ref))
            if dep in self._visited:
                continue
            if not os.path.isfile(dep):
                logger.debug("Skipping missing dependency", flow=flow_file, ref=ref)
                continue
            self._visited.add(dep)
            found.append(dep)
            if is_yaml(dep):
                found.extend(self._walk(dep))
        return found

    def _references(self, flow_file: str) -> List[str]:
        documents = self._parsed.get(flow_file)
        if documents is None:
            documents = self._load(flow_file)
            self._parsed[flow_file] = documents
        refs: List[str] = []
        for document in documents:
            refs.extend(extract_references(document))
        return refs

    def _load(self, flow_file: str) -> List[Any]:
        try:
            with open(flow_file, "r", encoding="utf-8") as f:
                # front matter (appId, onFlowStart) and commands are separate docs
                return [d for d in yaml.safe_load_all(f) if d is not None]
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            logger.debug("Could not parse flow", flow=flow_file, error=str(exc))
            return []


def _unique(paths: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    ordered: List[str] = []
    for path in paths:
        if path not in seen:
            seen.add(path)
            ordered.append(path)
    return ordered
