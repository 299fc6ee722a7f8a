"""Tests for flow discovery and dependency resolution."""

from pathlib import Path

import pytest

from testingbot.client.maestro.flow_resolver import (
    FlowDependencyResolver,
    expand_braces,
    extract_references,
    glob_root,
    looks_like_path,
)
from testingbot.core.exceptions import ValidationError


def write(path: Path, content: str = "") -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return str(path)


@pytest.fixture
def resolver() -> FlowDependencyResolver:
    return FlowDependencyResolver()


# ──────────────────────────────────────────────────────────────────────────────
# Reference extraction
# ──────────────────────────────────────────────────────────────────────────────


class TestLooksLikePath:
    @pytest.mark.parametrize(
        "value",
        ["./scripts/setup.js", "../common/login.yaml", "media/cat.png"],
    )
    def test_relative_paths(self, value: str) -> None:
        assert looks_like_path(value)

    @pytest.mark.parametrize(
        "value",
        [
            "https://example.com/a.png",
            "file:///tmp/a.yaml",
            "${SCRIPT_PATH}",
            "login.yaml",
            "Tap on Login",
            "./scripts/",
            "",
        ],
    )
    def test_rejected(self, value: str) -> None:
        assert not looks_like_path(value)


class TestExtractReferences:
    def test_structured_commands(self) -> None:
        document = [
            {"runFlow": "common.yaml"},
            {"runScript": "setup.js"},
            {"addMedia": ["cat.png", "dog.mp4"]},
            {"runFlow": {"file": "nested/login.yaml", "env": {"USER": "a"}}},
            {"tapOn": "Login"},
        ]
        assert extract_references(document) == [
            "common.yaml",
            "setup.js",
            "cat.png",
            "dog.mp4",
            "nested/login.yaml",
        ]

    def test_add_media_single_string(self) -> None:
        assert extract_references([{"addMedia": "cat.png"}]) == ["cat.png"]

    def test_nested_hooks_and_repeat(self) -> None:
        document = {
            "appId": "com.example",
            "onFlowStart": [{"runFlow": "setup.yaml"}],
            "steps": [{"repeat": {"times": 2, "commands": [{"runScript": "a.js"}]}}],
        }
        assert extract_references(document) == ["setup.yaml", "a.js"]

    def test_free_strings_need_path_shape(self) -> None:
        document = [{"evalScript": "./scripts/eval.js"}, {"inputText": "hello.world"}]
        assert extract_references(document) == ["./scripts/eval.js"]


def test_expand_braces() -> None:
    assert expand_braces("flows/*.{yaml,yml}") == ["flows/*.yaml", "flows/*.yml"]
    assert expand_braces("plain/*.yaml") == ["plain/*.yaml"]


def test_glob_root(tmp_path: Path) -> None:
    assert glob_root(str(tmp_path / "flows" / "**" / "*.yaml")) == str(
        tmp_path / "flows"
    )


# ──────────────────────────────────────────────────────────────────────────────
# Resolution
# ──────────────────────────────────────────────────────────────────────────────


class TestResolveDirectory:
    def test_login_and_common(self, tmp_path: Path, resolver) -> None:
        flows = tmp_path / "flows"
        login = write(
            flows / "login.yaml", "appId: com.example\n---\n- runFlow: common.yaml\n"
        )
        common = write(flows / "common.yaml", "appId: com.example\n---\n- launchApp")

        resolved = resolver.resolve([str(flows)])

        assert sorted(resolved.files) == sorted([login, common])
        assert resolved.base_dir == str(flows)
        assert resolved.flow_count == 2

    def test_config_flows_glob(self, tmp_path: Path, resolver) -> None:
        flows = tmp_path / "flows"
        config = write(flows / "config.yaml", "flows:\n  - smoke/*\n")
        smoke = write(flows / "smoke" / "a.yaml", "- launchApp\n")
        write(flows / "unrelated.yaml", "- launchApp\n")
        write(flows / "other" / "b.yaml", "- launchApp\n")

        resolved = resolver.resolve([str(flows)])

        assert resolved.flows == [smoke]
        assert sorted(resolved.files) == sorted([smoke, config])

    def test_directory_without_config_uses_top_level_yaml(
        self, tmp_path: Path, resolver
    ) -> None:
        flows = tmp_path / "flows"
        top = write(flows / "a.yml", "- launchApp\n")
        write(flows / "sub" / "nested.yaml", "- launchApp\n")
        write(flows / "notes.txt", "x")

        assert resolver.resolve([str(flows)]).flows == [top]

    def test_empty_directory(self, tmp_path: Path, resolver) -> None:
        (tmp_path / "empty").mkdir()
        with pytest.raises(ValidationError, match="No flow files"):
            resolver.resolve([str(tmp_path / "empty")])

    def test_directory_includes_config(self, tmp_path: Path, resolver) -> None:
        config = write(tmp_path / "config.yaml", "flows:\n  - '*.yaml'\n")
        flow = write(tmp_path / "a.yaml", "- launchApp\n")
        resolved = resolver.resolve([str(tmp_path)])
        assert resolved.files == [flow, config]
        assert resolved.flows == [flow]


class TestDependencies:
    def test_cycle_terminates_with_each_file_once(
        self, tmp_path: Path, resolver
    ) -> None:
        a = write(tmp_path / "a.yaml", "- runFlow: b.yaml\n")
        b = write(tmp_path / "b.yaml", "- runFlow: a.yaml\n")

        resolved = resolver.resolve([a])

        assert sorted(resolved.files) == sorted([a, b])
        assert len(resolved.files) == len(set(resolved.files))

    def test_self_reference(self, tmp_path: Path, resolver) -> None:
        a = write(tmp_path / "a.yaml", "- runFlow: a.yaml\n")
        assert resolver.resolve([a]).files == [a]

    def test_transitive_non_yaml_dependencies(self, tmp_path: Path, resolver) -> None:
        login = write(
            tmp_path / "flows" / "login.yaml",
            "- runFlow: ../shared/setup.yaml\n- addMedia: media/cat.png\n",
        )
        setup = write(tmp_path / "shared" / "setup.yaml", "- runScript: seed.js\n")
        seed = write(tmp_path / "shared" / "seed.js", "output.x = 1")
        media = write(tmp_path / "flows" / "media" / "cat.png", "png")

        files = resolver.resolve([login]).files

        assert files == [login, setup, seed, media]

    def test_missing_dependency_skipped(self, tmp_path: Path, resolver) -> None:
        a = write(tmp_path / "a.yaml", "- runFlow: missing.yaml\n")
        assert resolver.resolve([a]).files == [a]

    def test_unparseable_flow_has_no_dependencies(
        self, tmp_path: Path, resolver
    ) -> None:
        a = write(tmp_path / "a.yaml", "- runFlow: [unclosed\n")
        assert resolver.resolve([a]).files == [a]


class TestResolveSpecs:
    def test_glob_pattern(self, tmp_path: Path, resolver) -> None:
        a = write(tmp_path / "flows" / "a.yaml", "- launchApp\n")
        b = write(tmp_path / "flows" / "deep" / "b.yml", "- launchApp\n")
        write(tmp_path / "flows" / "c.txt", "")

        resolved = resolver.resolve([str(tmp_path / "flows" / "**" / "*.{yaml,yml}")])

        assert resolved.flows == [a, b]
        assert resolved.base_dir == str(tmp_path / "flows")

    def test_zip_passthrough(self, tmp_path: Path, resolver) -> None:
        archive = write(tmp_path / "flows.zip", "PK")
        resolved = resolver.resolve([archive])
        assert resolved.archive == archive
        assert resolved.files == []

    def test_zip_cannot_be_mixed(self, tmp_path: Path, resolver) -> None:
        archive = write(tmp_path / "flows.zip", "PK")
        flow = write(tmp_path / "a.yaml", "- launchApp\n")
        with pytest.raises(ValidationError, match="cannot be combined"):
            resolver.resolve([archive, flow])

    def test_missing_path(self, tmp_path: Path, resolver) -> None:
        with pytest.raises(ValidationError, match="does not exist"):
            resolver.resolve([str(tmp_path / "nope.yaml")])

    def test_unsupported_file(self, tmp_path: Path, resolver) -> None:
        notes = write(tmp_path / "notes.txt", "")
        with pytest.raises(ValidationError, match="Invalid flow file format"):
            resolver.resolve([notes])

    def test_roots_differ_no_base_dir(self, tmp_path: Path, resolver) -> None:
        a = write(tmp_path / "one" / "a.yaml", "- launchApp\n")
        b = write(tmp_path / "two" / "b.yaml", "- launchApp\n")
        resolved = resolver.resolve([a, b])
        assert resolved.base_dir is None
        assert resolved.files == [a, b]

    def test_duplicates_removed(self, tmp_path: Path, resolver) -> None:
        a = write(tmp_path / "a.yaml", "- launchApp\n")
        assert resolver.resolve([a, a]).files == [a]
