"""Unit tests for project marker scanning and WorkContext assembly."""

import json
import logging
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from activation_engine.models import TaskScope
from activation_engine.project_scanner import (
    build_work_context,
    extensions_for,
    marker_probes,
    parse_marker,
    probe_marker,
    scan_project,
)


def _write(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestProbeMarker:
    """Tests for single-marker probes against manifests."""

    def test_keyless_probe_is_existence(self, tmp_path):
        _write(tmp_path, "go.mod", "module example.com/app\n")

        assert probe_marker(tmp_path, ("go.mod", None))
        assert not probe_marker(tmp_path, ("Cargo.toml", None))

    def test_package_json(self, tmp_path):
        _write(
            tmp_path,
            "package.json",
            json.dumps({"dependencies": {"react": "^18"}, "devDependencies": {"typescript": "^5"}}),
        )

        assert probe_marker(tmp_path, ("package.json", "react"))
        assert probe_marker(tmp_path, ("package.json", "typescript"))
        assert not probe_marker(tmp_path, ("package.json", "vue"))

    def test_composer_json(self, tmp_path):
        _write(tmp_path, "composer.json", json.dumps({"require": {"laravel/framework": "^11.0"}}))

        assert probe_marker(tmp_path, ("composer.json", "laravel/framework"))
        assert not probe_marker(tmp_path, ("composer.json", "symfony/symfony"))

    def test_requirements_txt(self, tmp_path):
        _write(tmp_path, "requirements.txt", "# web\nFastAPI==0.110\nuvicorn[standard]>=0.29\n")

        assert probe_marker(tmp_path, ("requirements.txt", "fastapi"))
        assert probe_marker(tmp_path, ("requirements.txt", "uvicorn"))
        assert not probe_marker(tmp_path, ("requirements.txt", "django"))

    def test_requirements_variant_file(self, tmp_path):
        _write(tmp_path, "requirements-dev.txt", "pytest\n")

        assert probe_marker(tmp_path, ("requirements-dev.txt", "pytest"))

    def test_pyproject_pep621_and_poetry(self, tmp_path):
        _write(
            tmp_path,
            "pyproject.toml",
            '[project]\ndependencies = ["Django>=5"]\n\n'
            "[tool.poetry.dependencies]\npython = '^3.11'\ncelery = '*'\n",
        )

        assert probe_marker(tmp_path, ("pyproject.toml", "django"))
        assert probe_marker(tmp_path, ("pyproject.toml", "celery"))
        assert not probe_marker(tmp_path, ("pyproject.toml", "fastapi"))

    def test_cargo_toml(self, tmp_path):
        _write(tmp_path, "Cargo.toml", '[package]\nname = "app"\n\n[dependencies]\ntokio = "1"\n')

        assert probe_marker(tmp_path, ("Cargo.toml", "tokio"))
        assert not probe_marker(tmp_path, ("Cargo.toml", "serde"))

    def test_pubspec_yaml(self, tmp_path):
        _write(tmp_path, "pubspec.yaml", "dependencies:\n  flutter:\n    sdk: flutter\n")

        assert probe_marker(tmp_path, ("pubspec.yaml", "flutter"))

    def test_go_mod(self, tmp_path):
        _write(
            tmp_path,
            "go.mod",
            "module example.com/app\n\nrequire (\n\tgithub.com/gin-gonic/gin v1.9.1\n)\n",
        )

        assert probe_marker(tmp_path, ("go.mod", "github.com/gin-gonic/gin"))
        assert not probe_marker(tmp_path, ("go.mod", "github.com/labstack/echo"))

    def test_generic_dotted_key(self, tmp_path):
        _write(tmp_path, "tsconfig.json", json.dumps({"compilerOptions": {"strict": True}}))

        assert probe_marker(tmp_path, ("tsconfig.json", "compilerOptions.strict"))
        assert not probe_marker(tmp_path, ("tsconfig.json", "compilerOptions.jsx"))

    def test_plain_text_substring(self, tmp_path):
        _write(tmp_path, "ios/Podfile", "platform :ios, '13.0'\npod 'Firebase'\n")

        assert probe_marker(tmp_path, ("ios/Podfile", "Firebase"))

    def test_malformed_manifest_is_absent(self, tmp_path, caplog):
        _write(tmp_path, "package.json", "{not json")

        with caplog.at_level(logging.INFO):
            assert probe_marker(tmp_path, ("package.json", "react")) is False

        assert "Malformed manifest" in caplog.text

    def test_non_mapping_manifest_is_absent(self, tmp_path):
        _write(tmp_path, "package.json", "[1, 2, 3]")

        assert probe_marker(tmp_path, ("package.json", "react")) is False

    @pytest.mark.parametrize(
        "content",
        [
            'project = "oops"\n',
            "tool = 1\n",
            "[tool]\npoetry = [1, 2]\n",
            '[project]\ndependencies = "django"\n',
        ],
    )
    def test_pyproject_wrong_shapes_are_absent(self, tmp_path, caplog, content):
        _write(tmp_path, "pyproject.toml", content)

        with caplog.at_level(logging.INFO):
            assert probe_marker(tmp_path, ("pyproject.toml", "django")) is False

        assert "Malformed manifest" in caplog.text

    def test_unreadable_file_is_absent(self, tmp_path):
        _write(tmp_path, "package.json", "{}")

        with patch.object(Path, "read_text", side_effect=PermissionError("denied")):
            assert probe_marker(tmp_path, ("package.json", "react")) is False

    def test_directory_is_not_a_marker(self, tmp_path):
        (tmp_path / "package.json").mkdir()

        assert probe_marker(tmp_path, ("package.json", None)) is False


class TestScanProject:
    """Tests for scanning a project root."""

    def test_keyed_marker_adds_bare_file(self, tmp_path):
        _write(tmp_path, "composer.json", json.dumps({"require": {"laravel/framework": "^11"}}))

        found = scan_project(
            tmp_path, [("composer.json", "laravel/framework"), ("go.mod", None)]
        )

        assert found == frozenset(
            {("composer.json", "laravel/framework"), ("composer.json", None)}
        )

    def test_missing_root(self, tmp_path):
        assert scan_project(tmp_path / "missing", [("go.mod", None)]) == frozenset()

    def test_no_probes(self, tmp_path):
        assert scan_project(tmp_path, []) == frozenset()

    def test_timeout_treats_pending_as_absent(self, tmp_path, caplog):
        _write(tmp_path, "go.mod", "module x\n")
        release = threading.Event()

        def slow_probe(root, marker):
            if marker[0] == "Cargo.toml":
                release.wait(5)
                return True
            return (root / marker[0]).is_file()

        try:
            with patch("activation_engine.project_scanner.probe_marker", slow_probe):
                with caplog.at_level(logging.WARNING):
                    found = scan_project(
                        tmp_path, [("go.mod", None), ("Cargo.toml", None)], timeout=0.2
                    )
        finally:
            release.set()

        assert found == frozenset({("go.mod", None)})
        assert "timed out" in caplog.text

    def test_failing_marker_check_is_absent(self, tmp_path, caplog):
        _write(tmp_path, "go.mod", "module x\n")

        def broken_check(root, marker):
            if marker[0] == "Cargo.toml":
                raise RuntimeError("reader bug")
            return (root / marker[0]).is_file()

        with patch("activation_engine.project_scanner.probe_marker", broken_check):
            with caplog.at_level(logging.WARNING):
                found = scan_project(tmp_path, [("go.mod", None), ("Cargo.toml", "serde")])

        assert found == frozenset({("go.mod", None)})
        assert "reader bug" in caplog.text

    def test_marker_probes_from_index(self, bundled_index):
        probes = marker_probes(bundled_index)

        assert ("composer.json", "laravel/framework") in probes
        assert ("go.mod", None) in probes


class TestExtensions:
    @pytest.mark.parametrize(
        "files,expected",
        [
            (["src/App.tsx"], {".tsx"}),
            (["resources/views/welcome.blade.php"], {".php", ".blade.php"}),
            (["README"], set()),
            (["Main.PHP"], {".php"}),
            (["a.ts", "b.ts"], {".ts"}),
        ],
    )
    def test_extensions_for(self, files, expected):
        assert extensions_for(files) == frozenset(expected)


class TestBuildWorkContext:
    def test_parse_marker(self):
        assert parse_marker("package.json:react") == ("package.json", "react")
        assert parse_marker("go.mod") == ("go.mod", None)

    def test_explicit_markers_and_scope_string(self):
        context = build_work_context(
            files=["app/Http/Controller.php"],
            request_text="optimize query",
            task_scope="single_file",
            markers=[("composer.json", "laravel/framework")],
        )

        assert context.touched_extensions == frozenset({".php"})
        assert ("composer.json", None) in context.project_markers
        assert context.task_scope == TaskScope.SINGLE_FILE
        assert context.request_text == "optimize query"

    def test_scans_project_root(self, tmp_path, bundled_index):
        _write(tmp_path, "package.json", json.dumps({"dependencies": {"vue": "^3"}}))

        context = build_work_context(project_root=tmp_path, index=bundled_index)

        assert ("package.json", "vue") in context.project_markers
        assert ("package.json", "react") not in context.project_markers

    def test_malformed_pyproject_does_not_break_context(self, tmp_path, bundled_index):
        _write(tmp_path, "pyproject.toml", 'project = "oops"\n')

        context = build_work_context(project_root=tmp_path, index=bundled_index)

        assert ("pyproject.toml", None) in context.project_markers
        assert ("pyproject.toml", "django") not in context.project_markers

    def test_invalid_scope_raises(self):
        with pytest.raises(ValueError):
            build_work_context(task_scope="galaxy")

    def test_defaults(self):
        context = build_work_context()

        assert context.touched_extensions == frozenset()
        assert context.project_markers == frozenset()
        assert context.task_scope == TaskScope.FEATURE
