"""Tests for file-kind conflict heuristics."""

import pytest

from aicommit.conflict.heuristics import (
    FileKind,
    apply_heuristic,
    classify_file,
    has_declaration,
    key_level_merge,
)
from aicommit.conflict.parser import has_conflict_markers, parse_conflict_sections


LOCKFILE = """{
  "name": "app",
  "lockfileVersion": 3,
<<<<<<< HEAD
  "version": "1.2.0",
  "integrity": "sha512-ours",
=======
  "version": "1.3.0",
  "integrity": "sha512-theirs",
  "resolved": "https://registry.npmjs.org/theirs-only",
>>>>>>> origin/main
  "requires": true
}
"""


def section_of(ours: list[str], theirs: list[str]):
    content = "\n".join(["<<<<<<< HEAD", *ours, "=======", *theirs, ">>>>>>> branch"]) + "\n"
    return parse_conflict_sections(content)[0]


class TestClassifyFile:

    @pytest.mark.parametrize("path,kind", [
        ("package-lock.json", FileKind.LOCK),
        ("frontend/yarn.lock", FileKind.LOCK),
        ("requirements-dev.txt", FileKind.LOCK),
        ("pyproject.toml", FileKind.LOCK),
        (".env", FileKind.ENV),
        (".env.production", FileKind.ENV),
        ("config/db_credentials.yaml", FileKind.ENV),
        ("README.md", FileKind.DOCUMENTATION),
        ("CHANGELOG", FileKind.DOCUMENTATION),
        ("docs/guide.html", FileKind.DOCUMENTATION),
        ("config/settings.yaml", FileKind.CONFIG),
        ("tsconfig.json", FileKind.CONFIG),
        ("src/app.py", FileKind.SOURCE),
        ("web/index.tsx", FileKind.SOURCE),
        ("src/secret_store.py", FileKind.SOURCE),
        ("lib/credentials.ts", FileKind.SOURCE),
        ("deploy/secrets.yaml", FileKind.ENV),
        ("assets/logo.svg", FileKind.OTHER),
    ])
    def test_classification(self, path, kind):
        assert classify_file(path) == kind


class TestDeclarations:

    @pytest.mark.parametrize("line", [
        "def handler(event):",
        "    async def fetch(self):",
        "class Parser(Base):",
        "import os",
        "from typing import Optional",
        "export default function App() {",
        "const load = async () => {",
        "const fs = require('fs')",
        "pub fn parse(input: &str) -> Result<()> {",
        "func main() {",
    ])
    def test_declaration_lines(self, line):
        assert has_declaration([line]) is True

    @pytest.mark.parametrize("line", [
        "x = compute(1)",
        "    return value",
        "const limit = 10",
        "# class of its own",
    ])
    def test_non_declaration_lines(self, line):
        assert has_declaration([line]) is False


class TestApplyHeuristic:

    def test_lock_file_keeps_ours(self):
        """package-lock.json resolves via the ours rule with nothing from theirs."""
        result = apply_heuristic("package-lock.json", LOCKFILE)

        assert result.resolved is True
        assert result.rule == "ours"
        assert not has_conflict_markers(result.content)
        assert '"version": "1.2.0",' in result.content
        for theirs_only in ("1.3.0", "sha512-theirs", "theirs-only"):
            assert theirs_only not in result.content

    def test_documentation_takes_theirs(self):
        content = "# Title\n<<<<<<< HEAD\nold intro\n=======\nnew intro\n>>>>>>> main\n"
        result = apply_heuristic("README.md", content)

        assert result.rule == "theirs"
        assert result.content == "# Title\nnew intro\n"

    def test_source_without_declarations_defaults_to_ours(self):
        content = "def f():\n<<<<<<< HEAD\n    x = 1\n=======\n    x = 2\n>>>>>>> main\n    return x\n"
        result = apply_heuristic("src/app.py", content)

        assert result.resolved is True
        assert result.rule == "declarations"
        assert result.content == "def f():\n    x = 1\n    return x\n"

    def test_source_prefers_side_with_declarations(self):
        content = (
            "<<<<<<< HEAD\n    pass\n=======\n"
            "def added_helper():\n    return 42\n>>>>>>> main\n"
        )
        result = apply_heuristic("lib/util.py", content)
        assert result.content == "def added_helper():\n    return 42\n"

    def test_secret_named_source_uses_declarations(self):
        content = "<<<<<<< HEAD\nx = 1\n=======\ndef load():\n    return vault.read()\n>>>>>>> main\n"
        result = apply_heuristic("src/secret_store.py", content)

        assert result.kind == FileKind.SOURCE
        assert result.rule == "declarations"
        assert result.content == "def load():\n    return vault.read()\n"

    def test_config_key_merge_favours_theirs(self):
        content = (
            "server:\n"
            "<<<<<<< HEAD\n  port: 8080\n  debug: true\n"
            "=======\n  port: 9090\n  workers: 4\n>>>>>>> main\n"
        )
        result = apply_heuristic("config/app.yaml", content)

        assert result.rule == "key-merge-theirs"
        assert result.content == "server:\n  port: 9090\n  workers: 4\n  debug: true\n"

    def test_env_key_merge_favours_ours(self):
        content = "<<<<<<< HEAD\nAPI_URL=http://localhost\n=======\nAPI_URL=https://prod\nNEW_FLAG=1\n>>>>>>> main\n"
        result = apply_heuristic(".env", content)

        assert result.rule == "key-merge-ours"
        assert result.content == "API_URL=http://localhost\nNEW_FLAG=1\n"

    def test_unknown_kind_unresolved(self):
        content = "<<<<<<< HEAD\n<svg/>\n=======\n<svg></svg>\n>>>>>>> main\n"
        result = apply_heuristic("logo.svg", content)

        assert result.resolved is False
        assert result.rule is None
        assert result.kind == FileKind.OTHER

    def test_policy_overrides_kind(self):
        result = apply_heuristic("package-lock.json", LOCKFILE, policy="theirs")

        assert result.rule == "policy-theirs"
        assert "sha512-theirs" in result.content

    def test_manual_policy_unresolved(self):
        result = apply_heuristic("src/app.py", "<<<<<<< HEAD\na\n=======\nb\n>>>>>>> x\n", policy="manual")
        assert result.resolved is False


class TestKeyLevelMerge:

    def test_json_trailing_commas(self):
        section = section_of(
            ['  "a": 1,', '  "b": 2,'],
            ['  "a": 10,', '  "c": 3,'],
        )
        assert key_level_merge(section, "theirs") == ['  "a": 10,', '  "c": 3,', '  "b": 2,']

    def test_last_entry_without_comma(self):
        section = section_of(['  "a": 1'], ['  "b": 2'])
        assert key_level_merge(section, "theirs") == ['  "b": 2,', '  "a": 1']

    def test_non_key_value_takes_favoured_side(self):
        section = section_of(["- item one"], ["key: value"])
        assert key_level_merge(section, "theirs") == ["key: value"]
        assert key_level_merge(section, "ours") == ["- item one"]
