"""Tests for configuration loading and the depresolve command line."""

import csv
import io
import json
import logging
from argparse import Namespace

import pytest
import yaml

from args import parse_args
from cli_config import apply_mapping, build_config, load_config_file, parse_set_overrides
from constants import Constants, ExitCodes
from depresolve import main
from resolver.config import ResolverConfig


def write_repo(tmp_path, manifests):
    """Lay out YAML manifests in a Maven-style local repository."""
    repo = tmp_path / "repo"
    for coord, doc in manifests.items():
        group, artifact, version = coord.split(":")
        target = repo.joinpath(*group.split("."), artifact, version)
        target.mkdir(parents=True, exist_ok=True)
        (target / f"{artifact}-{version}.yaml").write_text(yaml.safe_dump(doc), encoding="utf-8")
    return str(repo)


def write_root(tmp_path, doc, name="root.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    return str(path)


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def project(tmp_path):
    repo = write_repo(tmp_path, {
        "g:A:1": {"coordinate": "g:A:1", "dependencies": ["g:C:2"]},
        "g:B:1": {"coordinate": "g:B:1", "dependencies": ["g:C:1"]},
        "g:C:2": {"coordinate": "g:C:2"},
    })
    root = write_root(tmp_path, {"coordinate": "g:root:1", "dependencies": ["g:A:1", "g:B:1"]})
    return root, repo


class TestConfig:
    """Tests for config file and override handling."""

    def test_load_resolver_section(self, tmp_path):
        path = tmp_path / "depresolve.yml"
        path.write_text("resolver:\n  max_workers: 3\n  exclusion_scope: path\n", encoding="utf-8")
        assert load_config_file(str(path)) == {"max_workers": 3, "exclusion_scope": "path"}

    def test_top_level_config(self, tmp_path):
        path = tmp_path / "depresolve.yml"
        path.write_text("max_workers: 2\n", encoding="utf-8")
        assert load_config_file(str(path)) == {"max_workers": 2}

    def test_missing_or_broken_file_gives_empty(self, tmp_path):
        assert load_config_file(str(tmp_path / "missing.yml")) == {}
        broken = tmp_path / "broken.yml"
        broken.write_text("resolver: [\n", encoding="utf-8")
        assert load_config_file(str(broken)) == {}
        assert load_config_file(None) == {}

    def test_invalid_values_are_ignored(self):
        config = apply_mapping(ResolverConfig(), {
            "max_workers": "abc",
            "exclusion_scope": "everywhere",
            "deadline-seconds": "2.5",
            "colour": "blue",
        }, "test")
        assert config.max_workers == Constants.MAX_WORKERS
        assert config.exclusion_scope == Constants.DEFAULT_EXCLUSION_SCOPE
        assert config.deadline_seconds == 2.5

    def test_repositories_from_comma_list(self):
        config = apply_mapping(ResolverConfig(), {"repositories": "a, b"}, "test")
        assert config.repositories == ["a", "b"]

    def test_parse_set_overrides(self):
        assert parse_set_overrides(["max_workers=4", "bogus", "http_timeout = 5"]) == {
            "max_workers": "4",
            "http_timeout": "5",
        }

    def test_precedence(self, tmp_path):
        path = tmp_path / "depresolve.yml"
        path.write_text("resolver:\n  max_workers: 3\n  http_retry_max: 5\n", encoding="utf-8")
        args = Namespace(
            CONFIG=str(path), REPOSITORIES=["./repo"], MAX_WORKERS=6, DEADLINE=None,
            EXCLUSION_SCOPE=None, BOM_CONFLICT_POLICY="last", CONFIG_SET=["max_workers=2"],
            USE_CENTRAL=True,
        )
        config = build_config(args)
        assert config.max_workers == 2
        assert config.http_retry_max == 5
        assert config.bom_conflict_policy == "last"
        assert config.repositories == ["./repo", Constants.REPOSITORY_URL_MAVEN_CENTRAL]


class TestArgs:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = parse_args(["pom.xml"])
        assert args.manifest == "pom.xml"
        assert args.REPOSITORIES == []
        assert args.OUTPUT_FORMAT is None
        assert args.LOG_LEVEL == "WARNING"

    def test_repeatable_flags(self):
        args = parse_args(["pom.xml", "-r", "a", "-r", "b", "--set", "x=1", "--set", "y=2", "-f", "CSV"])
        assert args.REPOSITORIES == ["a", "b"]
        assert args.CONFIG_SET == ["x=1", "y=2"]
        assert args.OUTPUT_FORMAT == "csv"

    def test_rejects_unknown_exclusion_scope(self):
        with pytest.raises(SystemExit):
            parse_args(["pom.xml", "--exclusion-scope", "sometimes"])


class TestMain:
    """Tests for the depresolve entry point."""

    def test_resolves_to_json_file(self, project, tmp_path):
        root, repo = project
        out = tmp_path / "out.json"
        assert main([root, "-r", repo, "-o", str(out), "-q"]) == ExitCodes.SUCCESS.value
        data = json.loads(out.read_text(encoding="utf-8"))
        versions = {d["artifact"]: d["version"] for d in data["dependencies"]}
        assert versions == {"A": "1", "B": "1", "C": "2"}

    def test_csv_inferred_from_extension(self, project, tmp_path):
        root, repo = project
        out = tmp_path / "out.csv"
        assert main([root, "-r", repo, "-o", str(out)]) == ExitCodes.SUCCESS.value
        assert out.read_text(encoding="utf-8").startswith('"group","artifact"')

    def test_json_on_stdout_by_default(self, project, capsys):
        root, repo = project
        assert main([root, "-r", repo]) == ExitCodes.SUCCESS.value
        assert json.loads(capsys.readouterr().out)["root"] == "g:root:1"

    def test_text_on_stdout(self, project, capsys):
        root, repo = project
        assert main([root, "-r", repo, "-f", "text"]) == ExitCodes.SUCCESS.value
        assert "Resolved dependencies of g:root:1" in capsys.readouterr().out

    def test_missing_root_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.yaml"), "-r", str(tmp_path)]) == ExitCodes.NOT_FOUND.value
        report = json.loads(capsys.readouterr().out)
        assert report["error"]["kind"] == "manifest_not_found"
        assert report["partial_graph"] is None

    def test_parse_error_exit_code(self, tmp_path):
        root = tmp_path / "pom.xml"
        root.write_text("<project>", encoding="utf-8")
        assert main([str(root), "-r", str(tmp_path)]) == ExitCodes.PARSE_ERROR.value

    def test_not_found_exit_code(self, tmp_path):
        root = write_root(tmp_path, {"coordinate": "g:root:1", "dependencies": ["g:gone:1"]})
        assert main([root, "-r", str(tmp_path)]) == ExitCodes.NOT_FOUND.value

    def test_unresolvable_exit_code(self, tmp_path):
        root = write_root(tmp_path, {"coordinate": "g:root:1", "dependencies": ["g:A"]})
        assert main([root, "-r", str(tmp_path)]) == ExitCodes.UNRESOLVABLE_VERSION.value

    def test_cycle_exit_code(self, tmp_path):
        repo = write_repo(tmp_path, {
            "g:A:1": {"coordinate": "g:A:1", "dependencies": ["g:B:1"]},
            "g:B:1": {"coordinate": "g:B:1", "dependencies": ["g:A:1"]},
        })
        root = write_root(tmp_path, {"coordinate": "g:root:1", "dependencies": ["g:A:1"]})
        assert main([root, "-r", repo]) == ExitCodes.CYCLE.value

    def test_unwritable_output(self, project, tmp_path):
        root, repo = project
        out = tmp_path / "missing-dir" / "out.json"
        assert main([root, "-r", repo, "-o", str(out)]) == ExitCodes.FILE_ERROR.value

    def test_cycle_between_direct_dependencies_exit_code(self, tmp_path):
        repo = write_repo(tmp_path, {
            "g:A:1": {"coordinate": "g:A:1", "dependencies": ["g:B:1"]},
            "g:B:1": {"coordinate": "g:B:1", "dependencies": ["g:A:1"]},
        })
        root = write_root(tmp_path, {"coordinate": "g:root:1", "dependencies": ["g:A:1", "g:B:1"]})
        assert main([root, "-r", repo, "-q"]) == ExitCodes.CYCLE.value


class TestFailureDiagnostics:
    """Tests for the diagnostics written when a run fails."""

    @pytest.fixture
    def missing_c(self, tmp_path):
        repo = write_repo(tmp_path, {
            "g:A:1": {"coordinate": "g:A:1", "dependencies": ["g:C:2"]},
            "g:B:1": {"coordinate": "g:B:1", "dependencies": ["g:C:1"]},
        })
        root = write_root(tmp_path, {"coordinate": "g:root:1", "dependencies": ["g:A:1", "g:B:1"]})
        return root, repo

    def test_json_on_stdout(self, missing_c, capsys):
        root, repo = missing_c
        assert main([root, "-r", repo]) == ExitCodes.NOT_FOUND.value
        report = json.loads(capsys.readouterr().out)
        assert report["status"] == "failed"
        assert report["error"]["path"] == ["g:root:1", "g:A:1", "g:C:2"]
        assert report["partial_graph"]["edges"] == 4
        assert report["conflicts"] == {"g:C": ["2", "1"]}

    def test_text_to_file(self, missing_c, tmp_path):
        root, repo = missing_c
        out = tmp_path / "failure.txt"
        assert main([root, "-r", repo, "-o", str(out)]) == ExitCodes.NOT_FOUND.value
        text = out.read_text(encoding="utf-8")
        assert text.startswith("Resolution failed (manifest_not_found)")
        assert "path: g:root:1 -> g:A:1 -> g:C:2" in text
        assert "g:C requested as 2, 1" in text

    def test_csv_on_stdout(self, missing_c, capsys):
        root, repo = missing_c
        assert main([root, "-r", repo, "-f", "csv"]) == ExitCodes.NOT_FOUND.value
        rows = list(csv.reader(io.StringIO(capsys.readouterr().out)))
        assert rows[0] == ["field", "value"]
        assert ["error.kind", "manifest_not_found"] in rows
        assert ["conflicts.g:C", "2;1"] in rows

    def test_quiet_keeps_stdout_empty(self, missing_c, capsys):
        root, repo = missing_c
        assert main([root, "-r", repo, "-q"]) == ExitCodes.NOT_FOUND.value
        assert capsys.readouterr().out == ""
