"""Tests for the version resolver."""

import logging
from pathlib import Path
from typing import Dict, Union

import pytest

from n8n_registry.errors import ExtractionError
from n8n_registry.installer import PackageStage
from n8n_registry.models import ExtractionStrategy, PackageScanStats, VersionOverride
from n8n_registry.resolver import PackageScanResult, VersionResolver, read_node_manifest
from n8n_registry.resolver.dynamic import DynamicExtraction

from conftest import node_source, write_package


BASE = "n8n-nodes-base"
LANGCHAIN = "@n8n/n8n-nodes-langchain"


class FakeProbe:
    """Probe answering from a file-name keyed table."""

    available = True

    def __init__(self, answers: Dict[str, Union[DynamicExtraction, Exception, None]]):
        self.answers = answers
        self.calls = []

    def probe(self, path: Path):
        self.calls.append(Path(path).name)
        answer = self.answers.get(Path(path).name, ExtractionError("not loadable"))
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def node_modules(tmp_path):
    return tmp_path / "node_modules"


class TestReadManifest:
    """Tests for reading n8n.nodes from package.json."""

    def test_lists_nodes(self, node_modules):
        pkg = write_package(node_modules, BASE, {"dist/nodes/A.node.js": "", "dist/nodes/B.node.js": ""})

        assert read_node_manifest(pkg) == ["dist/nodes/A.node.js", "dist/nodes/B.node.js"]

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(ExtractionError):
            read_node_manifest(tmp_path)

    def test_manifest_without_n8n_section(self, tmp_path):
        (tmp_path / "package.json").write_text('{"name": "x"}')

        assert read_node_manifest(tmp_path) == []


class TestScanPackage:
    """Tests for VersionResolver.scan_package."""

    def test_dynamic_result_used(self, node_modules):
        pkg = write_package(node_modules, BASE, {"Slack.node.js": node_source("slack", "version: 2,")})
        probe = FakeProbe({"Slack.node.js": DynamicExtraction(name="slack", version=2.2)})

        result = VersionResolver(probe=probe).scan_package(BASE, pkg)

        assert result.overrides.get("n8n-nodes-base.slack") == 2.2
        assert result.stats.dynamic == 1
        assert result.stats.static == 0

    def test_static_fallback_when_dynamic_fails(self, node_modules):
        pkg = write_package(
            node_modules, BASE,
            {"Http.node.js": node_source("httpRequest", "version: [3, 4, 4.1],\n defaultVersion: 4.2,")},
        )
        probe = FakeProbe({"Http.node.js": ExtractionError("ESM module")})

        result = VersionResolver(probe=probe).scan_package(BASE, pkg)

        assert result.overrides.get("n8n-nodes-base.httpRequest") == 4.2
        assert result.stats.static == 1
        assert probe.calls == ["Http.node.js"]

    def test_static_fallback_when_dynamic_finds_no_version(self, node_modules):
        pkg = write_package(node_modules, BASE, {"If.node.js": node_source("if", "version: 2,")})
        probe = FakeProbe({"If.node.js": None})

        result = VersionResolver(probe=probe).scan_package(BASE, pkg)

        assert result.overrides.get("n8n-nodes-base.if") == 2
        assert result.stats.static == 1

    def test_unresolvable_file_counted(self, node_modules):
        pkg = write_package(
            node_modules, BASE,
            {
                "Good.node.js": node_source("good", "version: 1,"),
                "Bad.node.js": "module.exports = {};",
            },
            manifest_nodes=["Good.node.js", "Bad.node.js", "Missing.node.js"],
        )

        result = VersionResolver(probe=None).scan_package(BASE, pkg)

        assert len(result.overrides) == 1
        assert result.stats.files == 3
        assert result.stats.resolved == 1
        assert result.stats.failed == 2

    def test_first_file_wins_within_package(self, node_modules):
        pkg = write_package(
            node_modules, BASE,
            {
                "v1/Merge.node.js": node_source("merge", "version: 3,"),
                "v2/Merge.node.js": node_source("merge", "version: 1,"),
            },
        )

        result = VersionResolver(probe=None, workers=4).scan_package(BASE, pkg)

        assert result.overrides.get("n8n-nodes-base.merge") == 3
        assert result.stats.resolved == 1

    def test_empty_manifest_is_not_a_failure(self, node_modules):
        pkg = write_package(node_modules, BASE, {})

        result = VersionResolver(probe=None).scan_package(BASE, pkg)

        assert len(result.overrides) == 0
        assert result.stats.failed == 0
        assert result.stats.error is None

    def test_broken_manifest_recorded(self, tmp_path):
        (tmp_path / "package.json").write_text("{not json")

        result = VersionResolver(probe=None).scan_package(BASE, tmp_path)

        assert len(result.overrides) == 0
        assert "manifest" in result.stats.error

    def test_unavailable_probe_means_static_only(self, node_modules):
        class Missing(FakeProbe):
            available = False

        pkg = write_package(node_modules, BASE, {"Set.node.js": node_source("set", "defaultVersion: 3.4,")})
        probe = Missing({})

        result = VersionResolver(probe=probe).scan_package(BASE, pkg)

        assert probe.calls == []
        assert result.overrides.get("n8n-nodes-base.set") == 3.4


class TestResolve:
    """Tests for resolving several packages."""

    def test_packages_merged_with_prefixes(self, node_modules):
        base = write_package(node_modules, BASE, {"Slack.node.js": node_source("slack", "defaultVersion: 2.2,")})
        lc = write_package(node_modules, LANGCHAIN, {"Agent.node.js": node_source("agent", "defaultVersion: 1.9,")})
        stage = PackageStage(node_modules=node_modules, package_dirs={BASE: base, LANGCHAIN: lc})

        overrides, stats = VersionResolver(probe=None).resolve([BASE, LANGCHAIN], stage)

        assert overrides.as_dict() == {
            "@n8n/n8n-nodes-langchain.agent": 1.9,
            "n8n-nodes-base.slack": 2.2,
        }
        assert [s.package for s in stats] == [BASE, LANGCHAIN]
        assert overrides.count_by_strategy() == {
            ExtractionStrategy.DYNAMIC.value: 0,
            ExtractionStrategy.STATIC.value: 2,
        }

    def test_missing_package_contributes_nothing(self, node_modules):
        base = write_package(node_modules, BASE, {"Slack.node.js": node_source("slack", "version: 2,")})
        stage = PackageStage(
            node_modules=node_modules,
            package_dirs={BASE: base},
            failures={LANGCHAIN: "npm install failed"},
        )

        overrides, stats = VersionResolver(probe=None).resolve([BASE, LANGCHAIN], stage)

        assert len(overrides) == 1
        assert stats[1].error == "npm install failed"

    def test_nothing_installed_yields_empty_map(self, node_modules):
        stage = PackageStage(node_modules=node_modules, failures={BASE: "npm not found"})

        overrides, stats = VersionResolver(probe=None).resolve([BASE], stage)

        assert len(overrides) == 0
        assert stats[0].error == "npm not found"

    def test_downgrade_across_scans_refused_and_logged(self, node_modules, caplog):
        """A later scan never lowers an already-resolved version."""
        scans = iter([
            {"n8n-nodes-base.merge": (3.2, "v3/Merge.node.js")},
            {"n8n-nodes-base.merge": (2, "v2/Merge.node.js")},
        ])

        class CannedResolver(VersionResolver):
            def scan_package(self, package, package_dir):
                result = PackageScanResult(stats=PackageScanStats(package=package))
                for identifier, (version, source) in next(scans).items():
                    result.overrides.add(identifier, VersionOverride(
                        version=version, strategy=ExtractionStrategy.STATIC, source_file=source,
                    ))
                return result

        stage = PackageStage(
            node_modules=node_modules,
            package_dirs={BASE: node_modules / BASE, "n8n-nodes-base-legacy": node_modules / "legacy"},
        )

        with caplog.at_level(logging.WARNING):
            overrides, _ = CannedResolver(probe=None).resolve([BASE, "n8n-nodes-base-legacy"], stage)

        assert overrides.get("n8n-nodes-base.merge") == 3.2
        assert "v2/Merge.node.js" in caplog.text
        assert "v3/Merge.node.js" in caplog.text
