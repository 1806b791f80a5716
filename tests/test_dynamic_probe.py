"""Tests for the dynamic node probe (node subprocess mocked)."""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from n8n_registry.errors import ExtractionError
from n8n_registry.resolver.dynamic import (
    RESULT_MARKER,
    NodeProbe,
    parse_probe_output,
    resolve_description_version,
)


def _completed(payload, noise: str = "") -> subprocess.CompletedProcess:
    stdout = noise + "\n" + RESULT_MARKER + json.dumps(payload) + "\n"
    return subprocess.CompletedProcess(args=["node"], returncode=0, stdout=stdout, stderr="")


class TestResolveDescriptionVersion:
    """Tests for picking the version out of a description."""

    def test_default_version_preferred(self):
        assert resolve_description_version({"defaultVersion": 4.4, "version": [4, 4.1]}) == 4.4

    def test_version_array_max(self):
        assert resolve_description_version({"defaultVersion": None, "version": [1, 3, 2]}) == 3

    def test_scalar_version(self):
        assert resolve_description_version({"version": 2}) == 2

    def test_no_version(self):
        assert resolve_description_version({"defaultVersion": None, "version": None}) is None

    def test_invalid_values_ignored(self):
        assert resolve_description_version({"defaultVersion": "abc", "version": -1}) is None


class TestParseProbeOutput:
    """Tests for reading the marked result line."""

    def test_ignores_module_noise(self):
        stdout = "loading...\n{\"not\": \"it\"}\n" + RESULT_MARKER + '{"name": "slack"}\n'

        assert parse_probe_output(stdout) == {"name": "slack"}

    def test_no_marker(self):
        with pytest.raises(ExtractionError):
            parse_probe_output("nothing useful")

    def test_garbled_marker(self):
        with pytest.raises(ExtractionError):
            parse_probe_output(RESULT_MARKER + "{oops")


class TestNodeProbe:
    """Tests for NodeProbe.probe."""

    @pytest.fixture
    def probe(self, tmp_path):
        with patch("n8n_registry.resolver.dynamic.shutil.which", return_value="/usr/bin/node"):
            yield NodeProbe(node_modules=tmp_path / "node_modules", timeout=5)

    @patch("n8n_registry.resolver.dynamic.subprocess.run")
    def test_probe_success(self, mock_run, probe, tmp_path):
        """A named description yields name and defaultVersion."""
        mock_run.return_value = _completed(
            {"name": "slack", "defaultVersion": 2.2, "version": [2, 2.1, 2.2]},
            noise="Some module printed this",
        )
        target = tmp_path / "Slack.node.js"

        found = probe.probe(target)

        assert found.name == "slack"
        assert found.version == 2.2

        call = mock_run.call_args
        assert call[0][0][0] == "/usr/bin/node"
        assert call[1]["env"]["N8N_REGISTRY_PROBE_TARGET"] == str(target)
        assert call[1]["env"]["NODE_PATH"] == str(tmp_path / "node_modules")
        assert call[1]["timeout"] == 5

    @patch("n8n_registry.resolver.dynamic.subprocess.run")
    def test_probe_without_version_returns_none(self, mock_run, probe, tmp_path):
        mock_run.return_value = _completed({"name": "slack", "defaultVersion": None, "version": None})

        assert probe.probe(tmp_path / "Slack.node.js") is None

    @patch("n8n_registry.resolver.dynamic.subprocess.run")
    def test_module_error_raises(self, mock_run, probe, tmp_path):
        mock_run.return_value = _completed({"error": "Cannot find module 'n8n-workflow'"})

        with pytest.raises(ExtractionError, match="n8n-workflow"):
            probe.probe(tmp_path / "Broken.node.js")

    @patch("n8n_registry.resolver.dynamic.subprocess.run")
    def test_timeout_raises(self, mock_run, probe, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="node", timeout=5)

        with pytest.raises(ExtractionError, match="timed out"):
            probe.probe(tmp_path / "Slow.node.js")

    @patch("n8n_registry.resolver.dynamic.subprocess.run")
    def test_empty_name_raises(self, mock_run, probe, tmp_path):
        mock_run.return_value = _completed({"name": "", "defaultVersion": 1})

        with pytest.raises(ExtractionError):
            probe.probe(tmp_path / "Odd.node.js")

    def test_unavailable_node(self, tmp_path):
        with patch("n8n_registry.resolver.dynamic.shutil.which", return_value=None):
            probe = NodeProbe(node_executable="no-such-node")

        assert probe.available is False
        with pytest.raises(ExtractionError, match="not found"):
            probe.probe(Path(tmp_path / "Any.node.js"))
