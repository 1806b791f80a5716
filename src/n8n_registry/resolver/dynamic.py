"""
Dynamic version extraction by loading a node module in Node.js.

Each file is probed in its own short-lived `node` process so that a module
that throws, hangs, prints, or mutates globals cannot affect other probes
or this process. The probe script silences console output, requires the
file, instantiates each exported class until one exposes a `description`
with a non-empty `name`, and writes a single marked JSON line to stdout.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ExtractionError
from ..models import Version, coerce_version, max_version


logger = logging.getLogger(__name__)

RESULT_MARKER = "__N8N_REGISTRY_PROBE__"

PROBE_SCRIPT = r"""
const marker = '__N8N_REGISTRY_PROBE__';
const fs = require('fs');
const emit = (payload) => { fs.writeSync(1, '\n' + marker + JSON.stringify(payload) + '\n'); process.exit(0); };
for (const level of ['log', 'info', 'warn', 'error', 'debug', 'trace']) console[level] = () => {};
try {
  const mod = require(process.env.N8N_REGISTRY_PROBE_TARGET);
  for (const key of Object.keys(mod)) {
    const candidate = mod[key];
    if (typeof candidate !== 'function') continue;
    let description;
    try { description = new candidate().description; } catch (e) { continue; }
    if (description && description.name) {
      emit({
        name: description.name,
        defaultVersion: description.defaultVersion === undefined ? null : description.defaultVersion,
        version: description.version === undefined ? null : description.version,
      });
    }
  }
  emit({ error: 'no exported class exposes a named description' });
} catch (e) {
  emit({ error: String((e && e.message) || e) });
}
"""


@dataclass(frozen=True)
class DynamicExtraction:
    """Node name and version read from an instantiated node class."""

    name: str
    version: Version


def resolve_description_version(description: Dict[str, Any]) -> Optional[Version]:
    """`defaultVersion` if declared, else the highest of `version`."""
    default = coerce_version(description.get("defaultVersion"))
    if default is not None:
        return default
    return max_version(description.get("version"))


def parse_probe_output(stdout: str) -> Dict[str, Any]:
    """Return the payload of the last marked line in probe output."""
    for line in reversed(stdout.splitlines()):
        if line.startswith(RESULT_MARKER):
            try:
                payload = json.loads(line[len(RESULT_MARKER):])
            except json.JSONDecodeError as e:
                raise ExtractionError(f"Unreadable probe result: {e}") from e
            if isinstance(payload, dict):
                return payload
    raise ExtractionError("Probe produced no result")


class NodeProbe:
    """
    Loads node files with `node` and reads their description.

    Usage:
        probe = NodeProbe(node_modules=Path("/tmp/x/node_modules"))
        if probe.available:
            found = probe.probe(Path(".../Slack.node.js"))
    """

    def __init__(
        self,
        node_modules: Optional[Path] = None,
        node_executable: str = "node",
        timeout: int = 20,
    ):
        self.node_modules = node_modules
        self.node_executable = node_executable
        self.timeout = timeout
        self._resolved_executable = shutil.which(node_executable)

    @property
    def available(self) -> bool:
        """True if the node executable can be found."""
        return self._resolved_executable is not None

    def _environment(self, path: Path) -> Dict[str, str]:
        env = dict(os.environ)
        env["N8N_REGISTRY_PROBE_TARGET"] = str(path)
        if self.node_modules is not None:
            env["NODE_PATH"] = str(self.node_modules)
        return env

    def probe(self, path: Path) -> Optional[DynamicExtraction]:
        """
        Load a node file and read its name and version.

        Returns:
            DynamicExtraction, or None if the description declares no version

        Raises:
            ExtractionError: If node is unavailable, the module fails to load,
                or no exported class exposes a named description
        """
        if not self.available:
            raise ExtractionError(f"node executable not found: {self.node_executable}")

        try:
            result = subprocess.run(
                [self._resolved_executable, "-e", PROBE_SCRIPT],
                cwd=str(Path(path).parent),
                env=self._environment(path),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExtractionError(f"Probe timed out after {self.timeout}s", path=str(path)) from e
        except OSError as e:
            raise ExtractionError(f"Probe could not start: {e}", path=str(path)) from e

        payload = parse_probe_output(result.stdout or "")
        if payload.get("error"):
            raise ExtractionError(str(payload["error"]), path=str(path))

        name = payload.get("name")
        if not isinstance(name, str) or not name:
            raise ExtractionError("Probe returned no node name", path=str(path))

        version = resolve_description_version(payload)
        if version is None:
            return None
        return DynamicExtraction(name=name, version=version)
