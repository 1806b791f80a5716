"""
Package Stage - Materialize the plugin packages the resolver scans.

By default the packages are npm-installed (scripts disabled) into a fresh
temporary directory that is deleted on every exit path. When an existing
node_modules is configured it is used as-is and left untouched.

Installation problems never abort a refresh: affected packages are recorded
as failures and contribute no version overrides.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .errors import PackageInstallError


logger = logging.getLogger(__name__)

TEMP_PREFIX = "n8n-registry-"


@dataclass
class PackageStage:
    """Installed packages available for scanning."""

    node_modules: Path
    package_dirs: Dict[str, Path] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    def package_dir(self, package: str) -> Optional[Path]:
        return self.package_dirs.get(package)


def package_path(node_modules: Path, package: str) -> Path:
    """Directory of a (possibly scoped) package inside node_modules."""
    return node_modules.joinpath(*package.split("/"))


def _run_npm(
    npm_executable: str,
    args: List[str],
    cwd: Path,
    timeout: int,
) -> subprocess.CompletedProcess:
    cmd = [npm_executable, *args]
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise PackageInstallError(f"npm executable not found: {npm_executable}") from e
    except subprocess.TimeoutExpired as e:
        raise PackageInstallError(f"'{' '.join(cmd)}' timed out after {timeout}s") from e

    if result.returncode != 0:
        tail = (result.stderr or result.stdout or "").strip().splitlines()[-5:]
        raise PackageInstallError(
            f"'{' '.join(cmd)}' exited with {result.returncode}: {' | '.join(tail)}"
        )
    return result


def install_packages(
    target_dir: Path,
    packages: Sequence[str],
    npm_executable: str = "npm",
    timeout: int = 600,
) -> None:
    """
    npm-install packages into target_dir without running their scripts.

    Raises:
        PackageInstallError: If npm is missing, fails or times out
    """
    _run_npm(npm_executable, ["init", "-y"], target_dir, timeout)
    result = _run_npm(
        npm_executable,
        ["install", *packages, "--ignore-scripts", "--no-audit", "--no-fund"],
        target_dir,
        timeout,
    )
    summary = (result.stdout or "").strip().splitlines()
    if summary:
        logger.info("npm: %s", summary[-1])


def locate_packages(node_modules: Path, packages: Sequence[str], stage: PackageStage) -> None:
    """Record the directory of every package that has a manifest on disk."""
    for package in packages:
        if package in stage.failures:
            continue
        pkg_dir = package_path(node_modules, package)
        if (pkg_dir / "package.json").is_file():
            stage.package_dirs[package] = pkg_dir
        else:
            stage.failures[package] = f"not installed under {node_modules}"


@contextmanager
def staged_packages(
    packages: Sequence[str],
    npm_executable: str = "npm",
    install_timeout: int = 600,
    packages_dir: Optional[Path] = None,
) -> Iterator[PackageStage]:
    """
    Provide installed plugin packages for the duration of a run.

    Args:
        packages: npm package names, in scan order
        npm_executable: npm binary used for the temporary install
        install_timeout: Seconds allowed for each npm invocation
        packages_dir: Existing node_modules to use instead of installing

    Yields:
        PackageStage with located package directories and failures
    """
    if packages_dir is not None:
        stage = PackageStage(node_modules=Path(packages_dir))
        locate_packages(stage.node_modules, packages, stage)
        _log_failures(stage)
        yield stage
        return

    temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX))
    try:
        stage = PackageStage(node_modules=temp_dir / "node_modules")
        logger.info("Installing %s into %s", ", ".join(packages), temp_dir)
        try:
            install_packages(temp_dir, packages, npm_executable, install_timeout)
        except PackageInstallError as e:
            logger.error("Package install failed: %s", e)
            for package in packages:
                stage.failures[package] = str(e)
        locate_packages(stage.node_modules, packages, stage)
        _log_failures(stage)
        yield stage
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
        logger.debug("Removed %s", temp_dir)


def _log_failures(stage: PackageStage) -> None:
    for package, reason in stage.failures.items():
        logger.warning("Package %s unavailable, no overrides: %s", package, reason)
