from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .errors import AmbiguousFingerprintError, FingerprintNotFoundError
from .model import IncrementalMode, Instance

log = logging.getLogger(__name__)

FINGERPRINT_DIR = ".fingerprint"
BUILD_SCRIPT_DIR = "build"
INCREMENTAL_DIR = "incremental"


def entry_prefix(name: str) -> str | None:
    """Name without its trailing ``-<hash>`` component."""
    idx = name.rfind("-")
    if idx <= 0:
        return None
    return name[:idx]


def matching_entries(directory: Path, name: str) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.iterdir() if entry_prefix(path.name) == name)


def find_entry(directory: Path, name: str, exclude: set[str] | None = None) -> Path:
    exclude = exclude or set()
    matches = [path for path in matching_entries(directory, name) if path.name not in exclude]
    if not matches:
        raise FingerprintNotFoundError(f"didn't find cache entry for `{name}` in {directory}")
    if len(matches) > 1:
        found = ", ".join(path.name for path in matches)
        raise AmbiguousFingerprintError(f"multiple cache entries for `{name}` in {directory}: {found}")
    return matches[0]


def build_script_entries(profile_dir: Path, name: str) -> set[str]:
    # A build script's fingerprint shares the package name and the hash of its build/ directory.
    return {path.name for path in matching_entries(profile_dir / BUILD_SCRIPT_DIR, name)}


def remove_fingerprint(profile_dir: Path, package: str) -> Path:
    entry = find_entry(
        profile_dir / FINGERPRINT_DIR,
        package,
        exclude=build_script_entries(profile_dir, package),
    )
    log.debug("removing fingerprint %s", entry)
    shutil.rmtree(entry)
    return entry


def remove_incremental_cache(profile_dir: Path, crate_name: str) -> Path:
    entry = find_entry(
        profile_dir / INCREMENTAL_DIR,
        crate_name,
        exclude=build_script_entries(profile_dir, crate_name),
    )
    log.debug("removing incremental cache %s", entry)
    shutil.rmtree(entry)
    return entry


def invalidate(instance: Instance, session_dir: Path) -> None:
    """Make the next cargo run recompile the benchmark crate.

    ``Initial`` also drops the incremental cache so the run rebuilds it from
    scratch; ``Unchanged`` keeps it so the compiler does no-op incremental work.
    """
    profile_dir = instance.profile_dir(session_dir)
    benchmark = instance.config.benchmark
    remove_fingerprint(profile_dir, benchmark.package)
    if instance.config.incremental is IncrementalMode.INITIAL:
        remove_incremental_cache(profile_dir, benchmark.crate_name)
