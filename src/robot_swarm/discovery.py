"""Suite discovery."""

from __future__ import annotations

from pathlib import Path

from robot_swarm.errors import InvalidTargetError
from robot_swarm.models import Suite

SUITE_SUFFIX = ".robot"


def suite_from_file(path: Path, root: Path | None = None) -> Suite:
    """Build a Suite for one file.

    The suite name is the POSIX path relative to ``root`` without its
    suffix, e.g. ``settings/wifi``. It is unique among the files of one
    discovery root.

    Args:
        path: Suite file.
        root: Discovery root. Defaults to the file's own directory.
    """
    root = root if root is not None else path.parent
    relative = path.relative_to(root).with_suffix("")
    return Suite(path=path, name=relative.as_posix(), display_name=path.stem)


def discover_suites(target: str | Path) -> list[Suite]:
    """Enumerate suites from a directory or a single suite file.

    Directories are searched recursively; files are ordered lexically by
    their relative path.

    Args:
        target: Suite directory or suite file.

    Returns:
        Suites in execution order.

    Raises:
        InvalidTargetError: If the target doesn't exist or two suites
            share a name.
    """
    target = Path(target)
    if target.is_file():
        return [suite_from_file(target)]
    if not target.is_dir():
        raise InvalidTargetError(f"Target is neither a directory nor a file: {target}")

    files = sorted(
        (p for p in target.rglob(f"*{SUITE_SUFFIX}") if p.is_file()),
        key=lambda p: p.relative_to(target).as_posix(),
    )
    suites = [suite_from_file(p, target) for p in files]

    seen: dict[str, Path] = {}
    for suite in suites:
        if suite.name in seen:
            raise InvalidTargetError(
                f"Suites {seen[suite.name]} and {suite.path} share the name '{suite.name}'"
            )
        seen[suite.name] = suite.path
    return suites
