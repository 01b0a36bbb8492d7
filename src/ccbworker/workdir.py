# workdir.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Tuple

from .errors import SetupError


@dataclass
class LinkReport:
    """What link_tree() did. Failed links are reported, never raised."""
    linked: List[Path] = field(default_factory=list)
    existing: List[Path] = field(default_factory=list)
    failed: List[Tuple[Path, str]] = field(default_factory=list)


def ensure_job_dir(root: str | Path, name: str) -> Path:
    """Create (or reuse) the working directory of job `name` under `root`."""
    path = Path(root) / name
    try:
        path.mkdir(parents=True, exist_ok=True)
    except (OSError, ValueError) as e:
        raise SetupError("couldn't create directory", job=name, details={"path": path, "error": e}) from e
    return path


def _raise_walk_error(err: OSError) -> None:
    raise err


def _iter_files(source: Path) -> Iterable[Path]:
    # deterministic traversal, symlinked directories are not followed
    if not source.is_dir():
        raise FileNotFoundError(f"source tree not found: {source}")
    for dirpath, dirnames, filenames in os.walk(source, onerror=_raise_walk_error):
        dirnames.sort()
        for name in sorted(filenames):
            yield Path(dirpath) / name


def link_tree(sources: Iterable[str | Path], dest: Path) -> LinkReport:
    """
    Symlink every file found recursively under each of `sources` into `dest`.

    Links are flat: a file `a/b/c.dat` becomes `dest/c.dat`. Existing entries
    in `dest` are left alone, so re-preparing a resumed job is a no-op.

    Raises:
        SetupError: if walking one of the source trees fails.
    """
    report = LinkReport()
    for source in sources:
        source = Path(source)
        try:
            for path in _iter_files(source):
                target = dest / path.name
                try:
                    os.symlink(path, target)
                except FileExistsError:
                    report.existing.append(target)
                except OSError as e:
                    report.failed.append((target, e.strerror or str(e)))
                else:
                    report.linked.append(target)
        except OSError as e:
            raise SetupError("error while walking to path", details={"path": source, "error": e}) from e
    return report
