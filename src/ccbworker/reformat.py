# reformat.py
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable, List

from .errors import ReformatError

# ---------------------------------------------------------------------
# Stage-1 output (atlas model) -> stage-2 input (synspec fort.8)
# ---------------------------------------------------------------------
# synspec reads the model with a fixed-column parser, so the header line
# starting with TEFF must be re-spaced and the declared layer count of the
# stratified model (72) must be lowered to the 64 layers synspec expects.

_WHITESPACE = re.compile(r"\s+")

DECK_LINE = "READ DECK6 72"
DECK_REPLACEMENT = "READ DECK6 64"


def recreate_vars_line(fields: List[str]) -> str:
    """Re-emit the TEFF header line with the spacing synspec can parse."""
    if len(fields) < 5:
        raise ReformatError("TEFF line has fewer than 5 fields", details={"line": " ".join(fields)})
    if len(fields[1]) == 6:
        # 2 spaces, 1 space, 2 spaces, 3 spaces
        return "%s  %s %s  %s   %s" % tuple(fields[:5])
    # 1 space, 1 space, 2 spaces, 3 spaces
    return "%s %s %s  %s   %s" % tuple(fields[:5])


def reformat_line(line: str) -> str:
    line = _WHITESPACE.sub(" ", line)
    if line.startswith("TEFF"):
        return recreate_vars_line(line.split(" "))
    if DECK_LINE in line:
        return line.replace(DECK_LINE, DECK_REPLACEMENT)
    return line


def reformat_lines(lines: Iterable[str]) -> str:
    return "".join(reformat_line(line.rstrip("\r\n")) + "\n" for line in lines)


def _raise_walk_error(err: OSError) -> None:
    raise err


def find_stage1_outputs(job_dir: Path, prefix: str) -> List[Path]:
    """Every file under `job_dir` (recursively) whose name starts with `prefix`."""
    if not job_dir.is_dir():
        raise ReformatError("error while walking to path", details={"path": job_dir})
    matches: List[Path] = []
    try:
        for dirpath, dirnames, filenames in os.walk(job_dir, onerror=_raise_walk_error):
            dirnames.sort()
            matches.extend(Path(dirpath) / name for name in sorted(filenames) if name.startswith(prefix))
    except OSError as e:
        raise ReformatError("error while walking to path", details={"path": job_dir, "error": e}) from e
    return matches


def generate_synspec_input(job_dir: Path, prefix: str) -> bytes:
    """
    Build the contents of synspec's model input from the atlas output(s).

    All files matching `prefix` are concatenated in path order. An empty
    result (no matching file) is not an error here; synspec will complain.

    Raises:
        ReformatError: if the walk fails or a matching file cannot be read.
    """
    contents: List[str] = []
    for path in find_stage1_outputs(job_dir, prefix):
        try:
            with path.open("r", encoding="utf-8", errors="replace", newline="") as f:
                contents.append(reformat_lines(f))
        except OSError as e:
            raise ReformatError(f"could not read {str(path)!r}", details={"error": e}) from e
    return "".join(contents).encode("utf-8")
