# templates.py
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Mapping

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from .errors import TemplateError

TEFF_VAR = "Teff"
LOGG_VAR = "LogG"

# Input templates for the legacy tools reference parameters as {{.Teff}}.
_FIELD_REF = re.compile(r"\{\{(-?)\s*\.([A-Za-z_][A-Za-z0-9_]*)\s*(-?)\}\}")

# Jinja only sees the translated field references: its delimiters are moved
# to strings that never occur in tool input, so literal {% and {# in the surrounding
# text are not template syntax.
_VAR_START, _VAR_END = "\x01{{", "}}\x01"

_jinja_environment = Environment(
    loader=BaseLoader(),
    variable_start_string=_VAR_START,
    variable_end_string=_VAR_END,
    block_start_string="\x01{%",
    block_end_string="%}\x01",
    comment_start_string="\x01{#",
    comment_end_string="#}\x01",
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)


def _to_jinja(text: str) -> str:
    stripped = _FIELD_REF.sub("", text)
    stray = stripped.find("{{")
    if stray != -1:
        # anything but {{.Name}} is an action we do not support
        line = stripped.count("\n", 0, stray) + 1
        raise TemplateError(
            "error while parsing the template's data",
            details={"line": line, "error": "only {{.Name}} field references are supported"},
        )
    return _FIELD_REF.sub(
        lambda m: "%s%s %s %s%s" % (_VAR_START, m.group(1), m.group(2), m.group(3), _VAR_END), text
    )


def render(template_text: str, variables: Mapping[str, str]) -> bytes:
    """
    Substitute pre-formatted values into a template.

    Only textual substitution happens here; the caller decides precision.

    Raises:
        TemplateError: if the template does not parse or references a
            variable missing from `variables`.
    """
    try:
        template = _jinja_environment.from_string(_to_jinja(template_text))
    except TemplateSyntaxError as e:
        raise TemplateError(
            "error while parsing the template's data",
            details={"line": e.lineno, "error": e.message},
        ) from e

    try:
        return template.render(dict(variables)).encode("utf-8")
    except UndefinedError as e:
        raise TemplateError("error while executing the template", details={"error": e.message}) from e


def model_input_vars(teff: float, logg: float) -> Dict[str, str]:
    """Stage-1 (atlas) model input: Teff to 1 decimal, LogG to 2."""
    return {TEFF_VAR: f"{teff:.1f}", LOGG_VAR: f"{logg:.2f}"}


def runtime_input_vars(teff: float, logg: float) -> Dict[str, str]:
    """Stage-2 (synspec) runtime input: both to 4 decimals."""
    return {TEFF_VAR: f"{teff:.4f}", LOGG_VAR: f"{logg:.4f}"}


def render_file(template_path: Path, variables: Mapping[str, str]) -> bytes:
    try:
        text = template_path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(f"could not read template {str(template_path)!r}", details={"error": e}) from e
    return render(text, variables)


def write_rendered(template_path: Path, variables: Mapping[str, str], *out_paths: Path) -> bytes:
    """Render `template_path` once and write the same bytes to every path in `out_paths`."""
    contents = render_file(template_path, variables)
    for out in out_paths:
        try:
            out.write_bytes(contents)
        except OSError as e:
            raise TemplateError(f"couldn't generate the new input file {str(out)!r}", details={"error": e}) from e
    return contents
