"""
Binds named placeholders in a template shell.

Shells use `{{name}}` or `{{{name}}}` tokens. Substitution is a single,
non-recursive textual pass: inserted values are never scanned again and are
inserted verbatim (whoever produces a value escapes it for its target).
"""
import logging
import re
from typing import Mapping

from ..resources.loader import load_template
from ..utils.errors import UnboundPlaceholderError


log = logging.getLogger("bookpress")

# Triple braces first, so '{{{x}}}' is never read as '{' + '{{x}}' + '}'
PLACEHOLDER_RE = re.compile(r'\{\{\{\s*([\w.-]+)\s*\}\}\}|\{\{\s*([\w.-]+)\s*\}\}')


def placeholders(shell: str) -> list[str]:
    """Returns placeholder names in order of first appearance."""
    names: list[str] = []
    for match in PLACEHOLDER_RE.finditer(shell):
        name = match.group(1) or match.group(2)
        if name not in names:
            names.append(name)
    return names


def bind(shell: str, context: Mapping[str, str], strict: bool = False) -> str:
    """
    Replaces every placeholder token in `shell` with its value from `context`.

    Permissive mode leaves unknown tokens as literal text. Strict mode raises
    UnboundPlaceholderError naming all missing placeholders, before any substitution.
    """
    missing = [name for name in placeholders(shell) if name not in context]
    if missing:
        if strict:
            raise UnboundPlaceholderError(missing)
        log.debug(f"Leaving unbound placeholders as text: {', '.join(missing)}")

    def substitute(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        if name not in context:
            return match.group(0)
        return str(context[name])

    return PLACEHOLDER_RE.sub(substitute, shell)


def bind_resource(filename: str, context: Mapping[str, str], strict: bool = False) -> str:
    """Loads a packaged template shell and binds it."""
    shell = load_template(filename)
    if shell is None:
        raise FileNotFoundError(f"Template shell '{filename}' is missing from the package.")
    return bind(shell, context, strict)
