# =============================================================================
# Variable Expansion ($NAME, ${NAME}, ${NAME:-fallback}, $$)
# =============================================================================

import os
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from .errors import ParseError

# Alternatives are tried in order at each "$", so "$$" always wins over a
# reference that starts right after it.
_REFERENCE_PATTERN = re.compile(
    r"""
    \$\$                                            # escaped dollar
    | \$\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*|[0-9]+)
          (?::-(?P<fallback>[^}]*))?\}              # ${NAME} / ${NAME:-fallback}
    | \$(?P<bare>[A-Za-z_][A-Za-z0-9_]*|[0-9]+)     # $NAME / $1
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class VariableContext:
    """
    Read-only name -> value mapping used to expand a document.

    Built once per compilation from the process environment plus the
    positional arguments given at invocation ("1", "2", ...).
    """

    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def from_environment(
        cls,
        args: Sequence[str] = (),
        environ: Mapping[str, str] | None = None,
    ) -> "VariableContext":
        """
        Args:
            args: Positional arguments, exposed as $1, $2, ...
            environ: Environment to read, defaults to os.environ

        Returns:
            VariableContext where positional arguments shadow same-named
            environment entries
        """
        values = dict(os.environ if environ is None else environ)
        for position, arg in enumerate(args, start=1):
            values[str(position)] = str(arg)
        return cls(values)

    def get(self, name: str) -> str | None:
        return self.values.get(name)


def expand(text: str, context: VariableContext) -> str:
    """
    Expand variable references in a single string.

    One left-to-right pass: substituted text is never scanned again, and
    fallbacks are inserted verbatim. Undefined references become "".
    """
    if "$" not in text:
        return text

    def substitute(match: re.Match) -> str:
        if match.group(0) == "$$":
            return "$"

        name = match.group("braced") or match.group("bare")
        value = context.get(name)

        if match.group("fallback") is not None and not value:
            return match.group("fallback")
        return value or ""

    return _REFERENCE_PATTERN.sub(substitute, text)


def expand_tree(node, context: VariableContext):
    """
    Expand every string leaf of a raw document tree, mapping keys included.

    Non-string scalars are returned unchanged, and the shape of the tree is
    preserved (dict order included).

    Raises:
        ParseError: Two keys of one mapping expand to the same string
    """
    if isinstance(node, str):
        return expand(node, context)
    if isinstance(node, Mapping):
        expanded = {}
        originals = {}
        for key, value in node.items():
            new_key = expand_tree(key, context)
            if new_key in expanded:
                raise ParseError(
                    f"keys {originals[new_key]!r} and {key!r} both expand to {new_key!r}",
                    context={"key": str(new_key)}
                )
            originals[new_key] = key
            expanded[new_key] = expand_tree(value, context)
        return expanded
    if isinstance(node, (list, tuple)):
        return [expand_tree(item, context) for item in node]
    return node
