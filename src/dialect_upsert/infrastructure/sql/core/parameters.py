"""
SQL parameter binding utilities.

Generated statements use ``?`` positional placeholders. SQLAlchemy ``text()``
binds by name, so before execution each placeholder is rewritten to an
indexed name (``:p_0``, ``:p_1``, ...) and the positional values are remapped
onto those names. Placeholders inside quoted identifiers or string literals
are left alone, and literal colons are escaped so ``text()`` never mistakes
an identifier for a bind parameter.
"""

from typing import Any, Dict, List, Sequence, Tuple

PLACEHOLDER = "?"
PARAM_PREFIX = "p_"

_QUOTE_PAIRS = {'"': '"', "`": "`", "[": "]", "'": "'"}


def render_named_placeholders(sql: str) -> Tuple[str, List[str]]:
    """
    Rewrite ``?`` placeholders to indexed named parameters.

    Args:
        sql: Statement text with ``?`` placeholders

    Returns:
        Tuple of (rewritten SQL, parameter names in positional order)

    Examples:
        >>> render_named_placeholders('INSERT into T(a,"b?") values (?,?)')
        ('INSERT into T(a,"b?") values (:p_0,:p_1)', ['p_0', 'p_1'])
    """
    out: List[str] = []
    names: List[str] = []
    closing = None
    pos = 0

    while pos < len(sql):
        char = sql[pos]
        pos += 1
        if closing is not None:
            if char == ":":
                out.append("\\:")
                continue
            out.append(char)
            if char == closing:
                # A doubled closing delimiter is an escaped character
                if sql[pos:pos + 1] == closing:
                    out.append(closing)
                    pos += 1
                else:
                    closing = None
            continue

        if char in _QUOTE_PAIRS:
            closing = _QUOTE_PAIRS[char]
            out.append(char)
        elif char == PLACEHOLDER:
            name = f"{PARAM_PREFIX}{len(names)}"
            names.append(name)
            out.append(f":{name}")
        elif char == ":":
            out.append("\\:")
        else:
            out.append(char)

    return "".join(out), names


def build_indexed_params(names: Sequence[str], values: Sequence[Any]) -> Dict[str, Any]:
    """
    Pair positional values with the indexed parameter names.

    Raises:
        ValueError: If the counts differ

    Examples:
        >>> build_indexed_params(["p_0", "p_1"], ["A", 1])
        {'p_0': 'A', 'p_1': 1}
    """
    if len(names) != len(values):
        raise ValueError(
            f"Statement expects {len(names)} parameters, got {len(values)}"
        )
    return dict(zip(names, values))
