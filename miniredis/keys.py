"""Turn KEYS-style glob patterns ('foo*', 'f??', '[ab]c') into regexps."""

from __future__ import annotations

import re


def pattern_re(pattern: str) -> re.Pattern[str] | None:
    """Compile a KEYS pattern to an anchored regexp.

    Returns None when the pattern can never match anything: a trailing
    backslash, or an empty character class.
    """
    parts = [r"\A"]
    chars = iter(pattern)
    for c in chars:
        if c == "*":
            parts.append(".*")
        elif c == "?":
            parts.append(".")
        elif c == "[":
            char_class: list[str] = []
            for d in chars:
                if d == "]":
                    break
                if d == "\\":
                    escaped = next(chars, None)
                    if escaped is None:
                        return None
                    char_class.append(d + escaped)
                    continue
                char_class.append(d)
            if not char_class:
                # '[]' is valid, but matches nothing.
                return None
            parts.append("[" + "".join(char_class) + "]")
        elif c == "\\":
            escaped = next(chars, None)
            if escaped is None:
                return None
            parts.append(re.escape(escaped))
        else:
            parts.append(re.escape(c))
    parts.append(r"\Z")
    return re.compile("".join(parts))