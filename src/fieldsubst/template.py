"""Replacement template expansion.

Templates use ``$`` group references the way ``Matcher.replaceAll`` rule
authors expect them:

- ``$1``, ``$2``, ... insert numbered groups. The first digit always belongs
  to the reference; further digits are consumed only while the result is
  still a valid group number, so with two groups ``$12`` is group 1 followed
  by a literal ``2``.
- ``${name}`` inserts a named group.
- ``\\x`` inserts ``x`` literally (use ``\\$`` for a dollar sign).

Groups that did not take part in the match insert nothing.
"""

from typing import Any

from fieldsubst.errors import SubstitutionError


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def expand_template(template: str, match: Any) -> str:
    """
    Expand a replacement template against a single match.

    Args:
        template: Replacement template with ``$`` group references
        match: Match the references are resolved against

    Returns:
        Expanded replacement text

    Raises:
        SubstitutionError: If the template is malformed or references a
            group the pattern does not define
    """
    group_count = match.re.groups
    parts: list[str] = []
    i = 0
    n = len(template)

    while i < n:
        ch = template[i]

        if ch == "\\":
            i += 1
            if i >= n:
                raise SubstitutionError("character to be escaped is missing")
            parts.append(template[i])
            i += 1
            continue

        if ch != "$":
            parts.append(ch)
            i += 1
            continue

        i += 1
        if i >= n:
            raise SubstitutionError("Illegal group reference: group index is missing")

        if template[i] == "{":
            end = template.find("}", i + 1)
            if end == -1:
                raise SubstitutionError("named capturing group is missing trailing '}'")
            name = template[i + 1 : end]
            if not name:
                raise SubstitutionError("named capturing group has 0 length name")
            if name not in match.re.groupindex:
                raise SubstitutionError(f"No group with name {{{name}}}")
            value = match.group(name)
            i = end + 1
        else:
            if not _is_digit(template[i]):
                raise SubstitutionError("Illegal group reference")
            ref = int(template[i])
            if ref > group_count:
                raise SubstitutionError(f"No group {ref}")
            i += 1
            while i < n and _is_digit(template[i]):
                candidate = ref * 10 + int(template[i])
                if candidate > group_count:
                    break
                ref = candidate
                i += 1
            value = match.group(ref)

        if value is not None:
            parts.append(value)

    return "".join(parts)


def substitute(pattern: Any, template: str, value: str) -> str:
    """
    Replace every non-overlapping match of pattern in value.

    The template is only expanded when there is a match, so a value the
    pattern does not match comes back unchanged even if the template is
    malformed.

    Raises:
        SubstitutionError: If the template cannot be expanded
    """
    return pattern.sub(lambda m: expand_template(template, m), value)
