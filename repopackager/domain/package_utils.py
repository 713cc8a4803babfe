import fnmatch
import re
from pathlib import PurePosixPath
from typing import Iterable, Optional


def parse_guid(guid: str) -> str:
    """
    Return a GUID with its braces and dashes removed, upper-cased.

    ``{0fa1b2c3-...}`` and ``0FA1B2C3...`` therefore compare equal.
    """
    return re.sub(r"[{}-]", "", guid).upper()


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """
    Check a POSIX relative path against glob patterns.

    A pattern matches either the whole relative path or just the final
    entry name, so ``.git`` and ``build/*`` both behave as expected.
    ``*`` also matches ``/``, which makes ``_resources/**`` cover a whole
    sub-tree.
    """
    name = PurePosixPath(relative_path).name
    for pattern in patterns:
        if fnmatch.fnmatchcase(relative_path, pattern) or fnmatch.fnmatchcase(name, pattern):
            return True
    return False


def first_match(pattern: str, text: str) -> Optional[str]:
    """
    Search text case-insensitively and return the first capture group, trimmed.

    Patterns without a capture group yield the whole match.
    """
    match = re.search(pattern, text, flags=re.IGNORECASE)
    if match is None:
        return None
    value = match.group(1) if match.re.groups else match.group(0)
    if value is None:
        return None
    return value.strip()
