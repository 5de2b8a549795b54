"""
Random tokens and identifier helpers.
"""

import re
import secrets
import string

LETTERS = string.ascii_letters

IDENTIFIER_MAX_LENGTH = 10


def make_random_string(length: int) -> str:
    """
    Generate a random string of ASCII letters using a cryptographically secure source.

    Used for link share secrets, which appear in public URLs.

    Example:
        >>> len(make_random_string(40))
        40
    """
    return "".join(secrets.choice(LETTERS) for _ in range(length))


def identifier_from_title(title: str) -> str:
    """
    Derive a short upper-case project identifier from a project title.

    Multi-word titles use the initials of each word, single words use their
    first four characters. Non-alphanumeric characters are ignored.

    Example:
        >>> identifier_from_title("Website relaunch 2024")
        'WR2'
        >>> identifier_from_title("Groceries")
        'GROC'
    """
    words = re.findall(r"[A-Za-z0-9]+", title or "")
    if not words:
        return ""
    if len(words) == 1:
        return words[0][:4].upper()
    return "".join(word[0] for word in words).upper()[:IDENTIFIER_MAX_LENGTH]
