"""
Identifier casing for generated code.

Fields, arguments and account refs become ``snake_case``; types, variants,
instructions and errors become ``PascalCase``; module-level constants become
``UPPER_SNAKE``. Results are memoized, so a given name always normalizes
identically within a run.
"""

import keyword
import re
from functools import lru_cache
from typing import List

# Attribute and parameter names the generated classes define themselves
RESERVED_MEMBERS = frozenset(
    [
        "serialize",
        "deserialize",
        "to_bytes",
        "from_bytes",
        "to_layout_bytes",
        "from_layout_bytes",
        "to_account_metas",
        "DISCRIMINATOR",
        "MIN_SIZE",
        "LAYOUT",
        "SIZE",
        "INDEX",
        "VARIANTS",
        "self",
        "cls",
    ]
)

_WORD_BOUNDARY = re.compile(
    r"""
    [A-Z]+(?=[A-Z][a-z])   # acronym followed by a capitalized word: "AMM" in "AMMConfig"
    | [A-Z]?[a-z]+[0-9]*   # capitalized or lowercase word with trailing digits
    | [A-Z]+[0-9]*         # acronym or single capital
    | [0-9]+               # bare digit run
    """,
    re.VERBOSE,
)


def split_words(name: str) -> List[str]:
    """Split an identifier on separators and case boundaries."""
    words: List[str] = []
    for chunk in re.split(r"[^A-Za-z0-9]+", name):
        if chunk:
            words.extend(_WORD_BOUNDARY.findall(chunk))
    return words


def escape_identifier(name: str) -> str:
    """Make ``name`` a legal Python identifier that shadows nothing we generate."""
    if not name:
        return "_"
    if name[0].isdigit():
        name = f"_{name}"
    if keyword.iskeyword(name) or name in RESERVED_MEMBERS:
        name = f"{name}_"
    return name


@lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """``isMut`` -> ``is_mut``, ``AMMConfig`` -> ``amm_config``."""
    words = split_words(name)
    return escape_identifier("_".join(w.lower() for w in words))


@lru_cache(maxsize=None)
def to_pascal_case(name: str) -> str:
    """``swap_base_in`` -> ``SwapBaseIn``, ``AMMConfig`` -> ``AmmConfig``."""
    words = split_words(name)
    return escape_identifier("".join(w[:1].upper() + w[1:].lower() for w in words))


@lru_cache(maxsize=None)
def to_upper_snake_case(name: str) -> str:
    """``PoolState`` -> ``POOL_STATE``."""
    words = split_words(name)
    return escape_identifier("_".join(w.upper() for w in words))


def type_name(name: str) -> str:
    """Python class name for a user-defined type or a named reference to one."""
    return to_pascal_case(name)


def field_name(name: str) -> str:
    return to_snake_case(name)


def variant_class_name(enum_name: str, variant_name: str) -> str:
    """Module-level class name of an enum variant, e.g. ``SideBid``."""
    return to_pascal_case(enum_name) + to_pascal_case(variant_name).rstrip("_")
