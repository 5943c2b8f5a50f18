"""
Declaration tree for generated modules.

Builders produce these nodes; ``render`` turns them into source text as the
last, isolated step.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Union


# Import groups, rendered in this order with a blank line between them
_STDLIB = frozenset(["dataclasses", "enum", "typing"])


def _import_group(module: str) -> int:
    if module == "__future__":
        return 0
    if module in _STDLIB:
        return 1
    if module.startswith("."):
        return 4
    if module.startswith("idlcodegen"):
        return 3
    return 2


class ImportSet:
    """``from <module> import <names>`` statements a unit needs."""

    def __init__(self):
        self._names: Dict[str, Set[str]] = {}

    def add(self, module: str, *names: str) -> None:
        self._names.setdefault(module, set()).update(names)

    def merge(self, other: "ImportSet") -> None:
        for module, names in other._names.items():
            self.add(module, *names)

    def names_from(self, module: str) -> Set[str]:
        return set(self._names.get(module, ()))

    def __contains__(self, module: str) -> bool:
        return module in self._names

    def groups(self) -> List[List[Tuple[str, List[str]]]]:
        grouped: Dict[int, List[Tuple[str, List[str]]]] = {}
        for module in sorted(self._names):
            names = sorted(self._names[module], key=lambda n: (n != "*", n))
            grouped.setdefault(_import_group(module), []).append((module, names))
        return [grouped[key] for key in sorted(grouped)]


@dataclass
class Comment:
    lines: List[str]


@dataclass
class Statement:
    """Verbatim statement lines."""
    lines: List[str]


@dataclass
class FieldDecl:
    """
    A dataclass field. With ``class_var`` set it is a ``ClassVar`` constant;
    with no annotation it is a plain class attribute such as an enum member.
    """
    name: str
    annotation: Optional[str]
    default: Optional[str] = None
    comments: List[str] = field(default_factory=list)
    class_var: bool = False


@dataclass
class Routine:
    """A function or method."""
    name: str
    params: List[str]
    body: List[str]
    returns: Optional[str] = None
    decorators: List[str] = field(default_factory=list)
    docstring: Optional[str] = None


@dataclass
class ClassDecl:
    name: str
    bases: List[str] = field(default_factory=list)
    decorators: List[str] = field(default_factory=list)
    docstring: Optional[str] = None
    class_vars: List[FieldDecl] = field(default_factory=list)
    fields: List[FieldDecl] = field(default_factory=list)
    routines: List[Routine] = field(default_factory=list)


Declaration = Union[Comment, Statement, ClassDecl, Routine]


@dataclass
class ModuleUnit:
    """One generated module."""
    name: str
    docstring: str
    imports: ImportSet = field(default_factory=ImportSet)
    body: List[Declaration] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    empty_marker: Optional[str] = None
    export_all: bool = True

    @property
    def filename(self) -> str:
        return f"{self.name}.py"

    @property
    def is_empty(self) -> bool:
        return not self.body

    def declare(self, decl: Declaration, *exports: str) -> None:
        self.body.append(decl)
        self.exports.extend(exports)
