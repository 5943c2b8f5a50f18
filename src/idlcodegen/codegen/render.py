"""
Serialize declaration trees to Python source text.
"""

from typing import List

from .decls import ClassDecl, Comment, Declaration, FieldDecl, ModuleUnit, Routine, Statement

INDENT = "    "
GENERATED_HEADER = "# Generated by idlcodegen. Do not edit by hand."


def _docstring(text: str, indent: str) -> List[str]:
    text = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"').strip()
    if text.endswith('"'):
        text += " "
    lines = text.splitlines() or [""]
    if len(lines) == 1:
        return [f'{indent}"""{lines[0]}"""']
    out = [f'{indent}"""']
    out.extend(f"{indent}{line}".rstrip() for line in lines)
    out.append(f'{indent}"""')
    return out


def _comment_lines(lines: List[str], indent: str) -> List[str]:
    out = []
    for line in lines:
        for part in line.splitlines() or [""]:
            out.append(f"{indent}# {part}".rstrip())
    return out


def _render_field(decl: FieldDecl, indent: str) -> List[str]:
    out = _comment_lines(decl.comments, indent)
    if decl.annotation is None:
        line = f"{indent}{decl.name}"
    elif decl.class_var:
        line = f"{indent}{decl.name}: ClassVar[{decl.annotation}]"
    else:
        line = f"{indent}{decl.name}: {decl.annotation}"
    if decl.default is not None:
        # continuation lines of a multi-line default follow the member indent
        line += " = " + decl.default.replace("\n", "\n" + indent)
    out.append(line)
    return out


def _render_routine(routine: Routine, indent: str) -> List[str]:
    out = [f"{indent}@{d}" for d in routine.decorators]
    signature = f"{indent}def {routine.name}({', '.join(routine.params)})"
    if routine.returns:
        signature += f" -> {routine.returns}"
    out.append(signature + ":")
    inner = indent + INDENT
    if routine.docstring:
        out.extend(_docstring(routine.docstring, inner))
    body = routine.body or ([] if routine.docstring else ["pass"])
    out.extend(f"{inner}{line}".rstrip() for line in body)
    return out


def _render_class(decl: ClassDecl, indent: str) -> List[str]:
    out = [f"{indent}@{d}" for d in decl.decorators]
    bases = f"({', '.join(decl.bases)})" if decl.bases else ""
    out.append(f"{indent}class {decl.name}{bases}:")
    inner = indent + INDENT

    sections: List[List[str]] = []
    if decl.docstring:
        sections.append(_docstring(decl.docstring, inner))
    members: List[str] = []
    for cv in decl.class_vars:
        members.extend(_render_field(cv, inner))
    for f in decl.fields:
        members.extend(_render_field(f, inner))
    if members:
        sections.append(members)
    for routine in decl.routines:
        sections.append(_render_routine(routine, inner))

    if not sections:
        out.append(f"{inner}pass")
        return out
    for i, section in enumerate(sections):
        if i:
            out.append("")
        out.extend(section)
    return out


def render_declaration(decl: Declaration) -> List[str]:
    if isinstance(decl, ClassDecl):
        return _render_class(decl, "")
    if isinstance(decl, Routine):
        return _render_routine(decl, "")
    if isinstance(decl, Comment):
        return _comment_lines(decl.lines, "")
    if isinstance(decl, Statement):
        return list(decl.lines)
    raise TypeError(f"cannot render {type(decl).__name__}")


def render_module(unit: ModuleUnit) -> str:
    """Render a module unit to source text ending in a single newline."""
    out = _docstring(unit.docstring, "")
    out.append(GENERATED_HEADER)

    for group in unit.imports.groups():
        out.append("")
        for module, names in group:
            if names == ["*"]:
                out.append(f"from {module} import *  # noqa: F401,F403")
            else:
                out.append(f"from {module} import {', '.join(names)}")

    if unit.export_all:
        out.append("")
        if unit.exports:
            out.append("__all__ = [")
            out.extend(f'{INDENT}"{name}",' for name in unit.exports)
            out.append("]")
        else:
            out.append("__all__ = []")

    if unit.is_empty and unit.empty_marker:
        out.extend(["", "", f"# {unit.empty_marker}"])

    for decl in unit.body:
        out.extend(["", ""])
        out.extend(render_declaration(decl))

    return "\n".join(out).rstrip() + "\n"
