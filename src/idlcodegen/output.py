"""
Writes generated bindings to disk.

Layout::

    <output_dir>/
        pyproject.toml
        README.md
        <module>/
            __init__.py
            types.py
            accounts.py
            instructions.py
            errors.py
            events.py
"""

import logging
from pathlib import Path
from typing import List, Optional

from .codegen.emitter import GeneratedPackage
from .codegen.naming import to_snake_case
from .schema.models import ProgramSchema

logger = logging.getLogger(__name__)

RUNTIME_DISTRIBUTION = "solana-idl-codegen"


def module_name_for(schema: ProgramSchema, override: Optional[str] = None) -> str:
    """Import name of the generated package."""
    name = to_snake_case(override or schema.name).strip("_")
    return name or "program"


def render_readme(schema: ProgramSchema, module: str) -> str:
    first_ix = schema.instructions[0].name if schema.instructions else None
    lines = [
        f"# {module}",
        "",
        f"Python bindings for the `{schema.name}` program, version {schema.version}.",
        "",
    ]
    if schema.metadata.description:
        lines.extend([schema.metadata.description, ""])
    lines.extend([
        f"- Program address: `{schema.address or 'not declared'}`",
        f"- Instructions: {len(schema.instructions)}",
        f"- Accounts: {len(schema.accounts)}",
        f"- Types: {len(schema.types)}",
        f"- Events: {len(schema.events)}",
        f"- Errors: {len(schema.errors)}",
        "",
        "## Usage",
        "",
        "```python",
        f"from {module} import decode_instruction",
        f"from {module} import events",
        "",
        "ix = decode_instruction(data)",
        "```",
        "",
    ])
    if first_ix is not None:
        lines.extend([
            f"Every instruction has a builder, for example `{to_snake_case(first_ix).rstrip('_')}_ix`,",
            "that returns a `solders.instruction.Instruction`.",
            "",
        ])
    lines.extend(["Generated by idlcodegen. Do not edit by hand.", ""])
    return "\n".join(lines)


def render_manifest(schema: ProgramSchema, module: str) -> str:
    return "\n".join([
        "[build-system]",
        'requires = ["setuptools>=61"]',
        'build-backend = "setuptools.build_meta"',
        "",
        "[project]",
        f'name = "{module.replace("_", "-")}"',
        f'version = "{schema.version}"',
        f'description = "Python bindings for the {schema.name} program"',
        'requires-python = ">=3.8"',
        "dependencies = [",
        '    "solders",',
        f'    "{RUNTIME_DISTRIBUTION}",',
        "]",
        "",
        "[tool.setuptools]",
        f'packages = ["{module}"]',
        "",
    ])


def write_package(
    package: GeneratedPackage,
    schema: ProgramSchema,
    output_dir: Path,
    module: str,
) -> List[Path]:
    """Write every module plus README and manifest. Returns the written paths."""
    output_dir = Path(output_dir)
    package_dir = output_dir / module
    package_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for filename, source in package.sources.items():
        path = package_dir / filename
        path.write_text(source)
        written.append(path)

    readme = output_dir / "README.md"
    readme.write_text(render_readme(schema, module))
    manifest = output_dir / "pyproject.toml"
    manifest.write_text(render_manifest(schema, module))
    written.extend([readme, manifest])

    logger.info("Wrote %d files to %s", len(written), output_dir)
    return written
