"""Source files written by the engine itself: skeletons, wrappers, promotions."""

from __future__ import annotations

import re

from .naming import to_pascal_case_identifier, version_identifier
from .versions import VersionKey

_JSX_EXTENSIONS = {".tsx", ".jsx"}


def version_skeleton(component_name: str, key: VersionKey, extension: str) -> str:
    """Deterministic starting point for ``new_version``."""
    identifier = version_identifier(component_name, key)
    display = key.display
    if extension in _JSX_EXTENSIONS:
        return (
            "import React from 'react';\n"
            "\n"
            f"export default function {identifier}() {{\n"
            "  return (\n"
            "    <div>\n"
            f"      {display}\n"
            "    </div>\n"
            "  );\n"
            "}\n"
        )
    return (
        "import React from 'react';\n"
        "\n"
        f"export default function {identifier}() {{\n"
        f"  return React.createElement('div', null, '{display}');\n"
        "}\n"
    )


def wrapper_source(component_name: str, extension: str) -> str:
    """Entry file that renders whichever version is active in the browser."""
    identifier = to_pascal_case_identifier(component_name)
    versions_module = f"./{component_name}.versions"
    if extension in _JSX_EXTENSIONS:
        props = "props: any" if extension == ".tsx" else "props"
        return (
            'import { BranchedComponent } from "uifork"\n'
            f'import {{ VERSIONS }} from "{versions_module}"\n'
            "\n"
            f"export default function {identifier}({props}) {{\n"
            "  return (\n"
            "    <BranchedComponent\n"
            f'      id="{component_name}"\n'
            "      versions={VERSIONS}\n"
            "      props={props}\n"
            "    />\n"
            "  )\n"
            "}\n"
            "\n"
            "export { VERSIONS }\n"
        )
    props = "props: any" if extension == ".ts" else "props"
    return (
        'import { createElement } from "react"\n'
        'import { BranchedComponent } from "uifork"\n'
        f'import {{ VERSIONS }} from "{versions_module}"\n'
        "\n"
        f"export default function {identifier}({props}) {{\n"
        f'  return createElement(BranchedComponent, {{ id: "{component_name}", versions: VERSIONS, props }})\n'
        "}\n"
        "\n"
        "export { VERSIONS }\n"
    )


def rename_identifier(source: str, old: str, new: str) -> str:
    """Replace whole-word occurrences of ``old`` with ``new``."""
    if old == new:
        return source
    return re.sub(rf"\b{re.escape(old)}\b", new, source)


def promoted_source(source: str, component_name: str, key: VersionKey) -> str:
    """Rewrite a version file so it can stand in for the wrapper."""
    return rename_identifier(
        source,
        version_identifier(component_name, key),
        to_pascal_case_identifier(component_name),
    )


__all__ = ["promoted_source", "rename_identifier", "version_skeleton", "wrapper_source"]
