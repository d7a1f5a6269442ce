"""
Deterministic fix patterns tried before asking the model for a rewrite.

Each pattern takes the full source and returns a FixResult, or None when it
has nothing to change.
"""

from __future__ import annotations

import re

from tidy.chat.patching import FixResult, generate_simple_diff

_ASYNC_DECL = re.compile(r"async\s+function|const\s+[^=]*=\s*async")
_ANY_PARAM = re.compile(r"(\w+)\s*:\s*any\b")
_DOM_ASSIGNMENT = re.compile(
    r"""^(\s*)(?:(?:const|let|var)\s+)?(\w+)\s*=\s*document\.getElementById\(['"]([^'"]+)['"]\)"""
)

BODY_INDENT = "    "


def _result(original: str, fixed: str) -> FixResult | None:
    if fixed == original:
        return None
    return FixResult(fixed_code=fixed, diff=generate_simple_diff(original, fixed))


def match_brace(text: str, open_index: int) -> int:
    """
    Index of the brace closing the one at ``open_index``, or -1.

    Braces inside string literals and comments are not special-cased.
    """
    depth = 0
    for index in range(open_index, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _wrap_body(body: str) -> tuple[list[str], str]:
    """Split a function body into indented lines plus the closing-brace indent."""
    segments = body.split("\n")
    if len(segments) == 1:
        return [BODY_INDENT + body.strip()], ""

    first, middle, last = segments[0], segments[1:-1], segments[-1]
    lines = list(middle)
    if first.strip():
        lines.insert(0, BODY_INDENT + first.strip())
    closing_indent = last
    if last.strip():
        lines.append(BODY_INDENT + last.strip())
        closing_indent = ""
    return lines, closing_indent


def wrap_async_function(code: str) -> FixResult | None:
    """Wrap the first async function body that has no try block in try/catch."""
    for match in _ASYNC_DECL.finditer(code):
        open_index = code.find("{", match.end())
        if open_index == -1:
            return None
        close_index = match_brace(code, open_index)
        if close_index == -1:
            continue

        body = code[open_index + 1 : close_index]
        if body.strip().startswith("try"):
            continue

        body_lines, closing_indent = _wrap_body(body)
        wrapped = [
            f"{BODY_INDENT}try {{",
            *(f"  {line}" for line in body_lines),
            f"{BODY_INDENT}}} catch (error) {{",
            f"{BODY_INDENT}  console.error('Error:', error);",
            f"{BODY_INDENT}}}",
        ]
        fixed = (
            code[: open_index + 1]
            + "\n"
            + "\n".join(wrapped)
            + "\n"
            + closing_indent
            + code[close_index:]
        )
        return _result(code, fixed)
    return None


def wrap_render_call(code: str) -> FixResult | None:
    """Wrap a ReactDOM.render / createRoot(...).render(...) statement in try/catch."""
    lines = code.split("\n")
    for start, line in enumerate(lines):
        if "ReactDOM.render" not in line and "createRoot" not in line:
            continue
        if "try {" in line:
            continue

        parens = braces = 0
        end = -1
        for index in range(start, len(lines)):
            for char in lines[index]:
                if char == "(":
                    parens += 1
                elif char == ")":
                    parens -= 1
                elif char == "{":
                    braces += 1
                elif char == "}":
                    braces -= 1
            if parens == 0 and braces == 0 and ";" in lines[index]:
                end = index
                break
        if end == -1:
            continue

        render_code = "\n".join(lines[start : end + 1])
        # Imports and bare createRoot() assignments are not render calls
        if "render(" not in render_code:
            continue

        wrapped = (
            f"try {{\n  {render_code.strip()}\n}} catch (error) {{\n"
            "  console.error('Failed to render app:', error);\n}"
        )
        fixed_lines = lines[:start] + wrapped.split("\n") + lines[end + 1 :]
        return _result(code, "\n".join(fixed_lines))
    return None


def apply_error_handling_pattern(code: str) -> FixResult | None:
    return wrap_async_function(code) or wrap_render_call(code)


def _infer_type(name: str) -> str:
    lowered = name.lower()
    if "id" in lowered or "index" in lowered:
        return "number"
    if "name" in lowered or "text" in lowered:
        return "string"
    if "data" in lowered or "config" in lowered:
        return "object"
    return "unknown"


def apply_type_safety_pattern(code: str) -> FixResult | None:
    """Replace ``name: any`` in declarations with a type guessed from the name."""
    lines = code.split("\n")
    for index, line in enumerate(lines):
        if "function" in line or ("const" in line and "=" in line):
            lines[index] = _ANY_PARAM.sub(
                lambda m: f"{m.group(1)}: {_infer_type(m.group(1))}", line
            )
    return _result(code, "\n".join(lines))


def apply_security_pattern(code: str) -> FixResult | None:
    """Add a null guard after the first unguarded getElementById assignment."""
    lines = code.split("\n")
    for index, line in enumerate(lines):
        if "document.getElementById" not in line:
            continue
        if "if (!" in line or "throw new Error" in line:
            continue
        match = _DOM_ASSIGNMENT.match(line)
        if not match:
            continue
        indent, name, element_id = match.groups()
        safer = [
            f"{indent}const {name}Element = document.getElementById('{element_id}');",
            f"{indent}if (!{name}Element) {{",
            f"{indent}  throw new Error('{element_id} element not found');",
            f"{indent}}}",
            f"{indent}const {name} = {name}Element;",
        ]
        return _result(code, "\n".join(lines[:index] + safer + lines[index + 1 :]))
    return None


def apply_pattern_fix(title: str, category: str, code: str) -> FixResult | None:
    """
    Pick a pattern from the issue title/category and apply it.

    Returns:
        FixResult when a pattern matched and changed the code, else None
    """
    title = title.lower()
    category = category.lower()
    if "error" in title and "handling" in title:
        return apply_error_handling_pattern(code)
    if "type" in title and "safety" in title:
        return apply_type_safety_pattern(code)
    if "security" in title or "dom" in title or "practice" in title or "security" in category:
        return apply_security_pattern(code)
    return None
