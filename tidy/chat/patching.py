"""
Text patching for suggested fixes.

Suggestion diffs come in a loose ``- old`` / ``+ new`` format (the mock
reviewer and the model both produce it, and ``+`` blocks may carry
unprefixed continuation lines). ``apply_patch`` is the one seam the chat
assistant uses; swap it for a real unified-diff engine without touching
callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tidy.analysis.types import CamelModel

MIN_EXTRACTED_LINES = 3
MIN_EXTRACTED_CHARS = 50


class PatchError(ValueError):
    """The patch could not be applied to the original text."""


class FixResult(CamelModel):
    fixed_code: str
    diff: str


@dataclass
class Hunk:
    old: list[str] = field(default_factory=list)
    new: list[str] = field(default_factory=list)


def _strip_marker(line: str) -> str:
    body = line[1:]
    return body[1:] if body.startswith(" ") else body


def _is_header(line: str) -> bool:
    return line.startswith(("---", "+++", "@@"))


def parse_hunks(patch: str) -> list[Hunk]:
    """Group ``-`` runs with the ``+`` block (and its continuation lines) after them."""
    hunks: list[Hunk] = []
    current: Hunk | None = None
    in_new = False
    for line in patch.split("\n"):
        if _is_header(line):
            continue
        if line.startswith("-"):
            if current is None or in_new:
                current = Hunk()
                hunks.append(current)
                in_new = False
            current.old.append(_strip_marker(line))
        elif line.startswith("+"):
            if current is None:
                continue
            in_new = True
            current.new.append(_strip_marker(line))
        elif current is not None and in_new:
            current.new.append(line)
    return [hunk for hunk in hunks if hunk.new]


def _replace_block(text: str, hunk: Hunk) -> str | None:
    old = "\n".join(hunk.old).strip()
    new = "\n".join(hunk.new).strip("\n")
    if old and old in text:
        return text.replace(old, new.strip() if len(hunk.new) == 1 else new, 1)

    # Multi-line old block: match on its first and last lines
    if len(hunk.old) > 1:
        first, last = hunk.old[0].strip(), hunk.old[-1].strip()
        start = text.find(first) if first else -1
        if start != -1:
            end = text.find(last, start + len(first))
            if end != -1:
                return text[:start] + new + text[end + len(last) :]
    return None


def _extract_code(original: str, patch: str) -> str | None:
    """Some diffs are just the whole desired file with a few markers."""
    code_lines = [
        line for line in patch.split("\n") if not line.startswith(("-", "+"))
    ]
    if len(code_lines) <= MIN_EXTRACTED_LINES:
        return None
    extracted = "\n".join(code_lines).strip()
    if len(extracted) > MIN_EXTRACTED_CHARS and extracted != original:
        return extracted
    return None


def apply_patch(original: str, patch: str) -> str:
    """
    Apply a loose ``-``/``+`` patch to original text.

    Tries each hunk as an exact substring replacement, then as a first/last
    line block match; if no hunk applies, treats the unprefixed lines as the
    complete replacement file.

    Raises:
        PatchError: If nothing in the patch could be applied
    """
    text = original
    applied = False
    for hunk in parse_hunks(patch):
        replaced = _replace_block(text, hunk)
        if replaced is not None:
            text = replaced
            applied = True

    if applied and text != original:
        return text

    extracted = _extract_code(original, patch)
    if extracted is not None:
        return extracted
    raise PatchError("Patch does not match the original text")


def generate_simple_diff(original: str, modified: str) -> str:
    """
    Positional line diff: ``-old``/``+new`` where lines differ, `` line``
    where they match. Blank lines on either side are omitted.
    """
    original_lines = original.split("\n")
    modified_lines = modified.split("\n")
    out: list[str] = []
    for i in range(max(len(original_lines), len(modified_lines))):
        old = original_lines[i] if i < len(original_lines) else ""
        new = modified_lines[i] if i < len(modified_lines) else ""
        if old != new:
            if old:
                out.append(f"-{old}")
            if new:
                out.append(f"+{new}")
        elif old:
            out.append(f" {old}")
    return "\n".join(out).strip()
