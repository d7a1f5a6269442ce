import pytest

from tidy.chat.patching import PatchError, apply_patch, generate_simple_diff, parse_hunks


def test_single_line_replacement():
    original = "const a = 1;\nconsole.log(a);"
    patch = "- console.log(a);\n+ logger.info(a);"
    assert apply_patch(original, patch) == "const a = 1;\nlogger.info(a);"


def test_plus_block_keeps_continuation_lines():
    original = "function f() {\n  fetch(x);\n}"
    patch = "- fetch(x);\n+ try {\n    fetch(x);\n  } catch (e) {}"

    hunks = parse_hunks(patch)
    assert len(hunks) == 1
    assert hunks[0].new == ["try {", "    fetch(x);", "  } catch (e) {}"]

    assert apply_patch(original, patch) == "function f() {\n  try {\n    fetch(x);\n  } catch (e) {}\n}"


def test_multi_line_block_matched_on_first_and_last_line():
    original = "if (a) {\n  other\n}\nrest"
    patch = "- if (a) {\n-   stuff\n- }\n+ if (b) {}"
    assert apply_patch(original, patch) == "if (b) {}\nrest"


def test_headers_are_ignored():
    patch = "--- a/x.js\n+++ b/x.js\n@@ -1 +1 @@\n- var x = 1;\n+ let x = 1;"
    assert apply_patch("var x = 1;", patch) == "let x = 1;"


def test_whole_file_extraction():
    patch = (
        "- old line\n"
        "const first = 'replacement file line one';\n"
        "const second = 'replacement file line two';\n"
        "const third = 3;\n"
        "export { first, second, third };"
    )
    fixed = apply_patch("unrelated original", patch)
    assert fixed.startswith("const first")
    assert fixed.endswith("export { first, second, third };")


def test_unmatched_patch_raises():
    with pytest.raises(PatchError):
        apply_patch("const a = 1;", "- missing();\n+ present();")


def test_simple_diff():
    assert generate_simple_diff("a\nb\n\nd", "a\nc\n\nd") == "a\n-b\n+c\n d"
    assert generate_simple_diff("same", "same") == "same"
