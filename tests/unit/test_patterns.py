from tidy.chat.patterns import (
    apply_pattern_fix,
    apply_security_pattern,
    apply_type_safety_pattern,
    match_brace,
    wrap_async_function,
    wrap_render_call,
)


def test_match_brace():
    text = "f() { if (x) { y } }"
    assert match_brace(text, 4) == len(text) - 1
    assert match_brace("{ {", 0) == -1


def test_async_function_wrapped_in_try_catch():
    fix = wrap_async_function("async function f(){ fetch(x) }")
    assert fix.fixed_code == (
        "async function f(){\n"
        "    try {\n"
        "      fetch(x)\n"
        "    } catch (error) {\n"
        "      console.error('Error:', error);\n"
        "    }\n"
        "}"
    )
    diff_lines = fix.diff.split("\n")
    assert diff_lines[0] == "-async function f(){ fetch(x) }"
    assert "+    try {" in diff_lines
    assert "+    } catch (error) {" in diff_lines


def test_async_arrow_multiline_body():
    code = "const load = async () => {\n  const r = await fetch(url);\n  return r;\n};"
    fixed = wrap_async_function(code).fixed_code
    assert "try {" in fixed
    assert "\n    const r = await fetch(url);\n" in fixed
    assert fixed.endswith("\n};")


def test_async_function_with_try_is_left_alone():
    code = "async function f() {\n  try { await g() } catch (e) {}\n}"
    assert wrap_async_function(code) is None


def test_render_call_wrapped_but_imports_skipped():
    code = (
        "import { createRoot } from 'react-dom/client';\n"
        "createRoot(document.getElementById('root')).render(<App />);"
    )
    fixed = wrap_render_call(code).fixed_code
    lines = fixed.split("\n")
    assert lines[0] == "import { createRoot } from 'react-dom/client';"
    assert lines[1] == "try {"
    assert lines[2] == "  createRoot(document.getElementById('root')).render(<App />);"
    assert "Failed to render app" in fixed


def test_type_safety_infers_from_names():
    code = "function f(userId: any, name: any, cfg: any) {}"
    fix = apply_type_safety_pattern(code)
    assert fix.fixed_code == "function f(userId: number, name: string, cfg: unknown) {}"
    assert apply_type_safety_pattern("let x: any = 1;") is None


def test_security_guard_keeps_indentation():
    code = "function init() {\n  const btn = document.getElementById('submit');\n}"
    fixed = apply_security_pattern(code).fixed_code
    assert fixed.split("\n")[1:6] == [
        "  const btnElement = document.getElementById('submit');",
        "  if (!btnElement) {",
        "    throw new Error('submit element not found');",
        "  }",
        "  const btn = btnElement;",
    ]


def test_pattern_dispatch():
    code = "async function f(){ fetch(x) }"
    assert apply_pattern_fix("Missing error handling", "reliability", code) is not None
    assert apply_pattern_fix("Improve naming", "style", code) is None
    guarded = apply_pattern_fix(
        "Unchecked lookup", "security", "const el = document.getElementById('x');"
    )
    assert "if (!elElement)" in guarded.fixed_code
