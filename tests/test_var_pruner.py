"""Tests for slicing comma-separated variable declarations."""
import pytest

from cxxprune.analyzer.model import DeclKind

from helpers import TreeBuilder, optimize


def run(code, statement, declarators, used_names, **attrs):
    b = TreeBuilder(code)
    variables = b.add_variables(statement, declarators, **attrs)
    used = [var for var in variables if var.name in used_names]
    b.main(code[code.index("int main"):].rstrip("\n"), *used)
    return optimize(b)


@pytest.mark.parametrize("used, expected", [
    ({"b"}, "int b = 2;"),
    ({"a"}, "int a = 1;"),
    ({"c"}, "int c = 3;"),
    ({"a", "c"}, "int a = 1, c = 3;"),
    ({"b", "c"}, "int b = 2, c = 3;"),
    ({"a", "b", "c"}, "int a = 1, b = 2, c = 3;"),
])
def test_unused_declarators_are_sliced(used, expected):
    """Every used subset of a three-declarator statement."""
    code = "int a = 1, b = 2, c = 3;\nint main() { return 0; }\n"
    result = run(code, "int a = 1, b = 2, c = 3;", ["a = 1", "b = 2", "c = 3"], used)
    assert result == expected + "\nint main() { return 0; }\n"


def test_whole_statement_goes_when_nothing_is_used():
    """Nothing used: the statement goes through its ';'."""
    code = "int a = 1, b = 2;\nint main() { return 0; }\n"
    assert run(code, "int a = 1, b = 2;", ["a = 1", "b = 2"], set()) == "int main() { return 0; }\n"


def test_pointer_declarators_leave_no_stray_star():
    """Pointer declarators are cut at their '*'."""
    code = "int *p = 0, *q = 0;\nint main() { return *q; }\n"
    result = run(code, "int *p = 0, *q = 0;", ["*p = 0", "*q = 0"], {"q"})
    assert result == "int *q = 0;\nint main() { return *q; }\n"


def test_reference_declarator():
    """Reference declarators are cut at their '&'."""
    code = "int x = 1, &r = x, y = 2;\nint main() { return y; }\n"
    result = run(code, "int x = 1, &r = x, y = 2;", ["x = 1", "&r = x", "y = 2"], {"x", "y"})
    assert result == "int x = 1, y = 2;\nint main() { return y; }\n"


def test_statement_without_semicolon_is_kept():
    """Without a ';' in sight the statement stays."""
    code = "int a = 1, b = 2;\nint main() { return 0; }\n"
    # the reported end of b stops short of its initializer
    assert run(code, "int a = 1, b = 2;", ["a = 1", "b"], set()) == code


def test_comment_goes_with_the_statement():
    """A deleted statement takes its doc comment."""
    code = "/// counters\nint a = 0, b = 0;\nint main() { return 0; }\n"
    b = TreeBuilder(code)
    b.add_variables("int a = 0, b = 0;", ["a = 0", "b = 0"], comment=b.span("/// counters"))
    b.main("int main() { return 0; }")
    assert optimize(b) == "int main() { return 0; }\n"


def test_keep_marked_statement_keeps_its_first_variable():
    """The keep marker protects the first declarator only."""
    code = "// caide keep\nint a = 1, b = 2;\nint main() { return 0; }\n"
    b = TreeBuilder(code)
    first, second = b.add_variables("int a = 1, b = 2;", ["a = 1", "b = 2"])
    first.comment = b.span("// caide keep")
    b.main("int main() { return 0; }")
    assert optimize(b) == "// caide keep\nint a = 1;\nint main() { return 0; }\n"


def test_local_variables_are_left_alone():
    """Statements inside functions are never sliced."""
    code = "int main() { int a = 1, b = 2; return a; }\n"
    b = TreeBuilder(code)
    main = b.main(code.rstrip("\n"))
    b.add_variables("int a = 1, b = 2;", ["a = 1", "b = 2"], parent=main, is_local=True)
    assert optimize(b) == code


def test_namespace_scope_cluster():
    """Clusters inside namespaces are sliced too."""
    code = "namespace n {\nint a = 1, b = 2;\n}\nint main() { return n::b; }\n"
    b = TreeBuilder(code)
    n = b.add(DeclKind.NAMESPACE, "n", code[:code.index("}") + 1])
    a, used = b.add_variables("int a = 1, b = 2;", ["a = 1", "b = 2"], parent=n)
    b.main("int main() { return n::b; }", used)
    assert optimize(b) == "namespace n {\nint b = 2;\n}\nint main() { return n::b; }\n"


def test_trailing_comment_goes_with_the_statement():
    """A comment ending the statement's line is deleted along with it."""
    code = "int a = 1, b = 2; // counters\nint main() { return 0; }\n"
    assert run(code, "int a = 1, b = 2;", ["a = 1", "b = 2"], set()) == "int main() { return 0; }\n"
