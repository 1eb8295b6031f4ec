"""Tests for the per-declaration removal decisions."""
from cxxprune.analyzer.model import DeclKind, TypeRef
from cxxprune.optimizer import DeclarationOptimizer

from helpers import TreeBuilder, optimize


class TestFunctions:
    """Unused functions and repeated prototypes."""

    def test_repeated_prototype_is_removed(self):
        """A second prototype before the body goes."""
        code = "void f();\nvoid f();\nvoid f() {}\nint main() { f(); }\n"
        b = TreeBuilder(code)
        first = b.add(DeclKind.FUNCTION, "f", "void f()")
        b.add(DeclKind.FUNCTION, "f", "void f()", occurrence=2, redeclares=first.id)
        b.add(DeclKind.FUNCTION, "f", "void f() {}", is_definition=True, redeclares=first.id)
        b.main("int main() { f(); }", first)

        assert optimize(b) == "void f();\nvoid f() {}\nint main() { f(); }\n"

    def test_prototype_after_the_body_is_removed(self):
        """A prototype repeated after the definition goes, the leading one stays."""
        code = "void f();\nvoid f() {}\nvoid f();\nint main() { f(); }\n"
        b = TreeBuilder(code)
        first = b.add(DeclKind.FUNCTION, "f", "void f()")
        b.add(DeclKind.FUNCTION, "f", "void f() {}", is_definition=True, redeclares=first.id)
        b.add(DeclKind.FUNCTION, "f", "void f()", occurrence=3, redeclares=first.id)
        b.main("int main() { f(); }", first)

        assert optimize(b) == "void f();\nvoid f() {}\nint main() { f(); }\n"

    def test_trailing_comment_goes_with_the_function(self):
        """A comment ending the line of a deleted function is deleted too."""
        code = "int dead() { return 1; } // trailing\nint main() { return 0; }\n"
        b = TreeBuilder(code)
        b.add(DeclKind.FUNCTION, "dead", "int dead() { return 1; }", is_definition=True)
        b.main("int main() { return 0; }")

        assert optimize(b) == "int main() { return 0; }\n"

    def test_unused_function_goes_with_its_comment(self):
        """An unused function takes its doc comment with it."""
        code = "/// Helper nobody calls.\nint helper() { return 1; }\nint main() { return 0; }\n"
        b = TreeBuilder(code)
        b.add(DeclKind.FUNCTION, "helper", "int helper() { return 1; }", is_definition=True,
              comment=b.span("/// Helper nobody calls."))
        b.main("int main() { return 0; }")

        assert optimize(b) == "int main() { return 0; }\n"

    def test_defaulted_and_deleted_members_stay(self):
        """Defaulted and deleted members are never removed."""
        code = ("struct S {\n  S() = default;\n  S(const S&) = delete;\n"
                "  void unused() {}\n};\nint main() { S s; }\n")
        b = TreeBuilder(code)
        s = b.add(DeclKind.RECORD, "S", code[:code.index("};") + 1], is_definition=True)
        b.add(DeclKind.FUNCTION, "S", "S() = default", parent=s, is_defaulted_or_deleted=True)
        b.add(DeclKind.FUNCTION, "S", "S(const S&) = delete", parent=s, is_defaulted_or_deleted=True)
        b.add(DeclKind.FUNCTION, "unused", "void unused() {}", parent=s, is_definition=True)
        b.main("int main() { S s; }", s)

        assert optimize(b) == (
            "struct S {\n  S() = default;\n  S(const S&) = delete;\n};\nint main() { S s; }\n"
        )

    def test_unused_function_template(self):
        """Only the used function template stays."""
        code = ("template <class T> T twice(T x) { return x + x; }\n"
                "template <class T> T thrice(T x) { return 3 * x; }\n"
                "int main() { return twice(1); }\n")
        b = TreeBuilder(code)
        twice = b.add(DeclKind.FUNCTION_TEMPLATE, "twice",
                      "template <class T> T twice(T x) { return x + x; }")
        twice_pattern = b.add(DeclKind.FUNCTION, "twice", "T twice(T x) { return x + x; }",
                              parent=twice, described_template=twice.id, is_definition=True)
        twice.templated = twice_pattern.id
        thrice = b.add(DeclKind.FUNCTION_TEMPLATE, "thrice",
                       "template <class T> T thrice(T x) { return 3 * x; }")
        thrice_pattern = b.add(DeclKind.FUNCTION, "thrice", "T thrice(T x) { return 3 * x; }",
                               parent=thrice, described_template=thrice.id, is_definition=True)
        thrice.templated = thrice_pattern.id
        instance = b.tree.add(DeclKind.FUNCTION, "twice", twice_pattern.extent, parent=None,
                              template_origin=twice.id, is_instantiation=True, is_definition=True)
        b.main("int main() { return twice(1); }", instance)

        assert optimize(b) == (
            "template <class T> T twice(T x) { return x + x; }\nint main() { return twice(1); }\n"
        )


class TestScopes:
    """Namespaces, classes and what happens to their members."""

    def test_namespace_occurrences_are_independent(self):
        """An unused reopening of a namespace goes alone."""
        code = ("namespace a { int f() { return 1; } }\n"
                "namespace a { int g() { return 2; } }\n"
                "int main() { return a::f(); }\n")
        b = TreeBuilder(code)
        first = b.add(DeclKind.NAMESPACE, "a", "namespace a { int f() { return 1; } }")
        second = b.add(DeclKind.NAMESPACE, "a", "namespace a { int g() { return 2; } }",
                       redeclares=first.id)
        f = b.add(DeclKind.FUNCTION, "f", "int f() { return 1; }", parent=first, is_definition=True)
        b.add(DeclKind.FUNCTION, "g", "int g() { return 2; }", parent=second, is_definition=True)
        b.main("int main() { return a::f(); }", f)

        assert optimize(b) == (
            "namespace a { int f() { return 1; } }\nint main() { return a::f(); }\n"
        )

    def test_outer_deletion_wins(self):
        """Deleting a class drops the deletions of its members."""
        code = "struct Dead {\n  int helper() { return 1; }\n};\nint main() {}\n"
        b = TreeBuilder(code)
        dead = b.add(DeclKind.RECORD, "Dead", code[:code.index("};") + 1], is_definition=True)
        b.add(DeclKind.FUNCTION, "helper", "int helper() { return 1; }", parent=dead,
              is_definition=True)
        b.main("int main() {}")

        optimizer = DeclarationOptimizer(keep_marker="caide keep", all_comments=False)
        assert optimizer.optimize(b.tree) == "int main() {}\n"
        assert len(optimizer.last_rewriter.removed) == 1, "member deletion must be dropped"

    def test_record_inside_variable_declaration_goes_with_it(self):
        """struct P {...} p; goes whole when p is unused."""
        code = "struct P { int x; } p;\nint main() {}\n"
        b = TreeBuilder(code)
        record = b.add(DeclKind.RECORD, "P", "struct P { int x; }", is_definition=True)
        b.add(DeclKind.FIELD, "x", "int x", parent=record)
        b.add_variables("struct P { int x; } p", ["p"], type=TypeRef.record(record.id))
        b.main("int main() {}")

        assert optimize(b) == "int main() {}\n"

    def test_record_inside_used_variable_declaration_stays(self):
        """struct P {...} p; stays whole when p is used."""
        code = "struct P { int x; } p;\nint main() { return p.x; }\n"
        b = TreeBuilder(code)
        record = b.add(DeclKind.RECORD, "P", "struct P { int x; }", is_definition=True)
        x = b.add(DeclKind.FIELD, "x", "int x", parent=record)
        p, = b.add_variables("struct P { int x; } p", ["p"], type=TypeRef.record(record.id))
        b.main("int main() { return p.x; }", p, x)

        assert optimize(b) == code


class TestTypeAliases:
    """typedef, using and alias templates."""

    def test_unused_aliases_are_removed(self):
        """Unused typedefs and alias templates go."""
        code = ("typedef int Used;\ntypedef int Unused;\n"
                "template <class T> using Ptr = T*;\n"
                "int main() { Used x = 0; return x; }\n")
        b = TreeBuilder(code)
        used = b.add(DeclKind.TYPEDEF, "Used", "typedef int Used")
        b.add(DeclKind.TYPEDEF, "Unused", "typedef int Unused")
        alias = b.add(DeclKind.ALIAS_TEMPLATE, "Ptr", "template <class T> using Ptr = T*")
        pattern = b.add(DeclKind.TYPEDEF, "Ptr", "using Ptr = T*", parent=alias,
                        described_template=alias.id)
        alias.templated = pattern.id
        b.main("int main() { Used x = 0; return x; }", used)

        assert optimize(b) == "typedef int Used;\nint main() { Used x = 0; return x; }\n"

    def test_used_alias_template_stays(self):
        """A used alias template stays."""
        code = "template <class T> using Ptr = T*;\nint main() { Ptr<int> p = 0; }\n"
        b = TreeBuilder(code)
        alias = b.add(DeclKind.ALIAS_TEMPLATE, "Ptr", "template <class T> using Ptr = T*")
        pattern = b.add(DeclKind.TYPEDEF, "Ptr", "using Ptr = T*", parent=alias,
                        described_template=alias.id)
        alias.templated = pattern.id
        b.main("int main() { Ptr<int> p = 0; }", alias)

        assert optimize(b) == code


class TestUsingDirectives:
    """Only the first directive per namespace survives."""

    def test_repeated_directive_is_removed(self):
        """A second using-directive for a namespace goes."""
        code = ("namespace n { int v() { return 1; } }\n"
                "using namespace n;\nusing namespace n;\n"
                "int main() { return v(); }\n")
        b = TreeBuilder(code)
        n = b.add(DeclKind.NAMESPACE, "n", "namespace n { int v() { return 1; } }")
        v = b.add(DeclKind.FUNCTION, "v", "int v() { return 1; }", parent=n, is_definition=True)
        b.add(DeclKind.USING_DIRECTIVE, "", "using namespace n", nominated=n.id)
        b.add(DeclKind.USING_DIRECTIVE, "", "using namespace n", occurrence=2, nominated=n.id)
        b.main("int main() { return v(); }", v)

        assert optimize(b) == (
            "namespace n { int v() { return 1; } }\nusing namespace n;\n"
            "int main() { return v(); }\n"
        )

    def test_reopened_namespace_counts_as_the_same(self):
        """Directives naming a reopened namespace are repeats."""
        code = ("namespace n { int v() { return 1; } }\n"
                "using namespace n;\n"
                "namespace n { int w() { return 2; } }\n"
                "using namespace n;\n"
                "int main() { return v() + w(); }\n")
        b = TreeBuilder(code)
        first = b.add(DeclKind.NAMESPACE, "n", "namespace n { int v() { return 1; } }")
        b.add(DeclKind.USING_DIRECTIVE, "", "using namespace n", nominated=first.id)
        second = b.add(DeclKind.NAMESPACE, "n", "namespace n { int w() { return 2; } }",
                       redeclares=first.id)
        b.add(DeclKind.USING_DIRECTIVE, "", "using namespace n", occurrence=2,
              nominated=second.id)
        v = b.add(DeclKind.FUNCTION, "v", "int v() { return 1; }", parent=first, is_definition=True)
        w = b.add(DeclKind.FUNCTION, "w", "int w() { return 2; }", parent=second, is_definition=True)
        b.main("int main() { return v() + w(); }", v, w)

        assert optimize(b) == (
            "namespace n { int v() { return 1; } }\nusing namespace n;\n"
            "namespace n { int w() { return 2; } }\n"
            "int main() { return v() + w(); }\n"
        )


def test_empty_declarations_are_removed():
    """Stray semicolons are deleted."""
    code = "int main() {}\n;\n"
    b = TreeBuilder(code)
    b.main("int main() {}")
    b.add(DeclKind.EMPTY, "", extent=b.span(";"))

    assert optimize(b) == "int main() {}\n"


def test_keep_marker_protects_a_declaration():
    """Only the configured marker keeps a declaration."""
    code = "// caide keep\nint kept() { return 1; }\nint main() {}\n"
    b = TreeBuilder(code)
    b.add(DeclKind.FUNCTION, "kept", "int kept() { return 1; }", is_definition=True,
          comment=b.span("// caide keep"))
    b.main("int main() {}")

    assert optimize(b) == code
    assert optimize(b, keep_marker="KEEP") == "int main() {}\n"
