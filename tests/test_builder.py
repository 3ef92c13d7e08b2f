# tests/test_builder.py
"""
Tests for the class model builder: reference normalization, shadowing,
field inference, site ids and constructor prologues.
"""

from leakcheck.builder import LOCAL_MARK, build_class_model, build_class_models
from leakcheck.model import (
    Allocation,
    Assignment,
    Branch,
    Form,
    MethodCall,
    RawClass,
    RawMember,
    RawMethod,
    Release,
)
from tests.conftest import make_model, model_of


def all_sites(model):
    return [s.site for body in model.all_bodies() for s in body.iter_statements()]


class TestNormalization:

    def test_this_arrow_is_the_plain_field(self):
        model = make_model(ctor=[Allocation("this->p", Form.SCALAR, 11)],
                           dtor=[Release("p", Form.SCALAR, 21)])
        assert model.constructor.statements[0].target == "p"
        assert model.destructor.statements[0].target == "p"

    def test_callee_and_arguments(self):
        model = make_model(methods={"f": [MethodCall("this->g", ("this->p", "q"))]})
        (call,) = model.methods["f"].statements
        assert call.callee == "g"
        assert call.args == ("p", "q")

    def test_assignment_sides(self):
        model = make_model(fields=("p", "q"),
                           methods={"swap": [Assignment("this->p", "this->q")]})
        (stmt,) = model.methods["swap"].statements
        assert (stmt.target, stmt.source) == ("p", "q")

    def test_branch_guard_and_arms(self):
        branch = Branch(((Release("this->p"),), ()), guard="this->p")
        model = make_model(dtor=[branch])
        (built,) = model.destructor.statements
        assert built.guard == "p"
        assert built.arms[0][0].target == "p"

    def test_complex_references_are_left_alone(self):
        model = make_model(methods={"f": [Assignment("items[0]", "p")]})
        assert model.methods["f"].statements[0].target == "items[0]"


class TestShadowing:

    def test_parameter_shadowing_a_field(self):
        model = model_of(
            "class S { int *p; public:\n"
            "  void adopt(int *p) { delete p; this->p = p; }\n"
            "};"
        )
        release, assign = model.methods["adopt"].statements
        assert release.target == LOCAL_MARK + "p"
        assert assign.target == "p"
        assert assign.source == LOCAL_MARK + "p"

    def test_local_declaration_shadowing_a_field(self):
        model = model_of(
            "class S { int *p; public:\n"
            "  void f() { int *p = new int; delete p; }\n"
            "};"
        )
        alloc, release = model.methods["f"].statements
        assert alloc.target == release.target == "$p"

    def test_local_that_is_not_a_field_is_not_inferred(self):
        model = model_of(
            "class S { int *p; public:\n"
            "  void f() { char *tmp = new char[4]; delete[] tmp; }\n"
            "};"
        )
        assert [f.name for f in model.fields] == ["p"]


class TestFields:

    def test_inferred_field(self):
        model = make_model(fields=(), ctor=[Allocation("buf", Form.ARRAY, 12)])
        (field,) = model.fields
        assert field.name == "buf"
        assert field.is_pointer
        assert field.line == 12

    def test_declared_non_pointer_used_as_target_becomes_pointer(self):
        raw = RawClass("C", "c.cpp", 1,
                       [RawMember("handle", "Handle", False, 2)],
                       [RawMethod("C", [Allocation("handle")], is_constructor=True)])
        model = build_class_model(raw)
        assert model.field_named("handle").is_pointer

    def test_plain_member_stays_non_pointer(self):
        raw = RawClass("C", "c.cpp", 1, [RawMember("count", "int", False, 2)])
        model = build_class_model(raw)
        assert not model.field_named("count").is_pointer
        assert model.pointer_fields == ()

    def test_template_member_is_not_a_pointer(self):
        model = model_of("class T { std::vector<int*> items; int *raw; };")
        assert [f.name for f in model.pointer_fields] == ["raw"]


class TestSites:

    def test_sites_are_unique(self):
        model = make_model(
            fields=("p", "q"),
            ctor=[Allocation("p"), Allocation("q", Form.ARRAY)],
            dtor=[Branch(((Release("p"),), (Assignment("p", "nullptr"),)), guard="p"),
                  Release("q", Form.ARRAY)],
            methods={"reset": [Release("p"), Allocation("p")]},
        )
        sites = all_sites(model)
        assert len(sites) == 8
        assert len(set(sites)) == len(sites)
        assert all(s >= 0 for s in sites)


class TestConstructors:

    def test_prologue_leads_every_constructor(self):
        model = model_of(
            "class P {\n"
            "  int *buf = new int[8];\n"
            "public:\n"
            "  P() { }\n"
            "  P(int n) { }\n"
            "};"
        )
        assert len(model.constructors) == 2
        for ctor in model.constructors:
            assert ctor.statements[0].target == "buf"
            assert ctor.statements[0].form is Form.ARRAY
        assert model.constructors[0].statements[0].site != model.constructors[1].statements[0].site

    def test_init_list_allocation(self):
        model = model_of("class L { int *p; public: L() : p(new int) { } };")
        (alloc,) = model.constructor.statements
        assert alloc == Allocation("p", Form.SCALAR, 1, site=alloc.site)

    def test_synthesized_constructor_for_member_initializers(self):
        model = model_of("class D { int *p = new int; };")
        ctor = model.constructor
        assert ctor is not None
        assert ctor.name == "D"
        assert [s.target for s in ctor.statements] == ["p"]

    def test_no_constructor(self):
        model = make_model(ctor=None)
        assert model.constructors == ()
        assert model.constructor is None

    def test_declared_only_constructor_is_dropped(self):
        raw = RawClass("C", "c.cpp", 1, [RawMember("p", "int", True)],
                       [RawMethod("C", None, is_constructor=True)])
        assert build_class_model(raw).constructors == ()


class TestBodies:

    def test_declared_only_method_is_unresolvable(self):
        model = make_model(methods={"finish": None})
        body = model.methods["finish"]
        assert body.statements is None
        assert not body.resolvable

    def test_opaque_destructor(self):
        model = make_model(dtor=[], opaque_dtor=True)
        assert model.destructor.opaque
        assert not model.destructor.resolvable

    def test_no_destructor(self):
        assert make_model(dtor=None).destructor is None

    def test_first_definition_with_body_wins(self):
        raw = RawClass("C", "c.cpp", 1, [RawMember("p", "int", True)], [
            RawMethod("f", None),
            RawMethod("f", [Release("p")], line=5),
            RawMethod("f", [Allocation("p")], line=9),
        ])
        body = build_class_model(raw).methods["f"]
        assert body.line == 5
        assert isinstance(body.statements[0], Release)

    def test_method_file_defaults_to_class_file(self):
        raw = RawClass("C", "c.cpp", 1, [], [RawMethod("f", [])])
        assert build_class_model(raw).methods["f"].file == "c.cpp"

    def test_build_many(self):
        models = build_class_models([RawClass("A"), RawClass("B")])
        assert [m.name for m in models] == ["A", "B"]

    def test_bases_and_suppressions_are_carried(self):
        raw = RawClass("C", "c.cpp", 1, bases=("Base",),
                       suppressions={("c.cpp", 4): frozenset({"*"})})
        model = build_class_model(raw)
        assert model.bases == frozenset({"Base"})
        assert model.suppressions == {("c.cpp", 4): frozenset({"*"})}
