# tests/test_registry.py
"""
Tests for ClassRegistry: merging a class split across a header and an
implementation file, and keeping unrelated same-named classes apart.
"""

import pytest

from leakcheck.model import Allocation, Form, RawClass, RawMember, RawMethod, Release
from leakcheck.parser import parse_source
from leakcheck.registry import ClassRegistry, complementary, merge_raw_classes

HEADER = """
class Gauge {
  int *readings;
  char *unit;
public:
  Gauge();
  ~Gauge();
  void sample();
};
"""

IMPL = """
Gauge::Gauge() {
  readings = new int[256];
  unit = new char[8];
}
Gauge::~Gauge() {
  delete[] readings;
}
"""


@pytest.fixture()
def split_registry():
    registry = ClassRegistry()
    registry.add_all(parse_source(IMPL, "gauge.cpp"))
    registry.add_all(parse_source(HEADER, "gauge.h"))
    return registry


class TestHeaderMerge:

    def test_one_class(self, split_registry):
        assert len(split_registry) == 1
        assert "Gauge" in split_registry
        assert split_registry.names() == ["Gauge"]

    def test_members_come_from_header(self, split_registry):
        raw = split_registry.get("Gauge")
        assert [m.name for m in raw.members] == ["readings", "unit"]
        assert raw.file == "gauge.h"

    def test_bodies_come_from_implementation(self, split_registry):
        raw = split_registry.get("Gauge")
        assert raw.constructor.file == "gauge.cpp"
        assert raw.constructor.statements == [
            Allocation("readings", Form.ARRAY, 3),
            Allocation("unit", Form.ARRAY, 4),
        ]
        assert raw.destructor.statements == [Release("readings", Form.ARRAY, 7)]

    def test_declared_method_is_kept(self, split_registry):
        raw = split_registry.get("Gauge")
        (sample,) = [m for m in raw.methods if m.name == "sample"]
        assert not sample.has_body

    def test_contributing_files(self, split_registry):
        assert split_registry.files_of("Gauge") == ["gauge.cpp", "gauge.h"]

    def test_order_of_files_does_not_matter(self):
        registry = ClassRegistry()
        registry.add_all(parse_source(HEADER, "gauge.h"))
        registry.add_all(parse_source(IMPL, "gauge.cpp"))
        raw = registry.get("Gauge")
        assert raw.file == "gauge.h"
        assert raw.constructor.has_body
        assert raw.destructor.has_body


class TestSeparation:

    def test_merge_disabled(self):
        registry = ClassRegistry(merge_headers=False)
        registry.add_all(parse_source(HEADER, "gauge.h"))
        registry.add_all(parse_source(IMPL, "gauge.cpp"))
        assert len(registry) == 2

    def test_two_complete_definitions_stay_apart(self):
        a = parse_source("class Item { int *p; public: Item() { p = new int; } };", "a.cpp")
        b = parse_source("class Item { char *q; public: ~Item() { } };", "b.cpp")
        registry = ClassRegistry()
        registry.add_all(a + b)
        assert len(registry) == 2
        assert [r.file for r in registry] == ["a.cpp", "b.cpp"]

    def test_complementary(self):
        header = RawClass("C", "c.h", members=[RawMember("p", is_pointer=True)])
        impl = RawClass("C", "c.cpp")
        full_a = RawClass("C", "a.cpp", members=[RawMember("p", is_pointer=True)])
        full_b = RawClass("C", "b.cpp", members=[RawMember("q", is_pointer=True)])
        assert complementary(header, impl)
        assert complementary(full_a, impl)
        assert complementary(full_a, header)
        assert not complementary(full_a, full_b)


class TestMergeRules:

    def test_body_with_more_lifecycle_statements_wins(self):
        thin = RawMethod("~C", [], is_destructor=True, file="a.cpp")
        rich = RawMethod("~C", [Release("p")], is_destructor=True, file="b.cpp")
        merged = merge_raw_classes(
            RawClass("C", "c.h", members=[RawMember("p", is_pointer=True)], methods=[thin]),
            RawClass("C", "c.cpp", methods=[rich]),
        )
        assert merged.destructor is rich

    def test_members_are_unioned(self):
        merged = merge_raw_classes(
            RawClass("C", "c.h", members=[RawMember("p"), RawMember("q")]),
            RawClass("C", "c.cpp", members=[RawMember("q"), RawMember("r")]),
        )
        assert [m.name for m in merged.members] == ["p", "q", "r"]

    def test_bases_and_suppressions_are_kept(self):
        merged = merge_raw_classes(
            RawClass("C", "c.h", bases=("A",), suppressions={("c.h", 1): frozenset({"*"})}),
            RawClass("C", "c.cpp", bases=("A", "B"),
                     suppressions={("c.cpp", 9): frozenset({"double-release"})}),
        )
        assert merged.bases == ("A", "B")
        assert set(merged.suppressions) == {("c.h", 1), ("c.cpp", 9)}

    def test_repr(self):
        assert repr(ClassRegistry()) == "ClassRegistry(classes=0, merge_headers=True)"
