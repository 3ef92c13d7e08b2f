# tests/conftest.py
"""
Shared fixtures and model-building helpers for the leakcheck test suite.

Two ways to get a :class:`~leakcheck.model.ClassModel`:

* :func:`model_of` parses C++ text through the real front-end;
* :func:`make_model` assembles one from statement objects, so engine tests
  do not depend on the parser.
"""

from pathlib import Path

import pytest

from leakcheck.builder import build_class_model
from leakcheck.classifier import classify
from leakcheck.lifecycle import analyze_lifecycle
from leakcheck.model import RawClass, RawMember, RawMethod
from leakcheck.parser import parse_source
from leakcheck.registry import ClassRegistry

DATA_DIR = Path(__file__).resolve().parent / "data"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_models(source, file="test.cpp"):
    """Parse *source* and return ``{class name: ClassModel}``."""
    registry = ClassRegistry()
    registry.add_all(parse_source(source, file))
    return {raw.name: build_class_model(raw) for raw in registry}


def model_of(source, name=None, file="test.cpp"):
    models = build_models(source, file)
    if name is None:
        assert len(models) == 1, f"expected one class, got {sorted(models)}"
        return next(iter(models.values()))
    return models[name]


def diagnose(source, name=None, file="test.cpp", **engine_args):
    """Diagnostics for one class of *source*, without suppressions."""
    model = model_of(source, name, file)
    return classify(model, analyze_lifecycle(model, **engine_args))


def kinds(diagnostics):
    return [d.kind.value for d in diagnostics]


def make_model(name="Owner", fields=("p",), ctor=(), dtor=(), methods=None,
               opaque_dtor=False):
    """Build a ClassModel from statement lists.

    ``ctor=None`` means no constructor, ``dtor=None`` means no destructor.
    In *methods*, a ``None`` body declares the method without defining it.
    """
    members = [RawMember(f, "int", True, i + 1) for i, f in enumerate(fields)]
    raw_methods = []
    if ctor is not None:
        raw_methods.append(RawMethod(name, list(ctor), line=10, is_constructor=True,
                                     file="mem.cpp"))
    if dtor is not None:
        raw_methods.append(RawMethod("~" + name, list(dtor), line=20, is_destructor=True,
                                     opaque=opaque_dtor, file="mem.cpp"))
    for mname, body in (methods or {}).items():
        raw_methods.append(RawMethod(mname, None if body is None else list(body),
                                     line=30, file="mem.cpp"))
    return build_class_model(RawClass(name, "mem.cpp", 1, members, raw_methods))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def data_dir():
    return DATA_DIR


@pytest.fixture(scope="session")
def leak_sample(data_dir):
    return data_dir / "leak_sample.cpp"


@pytest.fixture(scope="session")
def clean_sample(data_dir):
    return data_dir / "clean.cpp"
