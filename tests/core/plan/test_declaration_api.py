# tests/core/plan/test_declaration_api.py
"""
Testes da API de declaração (`task`, `ref`, patterns) e do PlanSource.

Os testes asseguram que:
- opções textuais são normalizadas para enums
- opções inválidas geram PlanDefinitionError na declaração
- nomes duplicados geram DuplicateTaskError
- a ordem de declaração é preservada
- `refs()` e `literal_bindings()` descrevem os bindings de forma estável
"""

import pytest

from branchflow.core.exceptions import DuplicateTaskError, PlanDefinitionError
from branchflow.core.plan import (
    Deployment,
    Iteration,
    MemoryPolicy,
    PatternKind,
    PlanSource,
    Ref,
    StorageFormat,
    cross_pattern,
    map_pattern,
    ref,
    task,
)


def _f(*args, **kwargs):
    return args, kwargs


def test_task_normalizes_string_options():
    t = task("t", _f, format="json", memory="transient", deployment="main", iteration="frame")

    assert t.options.format is StorageFormat.JSON
    assert t.options.memory is MemoryPolicy.TRANSIENT
    assert t.options.deployment is Deployment.MAIN
    assert t.options.iteration is Iteration.FRAME


def test_task_defaults_inherit_engine_format_and_memory():
    t = task("t", _f)
    assert t.options.format is None
    assert t.options.memory is None
    assert t.options.deployment is Deployment.WORKER


@pytest.mark.parametrize("kwargs", [{"format": "xml"}, {"memory": "cold"}, {"deployment": "gpu"}])
def test_task_rejects_invalid_options(kwargs):
    with pytest.raises(PlanDefinitionError) as exc:
        task("t", _f, **kwargs)
    assert exc.value.hint


def test_task_rejects_non_callable_and_empty_name():
    with pytest.raises(PlanDefinitionError):
        task("t", 42)
    with pytest.raises(PlanDefinitionError):
        task("", _f)
    with pytest.raises(PlanDefinitionError):
        ref("  ")


def test_patterns_accept_names_or_refs():
    p = cross_pattern("a", ref("b"))
    assert p.kind is PatternKind.CROSS
    assert p.names == ("a", "b")
    assert map_pattern("a").describe() == "map(a)"


def test_patterns_reject_empty_or_repeated_names():
    with pytest.raises(PlanDefinitionError):
        map_pattern()
    with pytest.raises(PlanDefinitionError):
        cross_pattern("a", "a")


def test_refs_are_ordered_and_unique():
    t = task("t", _f, ref("b"), 3, ref("a"), other=ref("b"), k=ref("c"))
    assert t.refs() == ["b", "a", "c"]


def test_literal_bindings_mark_refs_and_sort_kwargs():
    t = task("t", _f, ref("a"), 1, z=2, y=ref("b"))
    args, kwargs = t.literal_bindings()

    assert args == (("__ref__", "a"), 1)
    assert list(kwargs) == ["y", "z"]
    assert kwargs["y"] == ("__ref__", "b")


def test_ref_repr_is_readable():
    assert repr(Ref("a")) == "ref('a')"


def test_plan_source_preserves_declaration_order():
    source = PlanSource.of([task("z", _f), task("a", _f), task("m", _f)])

    assert source.names() == ["z", "a", "m"]
    assert [t.name for t in source] == ["z", "a", "m"]
    assert "a" in source and len(source) == 3
    assert PlanSource.of(source) is source


def test_plan_source_rejects_duplicates():
    with pytest.raises(DuplicateTaskError) as exc:
        PlanSource.of([task("a", _f), task("a", _f)])
    assert exc.value.details == {"task": "a"}


def test_plan_source_rejects_foreign_entries():
    with pytest.raises(PlanDefinitionError):
        PlanSource.of(["a"])


def test_plan_hash_is_stable_and_structural():
    a = PlanSource.of([task("a", _f), task("b", _f, ref("a"))])
    b = PlanSource.of([task("a", _f), task("b", _f, ref("a"))])
    c = PlanSource.of([task("a", _f), task("b", _f)])

    assert a.plan_hash() == b.plan_hash()
    assert a.plan_hash() != c.plan_hash()
