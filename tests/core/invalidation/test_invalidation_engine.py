# tests/core/invalidation/test_invalidation_engine.py
"""
Testes do Invalidation Engine e dos fingerprints de código/definição.

Os testes asseguram que:
- cada motivo de staleness é detectado na ordem documentada
- um nó com registro íntegro e inputs iguais é `fresh`
- fingerprints de código ignoram indentação e desembrulham partial
- fingerprints de definição mudam com literais, formato e iteração
"""

import functools

import pytest

from branchflow.core.graph import build_graph
from branchflow.core.invalidation import InvalidationEngine, code_fingerprint, definition_fingerprint
from branchflow.core.plan import StorageFormat, task
from branchflow.core.storage import FingerprintRecord


def scale(x, factor=1):
    return x * factor


def scale_v2(x, factor=1):
    return x * factor + 0


def _node(t):
    return build_graph([t]).node(t.name)


def _store_fresh(store, engine, node, value=1, inputs=None):
    code, definition = engine.hashes_for(node.task)
    record = FingerprintRecord(
        node_id=node.node_id,
        task=node.name,
        kind=node.kind.value,
        code_hash=code,
        definition_hash=definition,
        input_hashes=dict(inputs or {}),
        format="joblib",
    )
    store.put(node.node_id, value, record)
    return store.get_metadata(node.node_id)


def test_fresh_when_everything_matches(memory_store):
    engine = InvalidationEngine(memory_store)
    node = _node(task("n", scale, 2))
    _store_fresh(memory_store, engine, node)

    verdict = engine.check(node, {})
    assert (verdict.stale, verdict.reason) == (False, "fresh")
    assert not engine.is_stale(node, {})


def test_missing_record(memory_store):
    engine = InvalidationEngine(memory_store)
    assert engine.check(_node(task("n", scale, 2)), {}).reason == "missing"


def test_forced_wins(memory_store):
    node = _node(task("n", scale, 2))
    _store_fresh(memory_store, InvalidationEngine(memory_store), node)

    assert InvalidationEngine(memory_store, force=["n"]).check(node, {}).reason == "forced"


def test_invalidated_and_errored(memory_store):
    engine = InvalidationEngine(memory_store)
    node = _node(task("n", scale, 2))
    rec = _store_fresh(memory_store, engine, node)

    memory_store.put_record(rec.supersede(invalidated=True))
    assert engine.check(node, {}).reason == "invalidated"

    memory_store.put_record(rec.supersede(error={"type": "COMPUTATION_ERROR", "message": "x"}))
    assert engine.check(node, {}).reason == "errored"


def test_code_change_is_detected(memory_store):
    old = _node(task("n", scale, 2))
    _store_fresh(memory_store, InvalidationEngine(memory_store), old)

    new = _node(task("n", scale_v2, 2))
    assert InvalidationEngine(memory_store).check(new, {}).reason == "code"


def test_definition_change_is_detected(memory_store):
    _store_fresh(memory_store, InvalidationEngine(memory_store), _node(task("n", scale, 2)))

    assert InvalidationEngine(memory_store).check(_node(task("n", scale, 3)), {}).reason == "definition"
    assert (
        InvalidationEngine(memory_store).check(_node(task("n", scale, 2, format="pickle")), {}).reason
        == "definition"
    )


def test_input_change_is_detected(memory_store):
    engine = InvalidationEngine(memory_store)
    node = _node(task("n", scale, 2))
    _store_fresh(memory_store, engine, node, inputs={"u": "h1"})

    assert engine.check(node, {"u": "h1"}).reason == "fresh"
    assert engine.check(node, {"u": "h2"}).reason == "inputs"


def test_missing_value_blob_is_detected(memory_store):
    engine = InvalidationEngine(memory_store)
    node = _node(task("n", scale, 2))
    rec = _store_fresh(memory_store, engine, node)
    memory_store.backend.delete(rec.value_ref)

    assert engine.check(node, {}).reason == "missing_value"


def test_default_format_applies_to_tasks_without_format():
    t = task("n", scale, 2)
    assert InvalidationEngine(None, default_format="json").format_for(t) is StorageFormat.JSON
    assert InvalidationEngine(None).format_for(task("m", scale, format="pickle")) is StorageFormat.PICKLE


def test_code_fingerprint_is_stable_and_sensitive():
    assert code_fingerprint(scale) == code_fingerprint(scale)
    assert code_fingerprint(scale) != code_fingerprint(scale_v2)


def test_code_fingerprint_of_builtins_and_partials():
    assert code_fingerprint(sum) == code_fingerprint(sum)
    assert code_fingerprint(sum) != code_fingerprint(max)

    p1 = functools.partial(scale, factor=2)
    p2 = functools.partial(scale, factor=3)
    assert code_fingerprint(p1) != code_fingerprint(p2)
    assert code_fingerprint(p1) != code_fingerprint(scale)


def test_code_fingerprint_ignores_enclosing_indentation():
    def make():
        def inner(x):
            return x + 1
        return inner

    def inner(x):
        return x + 1

    assert code_fingerprint(make()) == code_fingerprint(inner)


@pytest.mark.parametrize(
    "other",
    [
        task("n", scale, 3),
        task("n", scale, 2, factor=5),
        task("n", scale, 2, iteration="frame"),
    ],
)
def test_definition_fingerprint_changes(other):
    base = definition_fingerprint(task("n", scale, 2), StorageFormat.JOBLIB)
    assert definition_fingerprint(other, StorageFormat.JOBLIB) != base
    assert definition_fingerprint(task("n", scale, 2), StorageFormat.JSON) != base
