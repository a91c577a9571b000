# tests/core/traceability/test_run_manifest.py
"""
Testes do Manifest de runs (traceability).

Os testes garantem que:
- o Manifest inicial contém run, inputs e Event Log vazio
- eventos são adicionados somente por chamadas explícitas à API
- a ordem de inserção dos eventos é preservada
- o estado incremental por nó acompanha os eventos
- `run_finished` calcula status e duração
- save/load preservam o conteúdo (JSON determinístico)

Decisões arquiteturais:
    - UTC é o timezone canônico
    - Timestamps naive são tratados como UTC
"""

from datetime import datetime, timedelta, timezone

from branchflow.core.traceability import manifest as mf


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _manifest():
    return mf.create_manifest(
        run_id="run-1",
        started_at=T0,
        version="0.1.0",
        config_hash="cfg",
        plan_hash="plan",
    )


def test_create_manifest_minimal_structure():
    m = _manifest()

    assert m.run == {
        "run_id": "run-1",
        "started_at": "2026-01-01T12:00:00+00:00",
        "branchflow_version": "0.1.0",
    }
    assert m.inputs == {"config_hash": "cfg", "plan_hash": "plan"}
    assert m.nodes == {}
    assert m.events == []


def test_naive_timestamps_are_treated_as_utc():
    m = mf.create_manifest(
        run_id="r", started_at=datetime(2026, 1, 1), version="v", config_hash="c", plan_hash="p"
    )
    assert m.run["started_at"].endswith("+00:00")


def test_events_preserve_insertion_order():
    m = _manifest()
    mf.add_event(m, event_type="custom_b", ts=T0 + timedelta(seconds=2))
    mf.add_event(m, event_type="custom_a", ts=T0 + timedelta(seconds=1), node_id="x", payload={"k": 1})

    assert m.event_types() == ["custom_b", "custom_a"]
    assert m.events[1] == {
        "event_type": "custom_a",
        "timestamp": "2026-01-01T12:00:01+00:00",
        "node_id": "x",
        "payload": {"k": 1},
    }


def test_node_lifecycle_updates_node_state():
    m = _manifest()
    mf.node_dispatched(m, node_id="a", ts=T0, task="a", kind="static", reason="missing")
    mf.node_completed(m, node_id="a", ts=T0 + timedelta(seconds=1), result={"value_hash": "h", "bytes": 10})
    mf.node_failed(m, node_id="b", ts=T0, error={"type": "COMPUTATION_ERROR", "message": "boom"})
    mf.node_skipped(m, node_id="c", ts=T0, task="c", kind="static")

    assert m.nodes["a"]["status"] == "completed"
    assert m.nodes["a"]["reason"] == "missing"
    assert m.nodes["a"]["value_hash"] == "h"
    assert m.nodes["b"]["status"] == "errored"
    assert m.nodes["b"]["error"]["type"] == "COMPUTATION_ERROR"
    assert m.nodes["c"]["status"] == "skipped"
    assert m.event_types() == ["node_dispatched", "node_completed", "node_failed", "node_skipped"]


def test_branches_expanded_records_children():
    m = _manifest()
    mf.branches_expanded(m, pattern_id="p", ts=T0, children=["p_1", "p_2"])

    assert m.nodes["p"]["children"] == ["p_1", "p_2"]
    assert m.events[-1]["payload"] == {"count": 2}


def test_run_finished_sets_status_and_duration():
    m = _manifest()
    mf.run_finished(m, ts=T0 + timedelta(milliseconds=1500), status="completed")

    assert m.run["status"] == "completed"
    assert m.run["duration_ms"] == 1500
    assert m.event_types() == ["run_finished"]


def test_save_and_load_round_trip(tmp_path):
    m = _manifest()
    mf.node_dispatched(m, node_id="a", ts=T0, task="a", kind="static", reason="missing")
    mf.run_finished(m, ts=T0, status="completed")

    path = tmp_path / "runs" / "run-1.json"
    mf.save_manifest(m, path)
    loaded = mf.load_manifest(path)

    assert loaded.to_dict() == m.to_dict()
    assert path.read_text(encoding="utf-8") == m.to_json()
