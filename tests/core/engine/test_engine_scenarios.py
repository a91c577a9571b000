# tests/core/engine/test_engine_scenarios.py
"""
Testes de ponta a ponta do Engine sobre o cenário canônico A × B.

A = [1, 2, 3], B = [10, 20]
    c = cross(A, B) → 6 branches
    m = map(A)      → 3 branches
    total = sum(c)

Os testes asseguram que:
- a primeira run constrói todos os nós e consolida os patterns
- uma segunda run sem mudanças não executa nada (todos skipped)
- anexar um elemento em A executa exatamente |B| novos branches de c
- mudanças em B criam apenas os branches das combinações novas
- ids de branch são idênticos entre stores diferentes
"""

from _tasks import add, double, identity, pair, parity, values

from branchflow.core.engine import Engine
from branchflow.core.plan import NodeStatus, cross_pattern, map_pattern, ref, task
from branchflow.core.storage import NotFound


def _branches(report, parent):
    return [nid for nid, n in report.nodes.items() if n.parent == parent]


def test_first_run_builds_everything(engine, scenario_plan):
    report = engine.run(scenario_plan())

    assert report.status == "completed"
    assert not report.failed
    assert len(_branches(report, "c")) == 6
    assert len(_branches(report, "m")) == 3
    assert len(report.nodes) == 14
    assert report.counts()["completed"] == 14
    assert sorted(report.executed) == sorted(
        nid for nid, n in report.nodes.items() if n.kind != "pattern"
    )

    assert engine.read_value("a") == [1, 2, 3]
    assert engine.read_value("c") == [11, 21, 12, 22, 13, 23]
    assert engine.read_value("m") == [2, 4, 6]
    assert engine.read_value("total") == 102


def test_cross_of_pairs_reuses_original_combinations(engine):
    def plan(a):
        return [
            task("A", values, a),
            task("B", values, [10, 20]),
            task("C", pair, ref("A"), ref("B"), pattern=cross_pattern("A", "B")),
        ]

    first = engine.run(plan([1, 2, 3]))
    assert engine.read_value("C") == [(1, 10), (1, 20), (2, 10), (2, 20), (3, 10), (3, 20)]

    report = engine.run(plan([1, 2, 3, 4]))
    new = [nid for nid in report.executed if report[nid].parent == "C"]

    assert sorted(engine.read_value(nid) for nid in new) == [(4, 10), (4, 20)]
    assert all(report[nid].status == NodeStatus.SKIPPED for nid in first.nodes if first[nid].parent == "C")
    assert engine.read_value("C")[-2:] == [(4, 10), (4, 20)]


def test_rerun_without_changes_is_a_no_op(make_engine, scenario_plan):
    make_engine().run(scenario_plan())

    report = make_engine().run(scenario_plan())

    assert report.status == "completed"
    assert report.executed == []
    assert set(n.status for n in report.nodes.values()) == {NodeStatus.SKIPPED}
    assert len(report.nodes) == 14


def test_appending_to_a_builds_exactly_b_new_cross_branches(engine, scenario_plan):
    first = engine.run(scenario_plan())
    old_c = set(_branches(first, "c"))

    report = engine.run(scenario_plan(a=(1, 2, 3, 4)))

    new_c = [nid for nid in report.executed if report[nid].parent == "c"]
    new_m = [nid for nid in report.executed if report[nid].parent == "m"]
    assert len(new_c) == 2
    assert len(new_m) == 1
    assert not old_c & set(new_c)
    assert all(report[nid].status == NodeStatus.SKIPPED for nid in old_c)
    assert report["b"].status == NodeStatus.SKIPPED
    assert set(report.executed) == {"a", "total", *new_c, *new_m}

    assert engine.read_value("c") == [11, 21, 12, 22, 13, 23, 14, 24]
    assert engine.read_value("total") == 140


def test_changing_b_rebuilds_only_new_combinations(engine, scenario_plan):
    engine.run(scenario_plan())

    report = engine.run(scenario_plan(b=(10, 30)))

    new_c = [nid for nid in report.executed if report[nid].parent == "c"]
    assert len(new_c) == 3
    assert engine.read_value("c") == [11, 31, 12, 32, 13, 33]


def test_branch_ids_are_identical_across_stores(tmp_path, scenario_plan):
    children = []
    for root in ("s1", "s2"):
        engine = Engine(config={"store": {"root": str(tmp_path / root)}})
        engine.run(scenario_plan())
        children.append(engine.get_metadata("c").children)

    assert children[0] == children[1]
    assert len(children[0]) == 6


def test_value_based_invalidation_stops_at_equal_values(engine):
    def plan(x):
        return [
            task("x", identity, x),
            task("p", parity, ref("x")),
            task("q", double, ref("p")),
        ]

    engine.run(plan(3))
    report = engine.run(plan(5))

    assert report.executed == ["x", "p"]
    assert report["q"].status == NodeStatus.SKIPPED
    assert engine.read_value("q") == 2


def test_empty_upstream_gives_zero_branches(engine):
    plan = [
        task("a", values, []),
        task("m", double, ref("a"), pattern=map_pattern("a")),
        task("t", sum, ref("m")),
    ]
    report = engine.run(plan)

    assert report.status == "completed"
    assert _branches(report, "m") == []
    assert engine.read_value("m") == []
    assert engine.read_value("t") == 0


def test_pattern_over_pattern_maps_branch_to_branch(engine):
    plan = [
        task("a", values, [1, 2, 3]),
        task("d", double, ref("a"), pattern=map_pattern("a")),
        task("dd", add, ref("d"), 1, pattern=map_pattern("d")),
    ]
    engine.run(plan)

    assert engine.read_value("dd") == [3, 5, 7]
    d_children = engine.get_metadata("d").children
    dd_parents = [engine.get_metadata(c).input_hashes["d"] for c in engine.get_metadata("dd").children]
    assert dd_parents == [engine.get_metadata(c).value_hash for c in d_children]


def test_missing_value_reads_not_found(engine):
    assert engine.read_value("never-built") is NotFound
