# tests/core/storage/test_fingerprint_store.py
"""
Testes do Fingerprint Store (LocalBackend e MemoryBackend).

Os testes asseguram que:
- put/get/get_metadata fazem round-trip do valor e do registro
- nós inexistentes retornam NotFound (sem exceção)
- blobs são content-addressed e compartilhados entre nós
- escritas não deixam arquivos temporários visíveis
- falhas de serialização viram StorageWriteError
- blobs corrompidos viram StorageReadError
- delete + collect_garbage liberam apenas blobs órfãos
"""

import pandas as pd
import pytest

from branchflow.core.exceptions import StorageReadError, StorageWriteError
from branchflow.core.storage import (
    FingerprintRecord,
    FingerprintStore,
    LocalBackend,
    MemoryBackend,
    NotFound,
    stored_form,
    value_fingerprint,
)


def _record(node_id, fmt="joblib", **kwargs):
    return FingerprintRecord(node_id=node_id, task=node_id, kind="static", format=fmt, **kwargs)


@pytest.fixture(params=["local", "memory"])
def any_store(request, tmp_path):
    if request.param == "local":
        return FingerprintStore(LocalBackend(tmp_path / "store"))
    return FingerprintStore(MemoryBackend())


def test_round_trip_value_and_metadata(any_store):
    ref = any_store.put("a", {"x": [1, 2, 3]}, _record("a", code_hash="c1", input_hashes={"u": "h"}))

    assert any_store.get("a") == {"x": [1, 2, 3]}
    meta = any_store.get_metadata("a")
    assert meta.value_hash == ref.value_hash == value_fingerprint({"x": [1, 2, 3]})
    assert meta.value_ref == ref.value_ref
    assert meta.bytes == ref.bytes > 0
    assert meta.code_hash == "c1"
    assert meta.input_hashes == {"u": "h"}
    assert meta.format == "joblib"


@pytest.mark.parametrize("fmt", ["joblib", "pickle", "json"])
def test_all_formats_round_trip(any_store, fmt):
    any_store.put("n", [1, "two", 3.0], _record("n", fmt=fmt))
    assert any_store.get("n") == [1, "two", 3.0]


def test_json_hash_matches_the_stored_form(any_store):
    value = [(1, 2), {3: "int key"}]
    ref = any_store.put("j", value, _record("j", fmt="json"))

    stored = any_store.get("j")
    assert stored == [[1, 2], {"3": "int key"}]
    assert stored == stored_form(value, "json")
    assert ref.value_hash == value_fingerprint(stored)
    assert stored_form((1, 2), "joblib") == (1, 2)


def test_dataframe_round_trip(any_store):
    df = pd.DataFrame({"x": [1, 2], "y": ["a", "b"]})
    any_store.put("df", df, _record("df"))
    pd.testing.assert_frame_equal(any_store.get("df"), df)


def test_missing_node_returns_not_found(any_store):
    assert any_store.get("ghost") is NotFound
    assert any_store.get_metadata("ghost") is NotFound
    assert not NotFound
    assert repr(NotFound) == "NotFound"


def test_identical_values_share_one_blob(any_store):
    r1 = any_store.put("a", [1, 2], _record("a"))
    r2 = any_store.put("b", [1, 2], _record("b"))

    assert r1.value_ref == r2.value_ref
    assert len(any_store.backend.keys("objects/")) == 1


def test_local_layout_and_no_temp_files(store, tmp_path):
    store.put("a", 1, _record("a"))
    root = tmp_path / "store"

    assert (root / "meta" / "a.json").is_file()
    files = [p for p in root.rglob("*") if p.is_file()]
    assert not [p for p in files if p.name.startswith(".tmp-")]
    blob = [p for p in files if "objects" in p.parts]
    assert len(blob) == 1
    assert blob[0].parent.name == blob[0].name[:2]


def test_node_ids_with_path_separators_are_quoted(store):
    store.put("group/a b", 1, _record("group/a b"))
    assert store.node_ids() == ["group/a b"]
    assert store.get("group/a b") == 1


def test_unserializable_value_raises_write_error(any_store):
    with pytest.raises(StorageWriteError) as exc:
        any_store.put("s", {1, 2, 3}, _record("s", fmt="json"))

    assert exc.value.details["node_id"] == "s"
    assert any_store.get_metadata("s") is NotFound


def test_corrupted_blob_raises_read_error(any_store):
    ref = any_store.put("a", [1, 2, 3], _record("a"))
    any_store.backend.write_bytes(ref.value_ref, b"definitely not joblib")

    with pytest.raises(StorageReadError):
        any_store.get("a")


def test_missing_blob_reads_as_not_found(any_store):
    ref = any_store.put("a", [1], _record("a"))
    any_store.backend.delete(ref.value_ref)

    assert any_store.get("a") is NotFound
    assert not any_store.has_value(any_store.get_metadata("a"))


def test_put_record_supersedes(any_store):
    any_store.put("a", 1, _record("a"))
    meta = any_store.get_metadata("a")
    any_store.put_record(meta.supersede(invalidated=True))

    again = any_store.get_metadata("a")
    assert again.invalidated is True
    assert again.value_ref == meta.value_ref
    assert any_store.get("a") == 1


def test_delete_and_collect_garbage(any_store):
    any_store.put("a", [1], _record("a"))
    any_store.put("b", [1], _record("b"))
    any_store.put("c", [2], _record("c"))

    assert any_store.delete("a") is True
    assert any_store.delete("a") is False
    assert any_store.collect_garbage() == []  # [1] ainda referenciado por b

    any_store.delete("b")
    any_store.delete("c")
    assert len(any_store.collect_garbage()) == 2
    assert any_store.backend.keys("objects/") == []


def test_table_lists_one_row_per_node(any_store):
    assert any_store.table().empty

    any_store.put("a", [1], _record("a"))
    any_store.put("b", "x", _record("b", warnings=["UserWarning: w"]))
    table = any_store.table()

    assert list(table["node_id"]) == ["a", "b"]
    assert table.loc[table["node_id"] == "b", "warnings"].item() == "UserWarning: w"


def test_record_dict_round_trip():
    rec = _record("a", children=["c1"], error={"type": "X", "message": "m"}, iteration="list")
    assert FingerprintRecord.from_dict(rec.to_dict()) == rec
    assert rec.failed
