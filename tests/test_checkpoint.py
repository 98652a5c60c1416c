"""
Tests for checkpoint naming, persistence and resume.
"""

from collections import OrderedDict

import pytest
import torch

from neuroarm.checkpoint import CheckpointStore, RecordId, resume_population
from neuroarm.errors import CheckpointError, ShapeMismatch
from neuroarm.genome import Genome, Layer, shapes_match


def test_record_name_round_trip():
    record = RecordId("best", "Net", 7)
    assert record.format() == "best_Net_7.pt"
    assert RecordId.parse("best_Net_7.pt") == record
    assert RecordId.parse("best_Big_1234.pt") == RecordId("best", "Big", 1234)


@pytest.mark.parametrize("name", [
    "best_Net_abc.pt",
    "best_Net.pt",
    "best_Net_7.mpk",
    "best_Net_-3.pt",
    "best__7.pt",
    "notes.txt",
    "best_Net_7_extra.pt",
])
def test_record_parse_rejects_malformed(name):
    assert RecordId.parse(name) is None


def test_save_load_round_trip(tmp_path, tiny, generator):
    store = CheckpointStore(tmp_path)
    g = Genome.random(tiny, generator)

    record = store.save(g, "Tiny", 7)
    assert (tmp_path / "best_Tiny_7.pt").exists()

    loaded = store.load(record)
    assert shapes_match(loaded, g) and shapes_match(g, loaded)
    assert loaded.allclose(g)
    assert loaded.topology_name == "Tiny"


def test_list_recent_order_and_filtering(tmp_path, tiny, generator):
    store = CheckpointStore(tmp_path)
    g = Genome.random(tiny, generator)
    for seq in (3, 12, 1, 40, 7):
        store.save(g, "Tiny", seq)
    store.save(g, "Other", 99)
    (tmp_path / "best_Tiny_oops.pt").write_bytes(b"")
    (tmp_path / "readme.md").write_text("not a checkpoint")
    (tmp_path / "other_Tiny_100.pt").write_bytes(b"")

    recent = store.list_recent("Tiny", max_count=30)
    assert [r.sequence for r in recent] == [40, 12, 7, 3, 1]

    assert [r.sequence for r in store.list_recent("Tiny", max_count=2)] == [40, 12]
    assert store.next_sequence("Tiny") == 41
    assert store.next_sequence("Missing") == 0
    assert store.list_recent("Missing") == []


def test_list_recent_without_directory(tmp_path):
    store = CheckpointStore(tmp_path / "does-not-exist")
    assert store.list_recent("Tiny") == []


def test_load_failures(tmp_path):
    store = CheckpointStore(tmp_path)
    with pytest.raises(CheckpointError):
        store.load(RecordId("best", "Tiny", 1))

    for sequence, payload in enumerate((b"garbage", b"truncated", b""), start=2):
        (tmp_path / f"best_Tiny_{sequence}.pt").write_bytes(payload)
        with pytest.raises(CheckpointError):
            store.load(RecordId("best", "Tiny", sequence))


def test_load_checks_topology_shapes(tmp_path, tiny, generator):
    store = CheckpointStore(tmp_path)
    stale = Genome(OrderedDict(
        l1=Layer(torch.zeros(5, 4), torch.zeros(5)),
        l2=Layer(torch.zeros(3, 5), torch.zeros(3)),
        l3=Layer(torch.zeros(2, 3), torch.zeros(2)),
    ), "Tiny")
    record = store.save(stale, "Tiny", 1)

    assert store.load(record).layer_names == ["l1", "l2", "l3"]
    with pytest.raises(ShapeMismatch) as excinfo:
        store.load(record, tiny)
    assert "l1" in str(excinfo.value)

    good = store.save(Genome.random(tiny, generator), "Tiny", 2)
    assert store.load(good, tiny).shapes() == Genome.random(tiny, generator).shapes()


def test_save_failure_is_checkpoint_error(tmp_path, tiny, generator):
    blocker = tmp_path / "blocked"
    blocker.write_text("a file where the directory should be")
    store = CheckpointStore(blocker)
    with pytest.raises(CheckpointError):
        store.save(Genome.random(tiny, generator), "Tiny", 1)


def test_invalid_prefix(tmp_path):
    with pytest.raises(CheckpointError):
        CheckpointStore(tmp_path, prefix="has_delimiter")


def test_resume_cycles_records_into_elites(tmp_path, tiny, generator, rng):
    store = CheckpointStore(tmp_path)
    first = Genome.random(tiny, generator)
    second = Genome.random(tiny, generator)
    store.save(first, "Tiny", 1)
    store.save(second, "Tiny", 2)

    population = resume_population(store, tiny, 12, 0.25, 2, rng, generator)

    assert len(population) == 12
    elites = population[-3:]
    # Most recent first, cycled
    assert elites[0].allclose(second)
    assert elites[1].allclose(first)
    assert elites[2].allclose(second)


def test_resume_without_records_is_fresh(tmp_path, tiny, generator, rng):
    store = CheckpointStore(tmp_path)
    population = resume_population(store, tiny, 8, 0.25, 1, rng, generator)
    assert len(population) == 8
    assert all(g.topology_name == "Tiny" for g in population)


def test_resume_skips_unreadable_records(tmp_path, tiny, generator, rng):
    store = CheckpointStore(tmp_path)
    good = Genome.random(tiny, generator)
    store.save(good, "Tiny", 1)
    (tmp_path / "best_Tiny_2.pt").write_bytes(b"truncated")

    population = resume_population(store, tiny, 8, 0.25, 1, rng, generator)

    assert len(population) == 8
    assert all(g.allclose(good) for g in population[-2:])


def test_resume_with_only_unreadable_records_is_fresh(tmp_path, tiny, generator, rng):
    store = CheckpointStore(tmp_path)
    (tmp_path / "best_Tiny_1.pt").write_bytes(b"")
    population = resume_population(store, tiny, 8, 0.25, 1, rng, generator)
    assert len(population) == 8


def test_resume_rejects_stale_shapes(tmp_path, tiny, rng):
    store = CheckpointStore(tmp_path)
    stale = Genome(OrderedDict(l1=Layer(torch.zeros(4, 4), torch.zeros(4))), "Tiny")
    store.save(stale, "Tiny", 1)
    with pytest.raises(ShapeMismatch):
        resume_population(store, tiny, 8, 0.25, 1, rng)
