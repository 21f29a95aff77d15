from __future__ import annotations

import pytest

from btblocklist.state import BatchCounters, StateStore


def test_counters_from_slots() -> None:
    store = StateStore(["feodo", "spamhaus"])
    store.replace_ripe(["a", "b"])
    store.replace_external("feodo", ["1", "2", "3"])

    assert store.counters() == BatchCounters(ripe_ranges=2, external_lists=2, external_lines=3)


def test_replacement_is_wholesale() -> None:
    store = StateStore(["feodo"])
    store.replace_external("feodo", ["1", "2"])
    store.replace_external("feodo", ["3"])

    assert store.external_lines("feodo") == ["3"]


def test_unknown_source_rejected() -> None:
    store = StateStore(["feodo"])

    with pytest.raises(KeyError):
        store.replace_external("other", ["1"])
    assert store.external_names == ["feodo"]


def test_sections_sorted_by_name() -> None:
    store = StateStore(["zeta", "alpha", "mid"])

    _, external = store.sections()
    assert [name for name, _ in external] == ["alpha", "mid", "zeta"]


def test_replace_copies_input() -> None:
    store = StateStore([])
    lines = ["a"]
    store.replace_ripe(lines)
    lines.append("b")

    assert store.ripe_lines == ["a"]
