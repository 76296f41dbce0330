"""Tests for stable id generation."""

from sflm.ids import generate_id, sequential_id_generator, set_id_generator


def test_default_ids_are_prefixed_and_unique():
    ids = {generate_id("q") for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("q-") for i in ids)


def test_sequential_generator_is_deterministic():
    set_id_generator(sequential_id_generator())
    try:
        assert [generate_id("q"), generate_id("c"), generate_id("q")] == ["q-1", "c-2", "q-3"]
    finally:
        set_id_generator(None)


def test_reset_restores_default():
    set_id_generator(lambda prefix: "fixed")
    set_id_generator(None)
    assert generate_id("b") != "fixed"
