"""
Tests for deterministic palette allocation.
"""

from proteocurtain.constants import DEFAULT_VOLCANO_PALETTE, FALLBACK_GREY
from proteocurtain.volcano.palette import ColorAllocator, PaletteState, allocate_next


def test_groups_within_palette_size_get_distinct_colors():
    allocator = ColorAllocator(DEFAULT_VOLCANO_PALETTE)
    groups = [f"group {i}" for i in range(len(DEFAULT_VOLCANO_PALETTE))]
    color_map = allocator.assign(groups)
    assert len(set(color_map.values())) == len(DEFAULT_VOLCANO_PALETTE)


def test_assignment_is_sorted_and_deterministic():
    first = ColorAllocator(DEFAULT_VOLCANO_PALETTE).assign(["b", "a", "c"])
    second = ColorAllocator(DEFAULT_VOLCANO_PALETTE).assign(["c", "b", "a"])
    assert first == second
    assert first["a"] == DEFAULT_VOLCANO_PALETTE[0]
    assert first["c"] == DEFAULT_VOLCANO_PALETTE[2]


def test_overrides_are_kept_and_skipped():
    allocator = ColorAllocator(("a", "b", "c"), overrides={"pinned": "a"})
    assert allocator.color_for("pinned") == "a"
    assert allocator.color_for("new") == "b"
    assert allocator.color_for("new") == "b"


def test_three_phases():
    allocator = ColorAllocator(("a", "b", "c"), overrides={"pinned": "b"})
    colors = [allocator.color_for(f"g{i}") for i in range(1, 7)]
    # fresh: skip the pinned color
    assert colors[:2] == ["a", "c"]
    # wrapped: only the pinned color is avoided
    assert colors[2:4] == ["a", "c"]
    # forced reuse: palette order, nothing avoided
    assert colors[4:] == ["a", "b"]
    assert allocator.state.forced_reuse is True


def test_empty_palette_falls_back_to_grey():
    color, state = allocate_next(PaletteState(), (), set())
    assert color == FALLBACK_GREY
    assert state == PaletteState()
    assert ColorAllocator(()).color_for("x") == FALLBACK_GREY


def test_allocate_next_advances_cursor():
    color, state = allocate_next(PaletteState(), ("a", "b"), {"a"})
    assert color == "b"
    assert state.cursor == 2
    assert state.wrapped is False


def test_resupplied_color_map_continues_after_its_colors():
    allocator = ColorAllocator(("a", "b", "c", "d"), overrides={"x": "a", "y": "b"})
    assert allocator.color_for("z") == "c"
    assert allocator.color_for("w") == "d"
