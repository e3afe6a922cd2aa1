"""
Enfield Kernel -- Change Reducer Tests

(worlds, changes) → worlds, one variant at a time and in composition.

Covers:
  - each change type against a small fixture world
  - missing worlds and unknown change types are no-ops
  - insert-then-remove is a net no-op
  - activity cap and most-recent-first ordering
  - sequential composition: apply(W, C1 + C2) == apply(apply(W, C1), C2)
  - the caller's world list is never mutated
"""

import copy

import pytest

from engine.kernel.changes import (
    AppendActivity,
    CreateWorld,
    DeleteWorld,
    InsertPage,
    MovePage,
    RemovePage,
    SetCollaborators,
    UpdatePage,
    UpdateWorld,
    parse_changes,
)
from engine.kernel.normalize import normalize_world
from engine.kernel.page_tree import find_page
from engine.kernel.reducer import append_activity, apply_change, apply_changes
from engine.kernel.types import ACTIVITY_LIMIT, ActivityEntry, PageNode, WorldCollaborator

# ============================================================================
# Fixtures
# ============================================================================


def entry(entry_id, timestamp="2024-05-01T12:00:00.000Z"):
    return ActivityEntry(
        id=entry_id,
        action="update",
        target="Gate",
        actor_id="u1",
        actor_name="Ada",
        timestamp=timestamp,
    )


@pytest.fixture
def worlds():
    return [
        normalize_world(
            {
                "id": "w1",
                "name": "Ashgrove",
                "ownerId": "u1",
                "pages": [
                    {"id": "p1", "title": "Gate", "children": [{"id": "p2", "title": "Hinge"}]},
                    {"id": "p3", "title": "Moat"},
                ],
            }
        ),
        normalize_world({"id": "w2", "name": "Brackwater", "ownerId": "u1"}),
    ]


# ============================================================================
# Variants
# ============================================================================


class TestWorldChanges:
    def test_create_world_appends(self, worlds):
        new = normalize_world({"id": "w3", "name": "Cinder"})
        result = apply_changes(worlds, [CreateWorld(world=new)])
        assert [w.id for w in result] == ["w1", "w2", "w3"]

    def test_create_world_replaces_same_id(self, worlds):
        replacement = normalize_world({"id": "w1", "name": "Ashgrove II"})
        result = apply_changes(worlds, [CreateWorld(world=replacement)])
        assert [w.id for w in result] == ["w2", "w1"]
        assert result[1].name == "Ashgrove II"

    def test_update_world_merges(self, worlds):
        result = apply_changes(worlds, [UpdateWorld(world_id="w1", data={"name": "Renamed", "description": "d"})])
        assert result[0].name == "Renamed"
        assert result[0].description == "d"
        assert result[0].owner_id == "u1"

    def test_delete_world(self, worlds):
        result = apply_changes(worlds, [DeleteWorld(world_id="w1")])
        assert [w.id for w in result] == ["w2"]

    def test_set_collaborators_replaces_list(self, worlds):
        people = [WorldCollaborator(id="u1", name="Ada", email="a@x", role="Owner", avatar_color="#6366f1")]
        result = apply_changes(worlds, [SetCollaborators(world_id="w2", collaborators=people)])
        assert result[1].collaborators == people
        assert result[1].collaborators is not people


class TestPageChanges:
    def test_insert_page_under_parent(self, worlds):
        result = apply_changes(worlds, [InsertPage(world_id="w1", parent_id="p2", page=PageNode(id="p4"))])
        assert [p.id for p in find_page(result[0].pages, "p2").children] == ["p4"]

    def test_insert_page_unknown_parent_goes_to_root(self, worlds):
        result = apply_changes(worlds, [InsertPage(world_id="w1", parent_id="nope", page=PageNode(id="p4"))])
        assert [p.id for p in result[0].pages] == ["p1", "p3", "p4"]

    def test_update_page_merges_fields(self, worlds):
        result = apply_changes(worlds, [UpdatePage(world_id="w1", page_id="p1", data={"favorite": True})])
        page = find_page(result[0].pages, "p1")
        assert page.favorite is True
        assert page.title == "Gate"
        assert [c.id for c in page.children] == ["p2"]

    def test_remove_page(self, worlds):
        result = apply_changes(worlds, [RemovePage(world_id="w1", page_id="p1")])
        assert [p.id for p in result[0].pages] == ["p3"]
        assert find_page(result[0].pages, "p2") is None

    def test_move_page(self, worlds):
        result = apply_changes(worlds, [MovePage(world_id="w1", page_id="p3", target_id="p2", position="before")])
        assert [p.id for p in result[0].pages] == ["p1"]
        assert [c.id for c in result[0].pages[0].children] == ["p3", "p2"]

    def test_insert_then_remove_is_noop(self):
        base = [normalize_world({"id": "w1", "ownerId": "u1"})]
        changes = parse_changes(
            [
                {"type": "insertPage", "worldId": "w1", "parentId": None, "page": {"id": "p1", "title": "T"}},
                {"type": "removePage", "worldId": "w1", "pageId": "p1"},
            ]
        )
        result = apply_changes(base, changes)
        assert result[0].pages == []


class TestActivityChanges:
    def test_prepends_most_recent_first(self, worlds):
        result = apply_changes(
            worlds,
            [
                AppendActivity(world_id="w2", entries=[entry("a1")]),
                AppendActivity(world_id="w2", entries=[entry("a2")]),
            ],
        )
        assert [e.id for e in result[1].activity] == ["a2", "a1"]

    def test_missing_timestamp_defaulted(self, worlds):
        result = apply_changes(worlds, [AppendActivity(world_id="w2", entries=[entry("a1", timestamp="")])])
        assert result[1].activity[0].timestamp

    def test_cap_invariant(self, worlds):
        changes = [AppendActivity(world_id="w2", entries=[entry(f"a{i}")]) for i in range(ACTIVITY_LIMIT + 15)]
        result = apply_changes(worlds, changes)
        activity = result[1].activity
        assert len(activity) == ACTIVITY_LIMIT
        assert activity[0].id == f"a{ACTIVITY_LIMIT + 14}"

    def test_append_activity_helper_caps_batch(self):
        batch = [entry(f"a{i}") for i in range(ACTIVITY_LIMIT + 1)]
        assert len(append_activity([], *batch)) == ACTIVITY_LIMIT


# ============================================================================
# Totality and composition
# ============================================================================


class TestTotality:
    def test_missing_world_is_noop(self, worlds):
        changes = [
            UpdateWorld(world_id="ghost", data={"name": "x"}),
            InsertPage(world_id="ghost", parent_id=None, page=PageNode(id="p9")),
            RemovePage(world_id="ghost", page_id="p1"),
            AppendActivity(world_id="ghost", entries=[entry("a1")]),
        ]
        assert apply_changes(worlds, changes) == worlds

    def test_unknown_change_passes_through(self, worlds):
        class Bogus:
            type = "bogus"

        assert apply_change(copy.deepcopy(worlds), Bogus()) == worlds

    def test_input_not_mutated(self, worlds):
        before = copy.deepcopy(worlds)
        apply_changes(
            worlds,
            [
                UpdatePage(world_id="w1", page_id="p2", data={"title": "X"}),
                MovePage(world_id="w1", page_id="p3", target_id="p1"),
                AppendActivity(world_id="w1", entries=[entry("a1")]),
            ],
        )
        assert worlds == before


class TestComposition:
    def test_sequential_composition(self, worlds):
        c1 = [
            InsertPage(world_id="w1", parent_id="p1", page=PageNode(id="p4", title="Keep")),
            UpdatePage(world_id="w1", page_id="p4", data={"content": "<p>x</p>"}),
            AppendActivity(world_id="w1", entries=[entry("a1")]),
        ]
        c2 = [
            MovePage(world_id="w1", page_id="p4", target_id="p3", position="after"),
            UpdateWorld(world_id="w2", data={"name": "Brackwater II"}),
            DeleteWorld(world_id="w1"),
            CreateWorld(world=normalize_world({"id": "w1", "name": "Reborn", "ownerId": "u1"})),
        ]
        whole = apply_changes(worlds, c1 + c2)
        staged = apply_changes(apply_changes(worlds, c1), c2)
        assert whole == staged

    def test_deterministic_replay(self, worlds):
        changes = [
            InsertPage(world_id="w1", parent_id=None, page=PageNode(id="p4")),
            MovePage(world_id="w1", page_id="p4", target_id="p1"),
            AppendActivity(world_id="w1", entries=[entry("a1")]),
        ]
        first = [w.to_dict() for w in apply_changes(worlds, changes)]
        for _ in range(20):
            assert [w.to_dict() for w in apply_changes(worlds, changes)] == first
