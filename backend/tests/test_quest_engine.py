"""
Tests for the quest catalog and unlock engine.
"""

import pytest

from engine.models import Quest, QuestCategory, QuestTemplate, level_for_xp
from engine.quest_catalog import QUEST_TEMPLATES, QuestCatalog, BadgeCatalog
from engine.quest_unlocks import compute_unlocks


def _quest(template: QuestTemplate, completed: bool = False) -> Quest:
    quest = Quest.from_template(template)
    quest.completed = completed
    return quest


def _by_id(quest_id: str) -> QuestTemplate:
    return QuestCatalog().get(quest_id)


def test_new_player_gets_root_quests():
    unlocked = compute_unlocks([], QUEST_TEMPLATES)
    assert [q.id for q in unlocked] == ["1", "2", "3"]
    assert all(not q.completed for q in unlocked)


def test_completed_prerequisite_unlocks_child():
    current = [_quest(_by_id("1"), completed=True), _quest(_by_id("2")), _quest(_by_id("3"))]
    unlocked = compute_unlocks(current, QUEST_TEMPLATES)
    assert [q.id for q in unlocked] == ["4"]


def test_incomplete_prerequisite_does_not_unlock():
    current = [_quest(_by_id("1")), _quest(_by_id("2")), _quest(_by_id("3"))]
    assert compute_unlocks(current, QUEST_TEMPLATES) == []


def test_unlocks_are_not_transitive_in_one_pass():
    # "4" unlocks, but "5" needs "4" to be completed first.
    current = [_quest(_by_id("1"), completed=True), _quest(_by_id("2")), _quest(_by_id("3"))]
    unlocked_ids = [q.id for q in compute_unlocks(current, QUEST_TEMPLATES)]
    assert "5" not in unlocked_ids


def test_already_present_quests_are_never_duplicated():
    current = [_quest(t, completed=True) for t in QUEST_TEMPLATES]
    assert compute_unlocks(current, QUEST_TEMPLATES) == []


def test_multiple_children_unlock_in_catalog_order():
    catalog = [
        QuestTemplate("a", "A", "", 10, QuestCategory.FINANCE),
        QuestTemplate("c", "C", "", 10, QuestCategory.FINANCE, prerequisite_id="a"),
        QuestTemplate("b", "B", "", 10, QuestCategory.FINANCE, prerequisite_id="a"),
    ]
    current = [_quest(catalog[0], completed=True)]
    assert [q.id for q in compute_unlocks(current, catalog)] == ["c", "b"]


def test_catalog_rejects_duplicate_ids():
    template = QuestTemplate("x", "X", "", 10, QuestCategory.FINANCE)
    with pytest.raises(ValueError):
        QuestCatalog([template, template])


def test_catalog_root_templates():
    assert [t.id for t in QuestCatalog().root_templates()] == ["1", "2", "3"]


def test_badge_catalog_lookup():
    badges = BadgeCatalog()
    assert "1" in badges
    assert badges.get("6").name == "Streak Master"
    assert badges.get("missing") is None


@pytest.mark.parametrize("xp,level", [(0, 1), (120, 1), (999, 1), (1000, 2), (2500, 3)])
def test_level_for_xp(xp, level):
    assert level_for_xp(xp) == level
