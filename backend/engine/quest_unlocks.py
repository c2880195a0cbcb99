"""
Quest Unlock Engine.

Single-pass scan of the catalog against the player's current quests. A
template unlocks when it has no prerequisite or its prerequisite quest is
present and completed. Unlocks are not resolved transitively within one call:
a quest unlocked in this pass cannot satisfy a prerequisite until it is itself
completed, and the engine is re-run after every completion.
"""

from typing import Iterable, List

from engine.models import Quest, QuestTemplate


def compute_unlocks(current_quests: Iterable[Quest], catalog: Iterable[QuestTemplate]) -> List[Quest]:
    """
    Compute the quests that become available.

    Args:
        current_quests: Quests already known to the player
        catalog: Quest templates in catalog order

    Returns:
        New, incomplete quest instances in catalog order
    """
    current = list(current_quests)
    present_ids = {quest.id for quest in current}
    completed_ids = {quest.id for quest in current if quest.completed}

    unlocked: List[Quest] = []
    for template in catalog:
        if template.id in present_ids:
            continue
        if template.prerequisite_id is None or template.prerequisite_id in completed_ids:
            unlocked.append(Quest.from_template(template))
            present_ids.add(template.id)
    return unlocked
