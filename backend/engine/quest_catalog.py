"""
Quest and badge catalogs.

Static, read-only tables. Quest templates form a forest through
``prerequisite_id``; templates without a prerequisite are the starting quests
of a new player.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from engine.models import Badge, QuestCategory, QuestTemplate


# Quest ids referenced by the reward rules.
QUEST_BUDGETING_101 = "1"
QUEST_FIRST_INVESTMENT = "2"
QUEST_EXPENSE_LOGGER = "3"
QUEST_GOAL_SETTER = "6"
QUEST_DIVERSIFICATION = "9"
QUEST_INCOME_TRACKER = "11"
QUEST_CATEGORY_PRO = "12"
QUEST_WEALTH_BUILDER = "15"

# Badge ids.
BADGE_NEWBIE = "1"
BADGE_SAVER = "2"
BADGE_INVESTOR = "3"
BADGE_SCHOLAR = "4"
BADGE_GOAL_GETTER = "5"
BADGE_STREAK_MASTER = "6"
BADGE_BIG_SPENDER = "7"
BADGE_DIAMOND_HANDS = "8"


QUEST_TEMPLATES: List[QuestTemplate] = [
    # Roots
    QuestTemplate("1", "Budgeting 101", "Learn why the 50/30/20 rule matters.", 500, QuestCategory.LEARNING),
    QuestTemplate("2", "First Investment", "Buy your first asset in the simulator.", 300,
                  QuestCategory.INVESTING, action_path="invest"),
    QuestTemplate("3", "Expense Logger", "Log your first real expense.", 100,
                  QuestCategory.FINANCE, action_path="budget"),
    # Learning track
    QuestTemplate("4", "Needs vs. Wants", "Master the art of prioritizing spending.", 200,
                  QuestCategory.LEARNING, prerequisite_id="1"),
    QuestTemplate("5", "The Savings Mindset", "Pay yourself first. Learn how.", 250,
                  QuestCategory.LEARNING, prerequisite_id="4"),
    QuestTemplate("6", "Goal Setter", "Create a Savings Goal in the Goals tab.", 400,
                  QuestCategory.FINANCE, prerequisite_id="5", action_path="goals"),
    # Investing track
    QuestTemplate("7", "Crypto Basics", "Understand the blockchain revolution.", 200,
                  QuestCategory.LEARNING, prerequisite_id="2"),
    QuestTemplate("8", "Risk Management", "High reward comes with high risk.", 300,
                  QuestCategory.LEARNING, prerequisite_id="7"),
    QuestTemplate("9", "Diversification", "Own at least 2 different assets.", 500,
                  QuestCategory.INVESTING, prerequisite_id="8", action_path="invest"),
    QuestTemplate("10", "Market Cycles", "Learn about Bulls and Bears.", 250,
                  QuestCategory.LEARNING, prerequisite_id="9"),
    # Finance track
    QuestTemplate("11", "Income Tracker", "Log a source of Income (Allowance/Job).", 150,
                  QuestCategory.FINANCE, prerequisite_id="3", action_path="budget"),
    QuestTemplate("12", "Category Pro", "Add a custom category in Budget.", 200,
                  QuestCategory.FINANCE, prerequisite_id="11", action_path="budget"),
    QuestTemplate("13", "Inflation 101", "Why does money lose value over time?", 300,
                  QuestCategory.LEARNING, prerequisite_id="12"),
    # Advanced
    QuestTemplate("14", "Compound Interest", "The 8th wonder of the world.", 600,
                  QuestCategory.LEARNING, prerequisite_id="13"),
    QuestTemplate("15", "Wealth Builder", "Reach a Net Worth of 500 (Real or Sim).", 1000,
                  QuestCategory.FINANCE, prerequisite_id="14"),
]


BADGES: List[Badge] = [
    Badge(BADGE_NEWBIE, "Newbie", "Joined the MoneyVerse", "👋"),
    Badge(BADGE_SAVER, "Saver", "Saved your first $100", "🐷"),
    Badge(BADGE_INVESTOR, "Investor", "Bought your first asset", "📈"),
    Badge(BADGE_SCHOLAR, "Scholar", "Completed 5 lessons", "🎓"),
    Badge(BADGE_GOAL_GETTER, "Goal Getter", "Completed a savings goal", "🏆"),
    Badge(BADGE_STREAK_MASTER, "Streak Master", "7 day login streak", "🔥"),
    Badge(BADGE_BIG_SPENDER, "Big Spender", "Logged 50 transactions", "💸"),
    Badge(BADGE_DIAMOND_HANDS, "Diamond Hands", "Held crypto for 1 month", "💎"),
]


class QuestCatalog:
    """Read-only lookup over quest templates."""

    def __init__(self, templates: Optional[Iterable[QuestTemplate]] = None):
        self._templates: List[QuestTemplate] = list(templates if templates is not None else QUEST_TEMPLATES)
        self._by_id: Dict[str, QuestTemplate] = {t.id: t for t in self._templates}
        if len(self._by_id) != len(self._templates):
            raise ValueError("Quest template ids must be unique")

    def templates(self) -> Sequence[QuestTemplate]:
        """All templates, in catalog order."""
        return tuple(self._templates)

    def root_templates(self) -> Sequence[QuestTemplate]:
        """Templates without a prerequisite (the starting quest set)."""
        return tuple(t for t in self._templates if t.prerequisite_id is None)

    def get(self, template_id: str) -> Optional[QuestTemplate]:
        return self._by_id.get(template_id)


class BadgeCatalog:
    """Read-only lookup over badges."""

    def __init__(self, badges: Optional[Iterable[Badge]] = None):
        self._badges: List[Badge] = list(badges if badges is not None else BADGES)
        self._by_id: Dict[str, Badge] = {b.id: b for b in self._badges}

    def badges(self) -> Sequence[Badge]:
        return tuple(self._badges)

    def get(self, badge_id: str) -> Optional[Badge]:
        return self._by_id.get(badge_id)

    def __contains__(self, badge_id: object) -> bool:
        return badge_id in self._by_id
