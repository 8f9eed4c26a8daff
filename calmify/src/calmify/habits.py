"""
Daily Habits

Each calendar day gets a fresh copy of the default habit list. Completion
flags only apply to the day they were toggled on.
"""

import logging
from datetime import date
from typing import List, Optional

from calmify.user_state import Habit, UserState

logger = logging.getLogger(__name__)


DEFAULT_HABITS: List[Habit] = [
    Habit(id="h1", label="Meditate for 10 mins"),
    Habit(id="h2", label="Drink 8 glasses of water"),
    Habit(id="h3", label="Take a 15 min walk"),
    Habit(id="h4", label="No screen time before bed"),
]


def today_key(today: Optional[date] = None) -> str:
    """Day key used in UserState.habits."""
    return (today or date.today()).isoformat()


def default_habits() -> List[Habit]:
    """Deep copy of the default habits, all incomplete."""
    return [Habit(id=h.id, label=h.label, completed=False) for h in DEFAULT_HABITS]


def ensure_today(state: UserState, today: Optional[date] = None) -> List[Habit]:
    """Seed today's habits if missing and return them."""
    key = today_key(today)
    if key not in state.habits:
        state.habits[key] = default_habits()
        logger.debug(f"Seeded default habits for {key}")
    return state.habits[key]


def toggle_habit(state: UserState, habit_id: str, today: Optional[date] = None) -> Habit:
    """
    Flip the completion flag of one of today's habits.

    Raises:
        KeyError: If no habit with that id exists today
    """
    for habit in ensure_today(state, today):
        if habit.id == habit_id:
            habit.completed = not habit.completed
            return habit
    raise KeyError(habit_id)


def completed_labels(habits: List[Habit]) -> List[str]:
    return [h.label for h in habits if h.completed]
