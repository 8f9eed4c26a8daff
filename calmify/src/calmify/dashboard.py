"""
Dashboard Overview

Weekly/monthly wellness overview built from check-in history and today's
habits.
"""

from datetime import datetime
from typing import Any, Dict, List

from calmify.habits import ensure_today
from calmify.user_state import CheckInRecord, UserState, to_dict

VIEW_WINDOWS = {"WEEKLY": 7, "MONTHLY": 30}

PREDICTION_PLACEHOLDER = (
    "Complete a check-in to get AI-driven probability predictions for stress reduction."
)


def chart_label(timestamp_ms: int) -> str:
    """Short chart label such as "Mar 4"."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000)
    return f"{moment.strftime('%b')} {moment.day}"


def chart_points(history: List[CheckInRecord], days: int) -> List[Dict[str, Any]]:
    return [
        {
            "date": chart_label(entry.timestamp),
            "stress": entry.stress_level,
            "energy": entry.energy_level,
            "mood": entry.mood,
        }
        for entry in history[-days:]
    ]


def build_overview(state: UserState, mode: str = "WEEKLY") -> Dict[str, Any]:
    """
    Build the dashboard payload.

    Raises:
        ValueError: If mode is not WEEKLY or MONTHLY
    """
    mode = mode.upper()
    if mode not in VIEW_WINDOWS:
        raise ValueError(f"Unknown dashboard mode: {mode}")
    days = VIEW_WINDOWS[mode]

    latest = state.latest
    habits = ensure_today(state)

    return {
        "name": state.name,
        "mode": mode,
        "subtitle": "Your weekly wellness overview." if mode == "WEEKLY" else "Your monthly progress report.",
        "chart_title": "Weekly Stress Trend" if mode == "WEEKLY" else "Monthly Stress Report",
        "chart_range": f"Last {days} Days",
        "chart": chart_points(state.history, days),
        "stress_level": latest.stress_level if latest else None,
        "energy_level": latest.energy_level if latest else None,
        "mood": latest.mood if latest else "No Data",
        "stress_elevated": bool(latest and latest.stress_level > 5),
        "habits": [to_dict(h) for h in habits],
        "prediction": latest.prediction if latest and latest.prediction else PREDICTION_PLACEHOLDER,
        "latest_analysis": latest.analysis if latest else None,
    }
