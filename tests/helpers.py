"""Shared builders and stand-ins for the test modules."""

from datetime import datetime
from typing import Dict, List, Optional

from squares_core.models.schema_models import AuditEventSchema

IDENTITY_AXIS = {"home": list(range(10)), "away": list(range(10))}
NOW = datetime(2026, 10, 18, 17, 0, 0)


class RecordingPublisher:
    def __init__(self):
        self.events: List[AuditEventSchema] = []

    async def publish_audit_events(self, events: List[AuditEventSchema]) -> None:
        self.events.extend(events)

    def types(self) -> List[str]:
        return [event.type for event in self.events]


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def all_cells_owned() -> Dict[int, str]:
    return {i: f"player{i}" for i in range(100)}


def espn_summary(
    home_lines: List,
    away_lines: List,
    state: str = "in",
    period: int = 1,
    home_score: Optional[int] = None,
    away_score: Optional[int] = None,
    clock: str = "7:32",
    date: str = "2026-10-18T17:00Z",
) -> dict:
    """Minimal ESPN site API summary body for one game."""

    def total(lines):
        value = 0
        for line in lines:
            try:
                value += int(line)
            except (TypeError, ValueError):
                pass
        return value

    def competitor(home_away, lines, score):
        return {
            "homeAway": home_away,
            "score": str(total(lines) if score is None else score),
            "linescores": [{"displayValue": value} for value in lines],
        }

    return {
        "header": {
            "competitions": [
                {
                    "date": date,
                    "competitors": [
                        competitor("home", home_lines, home_score),
                        competitor("away", away_lines, away_score),
                    ],
                }
            ],
            "status": {
                "period": period,
                "displayClock": clock,
                "type": {"state": state},
            },
        }
    }
