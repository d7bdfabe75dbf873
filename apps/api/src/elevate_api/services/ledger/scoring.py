"""Point values for each LEAPS activity."""

from __future__ import annotations

from typing import Any, Mapping

from elevate_api.models.submission import ActivityCode


LEARN_POINTS = 20
EXPLORE_POINTS = 50
PRESENT_POINTS = 20
SHINE_POINTS = 0

LEARN_TAG_POINTS = 20

AMPLIFY_POINTS_PER_PEER = 2
AMPLIFY_POINTS_PER_STUDENT = 1
# Per-submission scoring ceilings. Rolling 7-day quotas are enforced separately at approval.
AMPLIFY_SCORED_PEERS_MAX = 50
AMPLIFY_SCORED_STUDENTS_MAX = 200

_FLAT_POINTS: dict[ActivityCode, int] = {
    ActivityCode.LEARN: LEARN_POINTS,
    ActivityCode.EXPLORE: EXPLORE_POINTS,
    ActivityCode.PRESENT: PRESENT_POINTS,
    ActivityCode.SHINE: SHINE_POINTS,
}


def _count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    if isinstance(value, str):
        try:
            return max(int(float(value.strip())), 0)
        except ValueError:
            return 0
    return 0


def amplify_points(peers_trained: int, students_trained: int) -> int:
    """Uncapped Amplify delta written at approval time."""

    return peers_trained * AMPLIFY_POINTS_PER_PEER + students_trained * AMPLIFY_POINTS_PER_STUDENT


def compute_points(activity_code: ActivityCode | str, payload: Mapping[str, Any] | None) -> int:
    """Return the nominal point value of a submission.

    Pure function: unknown activity codes score zero and malformed counts are
    treated as zero rather than raising.
    """

    try:
        activity = ActivityCode(activity_code)
    except ValueError:
        return 0

    if activity is ActivityCode.AMPLIFY:
        data = payload or {}
        peers = min(_count(data.get("peers_trained")), AMPLIFY_SCORED_PEERS_MAX)
        students = min(_count(data.get("students_trained")), AMPLIFY_SCORED_STUDENTS_MAX)
        return amplify_points(peers, students)

    return _FLAT_POINTS.get(activity, 0)
