"""
Tournament progress derived from the full set of matches.
"""
from typing import List, Dict, Optional

from core.models import Match, MATCH_COMPLETED, MATCH_BYE


def compute_progress(matches: List[Match], total_rounds: int, current_round: Optional[int] = None) -> Dict:
    """
    Summarise how far a tournament has got.

    If current_round is not given it is taken to be the highest round number
    present, which assumes rounds were created in sequence with no gaps.

    Returns dict with:
    - completed_matches: matches that are completed or byes
    - total_matches
    - percentage: completed_matches / total_matches * 100
    - current_round, total_rounds
    - current_round_completed: every match in current_round has a winner
    - is_complete: current round is the last one and it is completed
    - champion_id: winner of the final once is_complete
    """
    if not matches:
        raise ValueError('Cannot compute progress before the bracket is generated')

    completed_matches = sum(1 for m in matches if m.status in (MATCH_COMPLETED, MATCH_BYE))
    total_matches = len(matches)

    if current_round is None:
        current_round = max(m.round_number for m in matches)

    current_round_matches = [m for m in matches if m.round_number == current_round]
    current_round_completed = bool(current_round_matches) and all(
        m.winner_id is not None for m in current_round_matches
    )
    is_complete = current_round == total_rounds and current_round_completed

    champion_id = None
    if is_complete and len(current_round_matches) == 1:
        champion_id = current_round_matches[0].winner_id

    return {
        'completed_matches': completed_matches,
        'total_matches': total_matches,
        'percentage': (completed_matches / total_matches) * 100,
        'current_round': current_round,
        'total_rounds': total_rounds,
        'current_round_completed': current_round_completed,
        'is_complete': is_complete,
        'champion_id': champion_id,
    }


def can_advance(progress: Dict) -> bool:
    """Whether the next round may be generated."""
    return progress['current_round_completed'] and not progress['is_complete']
