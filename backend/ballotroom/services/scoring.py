from collections import OrderedDict
from typing import Dict, Iterable, List, Optional


def winners_by_category(winners: Iterable[dict]) -> Dict[str, str]:
    return {w['category_id']: w['nominee_id'] for w in winners}


def compute_leaderboard(participants: Iterable[dict], predictions: Iterable[dict], winners: Iterable[dict]) -> List[dict]:
    """Rank participants by correct predictions.

    ``participants`` must be in join order: ties keep that order (stable
    sort), so every client ranks identically whatever order the prediction
    and winner rows arrived in. ``predictions_count`` counts every pick;
    ``score`` only counts categories with a declared winner that matches.
    """
    decided = winners_by_category(winners)
    counts: Dict[int, int] = {}
    scores: Dict[int, int] = {}
    for pred in predictions:
        pid = pred['participant_id']
        counts[pid] = counts.get(pid, 0) + 1
        winner = decided.get(pred['category_id'])
        if winner is not None and pred['nominee_id'] == winner:
            scores[pid] = scores.get(pid, 0) + 1

    entries = [
        {
            'participant_id': p['id'],
            'name': p['name'],
            'predictions_count': counts.get(p['id'], 0),
            'score': scores.get(p['id'], 0),
        }
        for p in participants
    ]
    return sorted(entries, key=lambda e: -e['score'])


def is_complete(winners: Iterable[dict], category_count: int) -> bool:
    """All catalog categories decided. Uses the catalog's count, not an observed maximum."""
    return category_count > 0 and len(winners_by_category(winners)) == category_count


def vote_tallies(predictions: Iterable[dict], category_id: str) -> Dict[str, List[int]]:
    """Participant ids per nominee for one category."""
    tallies: Dict[str, List[int]] = {}
    for pred in predictions:
        if pred['category_id'] == category_id:
            tallies.setdefault(pred['nominee_id'], []).append(pred['participant_id'])
    return tallies


def ballot_complete(predictions_count: int, category_count: int) -> bool:
    return category_count > 0 and predictions_count >= category_count


def ballots_submitted(leaderboard: Iterable[dict], category_count: int) -> int:
    return sum(1 for e in leaderboard if ballot_complete(e['predictions_count'], category_count))


def film_awards(winners: Iterable[dict], catalog) -> Optional[List[dict]]:
    """Films ranked by awards won, or None until every category is decided."""
    winners = list(winners)
    if not is_complete(winners, catalog.category_count):
        return None
    films: 'OrderedDict[str, List[str]]' = OrderedDict()
    for category_id, nid in winners_by_category(winners).items():
        category = catalog.get_category(category_id)
        nominee = category.find_nominee(nid) if category else None
        if not nominee:
            continue
        film = nominee.get('film') or nominee.get('name') or nominee.get('song') or 'Unknown'
        films.setdefault(film, []).append(category_id)
    ranked = [{'film': film, 'categories': cats, 'count': len(cats)} for film, cats in films.items()]
    return sorted(ranked, key=lambda f: -f['count'])
