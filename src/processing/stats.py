"""
Per-model statistics, recomputed on read
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence

from core.entities import TIE, ModelComparison, ModelConfig, ModelStats, ModelSummary
from processing.metrics import round_half_up


def tally_comparisons(comparisons: Iterable[ModelComparison]) -> Dict[str, Dict[str, int]]:
    """
    model id -> {"wins", "losses", "ties"}. A winner earns a win and the
    other party a loss; a tie counts for both.
    """
    tally: Dict[str, Dict[str, int]] = defaultdict(lambda: {"wins": 0, "losses": 0, "ties": 0})

    for comp in comparisons:
        if comp.winner == TIE:
            tally[comp.model_a]["ties"] += 1
            tally[comp.model_b]["ties"] += 1
        elif comp.winner == comp.model_a:
            tally[comp.model_a]["wins"] += 1
            tally[comp.model_b]["losses"] += 1
        elif comp.winner == comp.model_b:
            tally[comp.model_b]["wins"] += 1
            tally[comp.model_a]["losses"] += 1

    return tally


def calculate_model_stats(
    model: ModelConfig,
    summaries: Sequence[ModelSummary],
    wins: int = 0,
    losses: int = 0,
    ties: int = 0,
) -> ModelStats:
    own = [s for s in summaries if s.model_id == model.id]

    if not own:
        return ModelStats(
            model_id=model.id,
            model_name=model.name,
            wins=wins,
            losses=losses,
            ties=ties,
        )

    rated = [s.rating.score for s in own if s.rating]
    average_rating = sum(rated) / len(rated) if rated else 0.0

    count = len(own)
    return ModelStats(
        model_id=model.id,
        model_name=model.name,
        total_summaries=count,
        average_rating=round_half_up(average_rating, 1),
        average_word_count=round_half_up(sum(s.metrics.word_count for s in own) / count),
        average_readability=round_half_up(sum(s.metrics.readability_score for s in own) / count),
        average_processing_time=round_half_up(sum(s.metrics.processing_time_ms for s in own) / count),
        wins=wins,
        losses=losses,
        ties=ties,
    )


def aggregate_stats(
    models: Sequence[ModelConfig],
    summaries: Sequence[ModelSummary],
    comparisons: Iterable[ModelComparison],
) -> List[ModelStats]:
    """Stats for every configured model, in pool order."""
    tally = tally_comparisons(comparisons)
    return [
        calculate_model_stats(model, summaries, **tally.get(model.id, {}))
        for model in models
    ]
