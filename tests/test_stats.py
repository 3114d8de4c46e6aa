"""Tests for per-model statistics."""
from datetime import datetime, timezone

from core.entities import ManualRating, ModelComparison
from processing.stats import aggregate_stats, tally_comparisons


def comparison(model_a, model_b, winner):
    return ModelComparison(
        id=f"comparison-{model_a}-{model_b}-{winner}",
        content_id="c1",
        model_a=model_a,
        model_b=model_b,
        winner=winner,
        compared_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def rating(score):
    return ManualRating(score=score, rated_at=datetime(2025, 1, 1, tzinfo=timezone.utc))


def test_tally_wins_losses_ties():
    tally = tally_comparisons([
        comparison("model-a", "model-b", "model-a"),
        comparison("model-a", "model-b", "tie"),
        comparison("model-c", "model-a", "model-c"),
    ])

    assert tally["model-a"] == {"wins": 1, "losses": 1, "ties": 1}
    assert tally["model-b"] == {"wins": 0, "losses": 1, "ties": 1}
    assert tally["model-c"] == {"wins": 1, "losses": 0, "ties": 0}


def test_averages_and_rounding(models, make_summary):
    summaries = [
        make_summary("model-a", word_count=50, readability=60, time_ms=100, rating=rating(5)),
        make_summary("model-a", word_count=61, readability=71, time_ms=201, rating=rating(4)),
        make_summary("model-a", word_count=70, readability=70, time_ms=300, rating=rating(4)),
        make_summary("model-b", word_count=10),
    ]

    stats = aggregate_stats(models[:2], summaries, [comparison("model-a", "model-b", "model-a")])

    a, b = stats
    assert a.total_summaries == 3
    assert a.average_rating == 4.3
    assert a.average_word_count == 60
    assert a.average_readability == 67
    assert a.average_processing_time == 200
    assert a.wins == 1
    assert b.losses == 1
    # Unrated summaries leave the rating average at zero
    assert b.average_rating == 0.0


def test_model_without_summaries_is_zeroed(models):
    stats = aggregate_stats(models, [], [])

    assert [s.model_id for s in stats] == [m.id for m in models]
    for s in stats:
        assert s.total_summaries == 0
        assert s.average_rating == 0
        assert s.wins == s.losses == s.ties == 0


def test_averages_on_a_half_round_up(models, make_summary):
    summaries = [
        make_summary("model-a", word_count=50, readability=64, time_ms=100, rating=rating(4)),
        make_summary("model-a", word_count=51, readability=65, time_ms=101, rating=rating(4)),
        make_summary("model-a", word_count=50, readability=64, time_ms=100, rating=rating(4)),
        make_summary("model-a", word_count=51, readability=65, time_ms=101, rating=rating(5)),
    ]

    a = aggregate_stats(models[:1], summaries, [])[0]

    assert a.average_rating == 4.3
    assert a.average_word_count == 51
    assert a.average_readability == 65
    assert a.average_processing_time == 101
