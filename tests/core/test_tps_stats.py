from core.tps import TPSSample, median, summarize, summarize_by_model


def test_median_odd_even_empty():
    assert median([3, 1, 2]) == 2
    assert median([1, 2, 3, 4]) == 2.5
    assert median([]) == 0


def test_median_does_not_mutate_input():
    values = [5.0, 1.0, 3.0]
    median(values)
    assert values == [5.0, 1.0, 3.0]


def test_summarize_ignores_zero_samples():
    samples = [
        TPSSample("a", 10.0, token_count=100, generation_time_ms=10_000),
        TPSSample("b", 30.0, token_count=300, generation_time_ms=10_000),
        TPSSample("c", 0.0, token_count=50, generation_time_ms=1_000),
    ]
    stats = summarize(samples)
    assert stats.message_count == 2
    assert stats.average_tps == 20.0
    assert (stats.min_tps, stats.max_tps, stats.median_tps) == (10.0, 30.0, 20.0)
    assert stats.total_tokens == 400
    assert stats.total_generation_time_ms == 20_000
    assert stats.average_generation_time_ms == 10_000


def test_summarize_empty():
    assert summarize([]).to_dict()["message_count"] == 0


def test_summarize_by_model():
    samples = [
        TPSSample("a", 10.0, token_count=10, model_id="m1"),
        TPSSample("b", 20.0, token_count=20, model_id="m1"),
        TPSSample("c", 40.0, token_count=40, model_id="m2"),
        TPSSample("d", 0.0, token_count=5, model_id="m3"),
    ]
    by_model = {m.model_id: m for m in summarize_by_model(samples)}
    assert set(by_model) == {"m1", "m2"}
    assert by_model["m1"].average_tps == 15.0
    assert by_model["m1"].total_tokens == 30
    assert by_model["m2"].message_count == 1
