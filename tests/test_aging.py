from datetime import UTC, datetime

import pandas as pd
import pytest

from issue_graph.analytics.metrics.aging import (
    add_aging_metrics,
    compute_stale,
    days_since_update_by_id,
    resolve_now,
)

NOW = datetime(2025, 1, 11, tzinfo=UTC)


def _frame():
    return pd.DataFrame(
        {
            "id": ["a", "b", "c"],
            "created": ["2025-01-01T00:00:00Z", "2025-01-09T00:00:00Z", None],
            "updated": ["2025-01-06T00:00:00Z", None, None],
            "closed": [None, "2025-01-10T00:00:00Z", None],
        }
    )


def test_aging_metrics_basic():
    out = add_aging_metrics(_frame(), now=NOW)
    assert out.loc[0, "days_open"] == pytest.approx(10.0)
    assert out.loc[0, "days_since_update"] == pytest.approx(5.0)
    assert out.loc[1, "days_to_close"] == pytest.approx(1.0)


def test_missing_update_falls_back_to_creation():
    out = add_aging_metrics(_frame(), now=NOW)
    assert out.loc[1, "days_since_update"] == pytest.approx(2.0)
    assert out.loc[2, "days_since_update"] == 0.0


def test_empty_frame_gets_columns():
    out = add_aging_metrics(pd.DataFrame(columns=["id", "created", "updated", "closed"]), now=NOW)
    assert "days_since_update" in out.columns
    assert out.empty


def test_stale_filter_orders_oldest_first():
    out = add_aging_metrics(_frame(), now=NOW)
    stale = compute_stale(out, days_threshold=2)
    assert list(stale["id"]) == ["a", "b"]
    assert days_since_update_by_id(out)["a"] == pytest.approx(5.0)


def test_naive_now_is_localized():
    assert resolve_now(datetime(2025, 1, 1)).tzinfo is not None
    assert resolve_now(NOW) is NOW
