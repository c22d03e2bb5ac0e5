from decimal import Decimal

import pytest

from lending_exposure.classifier import (
    build_leverage_document,
    classify_event,
    classify_events,
    combine_borrowers,
    leverage_share_pct,
    summarize_borrowers,
)
from lending_exposure.models import BorrowEvent


def _event(selector, *, user="0xUser", logs=6, collateral="100", borrowed="50", ts="2024-10-01", tx="0xtx"):
    return BorrowEvent(
        tx_hash=tx,
        user=user,
        timestamp=ts,
        selector=selector,
        log_count=logs,
        transfer_count=2,
        collateral=Decimal(collateral),
        borrowed=Decimal(borrowed),
    )


@pytest.mark.parametrize(
    ("selector", "logs", "category", "label"),
    [
        ("0x23cfed03", 6, "standard", "create_loan (standard)"),
        ("0x4ba96d46", 64, "leverage", "create_loan_extended (LEVERAGE)"),
        ("0x24977ef3", 20, "leverage", "borrow_more_extended (LEVERAGE)"),
        ("0xdd171e7c", 6, "standard", "borrow_more (standard)"),
        ("0x24049e57", 6, "standard", "add_collateral (no borrow)"),
    ],
)
def test_known_selectors_without_warnings(selector, logs, category, label):
    c = classify_event(_event(selector, logs=logs))
    assert c.category == category
    assert c.label == label
    assert c.warning is None


def test_selector_lookup_is_case_insensitive():
    assert classify_event(_event("0x4BA96D46", logs=80)).category == "leverage"


def test_leverage_with_few_logs_warns_but_table_wins():
    c = classify_event(_event("0x4ba96d46", logs=10, tx="0xdead"))
    assert c.category == "leverage"
    assert c.warning is not None
    assert "0xdead" in c.warning
    assert "only 10 logs" in c.warning


def test_standard_with_many_logs_warns_but_table_wins():
    c = classify_event(_event("0x23cfed03", logs=40))
    assert c.category == "standard"
    assert c.warning is not None


def test_unknown_selector_falls_back_without_heuristic():
    c = classify_event(_event("0xffffffff", logs=90))
    assert c.label == "UNKNOWN"
    assert c.category == "standard"
    assert c.is_borrow is False
    assert c.warning is None


def test_summarize_borrowers_splits_leverage_and_standard():
    events = [
        _event("0x23cfed03", user="0xA", collateral="100", borrowed="40", ts="2024-10-02"),
        _event("0x24977ef3", user="0xa", logs=30, collateral="300", borrowed="200", ts="2024-10-05"),
        _event("0x24049e57", user="0xA", collateral="10", borrowed="0", ts="2024-10-01"),
        _event("0xdd171e7c", user="0xB", collateral="0", borrowed="500", ts="2024-11-01"),
    ]
    summaries = summarize_borrowers(classify_events(events))

    assert [s.address for s in summaries] == ["0xB", "0xA"]
    a = summaries[1]
    assert a.total_borrowed == Decimal("240")
    assert a.total_collateral == Decimal("410")
    assert a.leverage_borrowed == Decimal("200")
    assert a.leverage_collateral == Decimal("300")
    assert a.standard_borrowed == Decimal("40")
    assert a.standard_collateral == Decimal("100")
    assert a.leverage_count == 1
    assert a.standard_count == 1
    assert a.first_borrow == "2024-10-01"
    assert a.last_borrow == "2024-10-05"
    assert len(a.events) == 3
    assert f"{leverage_share_pct(a):.4f}" == "83.3333"
    assert leverage_share_pct(summaries[0]) == 0


def test_leverage_share_pct_none_without_borrowing():
    (s,) = summarize_borrowers(classify_events([_event("0x24049e57", borrowed="0")]))
    assert leverage_share_pct(s) is None


def test_combine_borrowers_requires_every_watched_wallet():
    events = [
        _event("0x4ba96d46", user="0xW1", logs=70, borrowed="1000"),
        _event("0xdd171e7c", user="0xW2", borrowed="250"),
        _event("0x23cfed03", user="0xOther", borrowed="5"),
    ]
    summaries = summarize_borrowers(classify_events(events))

    combined = combine_borrowers(summaries, ["0xw1", "0xW2"])
    assert combined is not None
    assert combined["wallets"] == ["0xW1", "0xW2"]
    assert combined["total_borrowed"] == "1250.000000"
    assert combined["leverage_borrowed"] == "1000.000000"
    assert combined["standard_borrowed"] == "250.000000"
    assert combined["leverage_count"] == 1
    assert combined["standard_count"] == 1

    assert combine_borrowers(summaries, ["0xW1", "0xMissing"]) is None


def test_build_leverage_document():
    events = [
        _event("0x4ba96d46", user="0xW1", logs=5, borrowed="1000", tx="0x1"),
        _event("0x23cfed03", user="0xW2", borrowed="10", tx="0x2"),
    ]
    classified = classify_events(events)
    summaries = summarize_borrowers(classified)
    doc = build_leverage_document(classified, summaries, analysis_date="2025-01-01T00:00:00.000Z")

    assert doc["analysis_date"] == "2025-01-01T00:00:00.000Z"
    assert doc["selector_map"]["0x24049e57"] == "add_collateral (no borrow)"
    assert doc["leverage_usage"] == {"leveraged_borrowers": 1, "standard_only_borrowers": 1}
    assert len(doc["warnings"]) == 1
    assert doc["combined"] is None
    first = doc["borrower_summaries"][0]
    assert first["address"] == "0xW1"
    assert first["events"][0]["category"] == "leverage"
    assert first["events"][0]["borrowed"] == "1000.000000"
