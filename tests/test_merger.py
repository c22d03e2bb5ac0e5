from decimal import Decimal

import pytest

from lending_exposure.constants import CUSTODIAL_STAKE, DIRECT_HOLDING, DIRECT_SECONDARY_STAKE
from lending_exposure.errors import MalformedInputError
from lending_exposure.merger import default_sources, merge_positions
from lending_exposure.models import PositionSource
from lending_exposure.parsing import parse_vault_state
from lending_exposure.reports import build_ledger_document, dumps_document
from lending_exposure.validation import validate_coverage, validate_ledger_conservation


def _merge(direct, custodial, secondary, *, price="1", total="1000", excluded=()):
    return merge_positions(
        default_sources(direct, custodial, secondary),
        price_per_share=Decimal(price),
        total_supply_shares=Decimal(total),
        excluded_addresses=excluded,
    )


def test_worked_example_case_insensitive_merge():
    ledger = _merge(
        [{"address": "0xAAA", "shares": "100"}],
        [{"address": "0xaaa", "shares": "50"}],
        [],
        price="2.0",
        total="150",
    )
    vault = parse_vault_state({"price_per_share": "2.0", "total_supply_shares": "150"})
    doc = build_ledger_document(ledger, vault, generated_at="2024-01-01T00:00:00.000Z")

    assert len(doc["lenders"]) == 1
    lender = doc["lenders"][0]
    assert lender["rank"] == 1
    assert lender["address"] == "0xAAA"
    assert lender["sources"] == ["direct_holding", "custodial_stake"]
    assert lender["total_shares"] == "150.000000000000000000"
    assert lender["total_value"] == "300.000000"
    assert lender["pct_of_vault"] == "100.00"
    assert lender["positions"] == {
        "direct_holding": {"shares": "100.000000000000000000", "value": "200.000000"},
        "custodial_stake": {"shares": "50.000000000000000000", "value": "100.000000"},
    }
    assert doc["summary"]["unique_lenders"] == 1
    assert doc["summary"]["multi_source_lenders"] == 1
    assert doc["summary"]["coverage_pct"] == "100.00"


def test_first_seen_casing_is_kept_across_sources():
    ledger = _merge(
        [],
        [{"address": "0xAbCdEf", "shares": "1"}],
        [{"address": "0xABCDEF", "shares": "2"}],
    )
    assert [r.address for r in ledger.lenders] == ["0xAbCdEf"]
    assert ledger.lenders[0].sources == (CUSTODIAL_STAKE, DIRECT_SECONDARY_STAKE)
    assert ledger.lenders[0].total_shares == Decimal("3")


@pytest.mark.parametrize("duplicate", ["0xaaa", "0xAAA"])
def test_address_repeated_within_one_source_accumulates(duplicate):
    ledger = _merge(
        [{"address": "0xAAA", "shares": "100"}, {"address": duplicate, "shares": "50"}],
        [{"address": "0xAaA", "shares": "10"}],
        [],
        price="2",
    )
    (rec,) = ledger.lenders
    assert rec.address == "0xAAA"
    assert rec.sources == (DIRECT_HOLDING, CUSTODIAL_STAKE)
    assert rec.positions[DIRECT_HOLDING].shares == Decimal("150")
    assert rec.positions[DIRECT_HOLDING].value == Decimal("300")
    assert rec.total_shares == Decimal("160")
    assert rec.total_value == Decimal("320")
    assert ledger.summary.by_source[DIRECT_HOLDING].count == 1
    assert validate_ledger_conservation(ledger, warn_only=False) == []


@pytest.mark.parametrize("shares", ["0", "0.0", "-1", "-0.000000000000000001", 0, -5])
def test_non_positive_shares_never_create_positions(shares):
    ledger = _merge(
        [{"address": "0xdust", "shares": shares}],
        [{"address": "0xreal", "shares": "1"}],
        [{"address": "0xdust2", "shares": shares}],
    )
    assert [r.address for r in ledger.lenders] == ["0xreal"]
    assert ledger.summary.by_source[DIRECT_HOLDING].count == 0
    assert ledger.summary.by_source[DIRECT_SECONDARY_STAKE].count == 0


def test_excluded_addresses_only_dropped_from_direct_holdings():
    gauge = "0xGauge"
    ledger = _merge(
        [{"address": "0xgauge", "shares": "500"}, {"address": "0xuser", "shares": "10"}],
        [{"address": "0xGAUGE", "shares": "3"}],
        [],
        excluded=[gauge],
    )
    by_addr = {r.key: r for r in ledger.lenders}
    assert DIRECT_HOLDING not in by_addr["0xgauge"].positions
    assert by_addr["0xgauge"].sources == (CUSTODIAL_STAKE,)
    assert by_addr["0xgauge"].total_shares == Decimal("3")
    # The excluded direct holding's casing never becomes the display address.
    assert by_addr["0xgauge"].address == "0xGAUGE"
    assert DIRECT_HOLDING in by_addr["0xuser"].positions


def test_conservation_is_exact_for_many_small_positions():
    tiny = "0.000000000000000001"
    direct = [{"address": f"0x{i:040x}", "shares": tiny} for i in range(1000)]
    custodial = [{"address": f"0x{i:040X}", "shares": "123456789.123456789123456789"} for i in range(1000)]
    ledger = _merge(direct, custodial, [], price="1.000123456789012345", total="1000000000000")

    assert validate_ledger_conservation(ledger, warn_only=False) == []
    for rec in ledger.lenders:
        assert rec.total_shares == sum(p.shares for p in rec.positions.values())
        assert rec.total_shares == Decimal("123456789.123456789123456790")
    assert ledger.summary.total_tracked_shares == Decimal("123456789123.456789123456790000")


def test_sorted_by_value_descending_with_stable_ties_and_contiguous_ranks():
    ledger = _merge(
        [
            {"address": "0x1", "shares": "5"},
            {"address": "0x2", "shares": "10"},
            {"address": "0x3", "shares": "5"},
        ],
        [{"address": "0x4", "shares": "5"}],
        [{"address": "0x1", "shares": "5"}],
    )
    assert [r.address for r in ledger.lenders] == ["0x1", "0x2", "0x3", "0x4"]
    assert [r.rank for r in ledger.lenders] == [1, 2, 3, 4]
    values = [r.total_value for r in ledger.lenders]
    assert values == sorted(values, reverse=True)

    tied = _merge(
        [{"address": "0xb", "shares": "1"}, {"address": "0xa", "shares": "1"}],
        [{"address": "0xc", "shares": "1"}],
        [],
    )
    assert [r.address for r in tied.lenders] == ["0xb", "0xa", "0xc"]


def test_malformed_shares_fails_fast_with_address_and_source():
    with pytest.raises(MalformedInputError) as exc_info:
        _merge(
            [{"address": "0xok", "shares": "1"}],
            [{"address": "0xBad", "shares": "lots"}],
            [],
        )
    err = exc_info.value
    assert err.address == "0xBad"
    assert err.source == CUSTODIAL_STAKE
    assert "0xBad" in str(err)


@pytest.mark.parametrize("shares", [None, "NaN", "Infinity", "", "1,000"])
def test_unparseable_shares_are_malformed(shares):
    with pytest.raises(MalformedInputError):
        _merge([{"address": "0x1", "shares": shares}], [], [])


def test_summary_by_source_and_coverage():
    ledger = _merge(
        [{"address": "0x1", "shares": "100"}, {"address": "0x2", "shares": "50"}],
        [{"address": "0x1", "shares": "25"}],
        [{"address": "0x3", "shares": "25"}],
        price="1.5",
        total="400",
    )
    s = ledger.summary
    assert s.unique_lenders == 3
    assert s.multi_source_lenders == 1
    assert s.total_tracked_shares == Decimal("200")
    assert s.total_tracked_value == Decimal("300.0")
    assert s.coverage_pct == Decimal("50")
    assert s.by_source[DIRECT_HOLDING].count == 2
    assert s.by_source[DIRECT_HOLDING].total_value == Decimal("225.0")
    assert s.by_source[CUSTODIAL_STAKE].count == 1
    assert s.by_source[DIRECT_SECONDARY_STAKE].total_value == Decimal("37.5")
    assert validate_coverage(s.coverage_pct) == []


def test_coverage_above_100_is_flagged_not_raised():
    ledger = _merge([{"address": "0x1", "shares": "101"}], [], [], total="100")
    issues = validate_coverage(ledger.summary.coverage_pct)
    assert len(issues) == 1
    assert "101.00%" in issues[0]
    with pytest.raises(ValueError):
        validate_coverage(ledger.summary.coverage_pct, warn_only=False)


def test_coverage_within_tolerance_is_not_flagged():
    ledger = _merge([{"address": "0x1", "shares": "100.005"}], [], [], total="100")
    assert validate_coverage(ledger.summary.coverage_pct) == []


def test_zero_total_supply_gives_zero_percentages():
    ledger = _merge([{"address": "0x1", "shares": "1"}], [], [], total="0")
    assert ledger.lenders[0].pct_of_vault == 0
    assert ledger.summary.coverage_pct == 0


def test_merge_is_idempotent_apart_from_timestamp():
    direct = [{"address": "0xA", "shares": "1.5"}, {"address": "0xB", "shares": "2"}]
    custodial = [{"address": "0xa", "shares": "0.25"}]
    vault = parse_vault_state({"price_per_share": "1.01", "total_supply_shares": "10", "block": 123})

    docs = [
        dumps_document(build_ledger_document(_merge(direct, custodial, [], price="1.01", total="10"), vault, generated_at="t"))
        for _ in range(2)
    ]
    assert docs[0] == docs[1]


def test_category_list_is_configurable():
    sources = [
        PositionSource("pool_a", [{"address": "0x1", "shares": "1"}], apply_exclusions=True),
        PositionSource("pool_b", [{"address": "0x1", "shares": "2"}]),
        PositionSource("pool_c", [{"address": "0x2", "shares": "4"}]),
        PositionSource("pool_d", [{"address": "0x3", "shares": "8"}], apply_exclusions=True),
    ]
    ledger = merge_positions(
        sources,
        price_per_share=Decimal("1"),
        total_supply_shares=Decimal("15"),
        excluded_addresses=["0x3"],
    )
    assert [r.address for r in ledger.lenders] == ["0x2", "0x1"]
    assert list(ledger.summary.by_source) == ["pool_a", "pool_b", "pool_c", "pool_d"]
    assert ledger.summary.by_source["pool_d"].count == 0
