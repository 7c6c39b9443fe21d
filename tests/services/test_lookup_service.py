"""
Tests for the lookup orchestrator (lookup_and_calculate).

Covers:
- Matched / unmatched partitioning and annotations
- Order preservation, sequential and parallel
- Per-record calculation failures routed to unmatched
- Fatal setup errors
- Lifecycle events
"""

import pytest
from decimal import Decimal

from billing_engines.assembly import OutputFieldConfig
from billing_engines.calculator import CalculationConfig
from billing_engines.matching import MatchFieldPair, MatchMode, MatchPolicy
from billing_kernel.exceptions import ExtractionError, MissingMatchFieldsError
from billing_services import LookupEventType, lookup_and_calculate


class TestLookupAndCalculate:
    """End-to-end over the engines."""

    def test_matched_and_unmatched(
        self, price_list, usage_records, sku_match_fields, basic_calc_config
    ):
        matched, unmatched = lookup_and_calculate(
            price_list, usage_records, sku_match_fields, basic_calc_config
        )

        assert [m["usage_sku"] for m in matched] == ["vm-small", "STORAGE"]
        assert matched[0]["calc_amount"] == Decimal("5.00")
        # 250.5 x 0.023 = 5.7615
        assert matched[1]["calc_amount"] == Decimal("5.76")
        assert matched[1]["price_sku"] == "STORAGE"

        (missing,) = unmatched
        assert missing["sku"] == "GPU-XL"
        assert missing["match_reason"] == "No matching price records found"
        assert missing["match_count"] == 0
        assert missing["match_error_code"] == "NO_MATCH_FOUND"
        assert "match_depth" not in missing

    def test_ambiguous_match_is_unmatched(self, price_list, basic_calc_config):
        result = lookup_and_calculate(
            price_list,
            [{"region": "us-east", "hours": 1}],
            [MatchFieldPair("region", "region")],
            basic_calc_config,
        )

        assert result.matched == ()
        (record,) = result.unmatched
        assert record["match_reason"] == "Multiple matching price records found (3)"
        assert record["match_count"] == 3
        assert record["match_error_code"] == "MULTIPLE_MATCHES_FOUND"

    def test_unmatched_record_is_a_copy(self, price_list, sku_match_fields, basic_calc_config):
        usage = [{"sku": "nope", "hours": 1}]
        result = lookup_and_calculate(price_list, usage, sku_match_fields, basic_calc_config)

        assert "match_reason" not in usage[0]
        assert result.unmatched[0]["hours"] == 1

    def test_hierarchical_unmatched_has_depth(self, basic_calc_config):
        prices = [{"cat": "compute", "sku": "vm", "unit_price": 1}]
        fields = [MatchFieldPair("cat", "cat"), MatchFieldPair("sku", "sku")]
        result = lookup_and_calculate(
            prices,
            [{"cat": "compute", "sku": "gpu", "hours": 2}],
            fields,
            basic_calc_config,
            policy=MatchPolicy(mode=MatchMode.HIERARCHICAL),
        )

        assert result.unmatched[0]["match_depth"] == 1

    def test_best_match_single_candidate_is_priced(self, basic_calc_config):
        prices = [{"cat": "compute", "sku": "vm", "unit_price": "2"}]
        fields = [MatchFieldPair("cat", "cat"), MatchFieldPair("sku", "sku")]
        policy = MatchPolicy(mode="hierarchical", partial_match="best_match")
        result = lookup_and_calculate(
            prices, [{"cat": "compute", "sku": "gpu", "hours": 3}], fields, basic_calc_config,
            policy=policy,
        )

        assert result.matched[0]["calc_amount"] == Decimal("6.00")

    def test_calculation_error_routed_to_unmatched(self, recording_sink):
        config = CalculationConfig(
            quantity_field="qty", price_field="price", method="tiered", tiers_field="tiers"
        )
        prices = [
            {"sku": "A", "price": 1, "tiers": [{"threshold": 0, "rate": 2}]},
            {"sku": "B", "price": 1, "tiers": "not json"},
        ]
        result = lookup_and_calculate(
            prices,
            [{"sku": "A", "qty": 5}, {"sku": "B", "qty": 5}],
            [MatchFieldPair("sku", "sku")],
            config,
            event_sink=recording_sink,
        )

        assert result.matched[0]["calc_amount"] == Decimal("10.00")
        (failed,) = result.unmatched
        assert failed["sku"] == "B"
        assert failed["match_reason"].startswith("Calculation failed: ")
        assert failed["match_count"] == 1
        assert failed["match_error_code"] == "INVALID_TIER_DEFINITION"
        assert recording_sink.types()[-1] is LookupEventType.INVOCATION_COMPLETED

    def test_dual_pricing_output(self, price_list):
        prices = [{"sku": "A", "cost": "0.10", "sell": "0.25"}]
        config = CalculationConfig(
            quantity_field="qty", cost_price_field="cost", sell_price_field="sell"
        )
        (out,), _ = lookup_and_calculate(
            prices, [{"sku": "a", "qty": 4}], [MatchFieldPair("sku", "sku")], config
        )

        assert out["calc_cost_amount"] == Decimal("0.40")
        assert out["calc_sell_amount"] == Decimal("1.00")

    def test_output_config_applied(self, price_list, usage_records, sku_match_fields, basic_calc_config):
        result = lookup_and_calculate(
            price_list,
            usage_records,
            sku_match_fields,
            basic_calc_config,
            OutputFieldConfig(include_calculation_fields=False, calculated_amount_field="total"),
        )
        assert set(result.matched[0]) == {"price_sku", "usage_sku", "total"}

    def test_inputs_not_mutated(self, price_list, usage_records, sku_match_fields, basic_calc_config):
        prices_before = [dict(p) for p in price_list]
        usage_before = [dict(u) for u in usage_records]

        lookup_and_calculate(price_list, usage_records, sku_match_fields, basic_calc_config)

        assert price_list == prices_before
        assert usage_records == usage_before


class TestOrdering:
    """Output order equals input order, with or without workers."""

    @pytest.fixture
    def many_records(self):
        return [{"sku": "A" if i % 3 else "Z", "hours": i} for i in range(60)]

    def test_parallel_matches_sequential(self, many_records, basic_calc_config):
        prices = [{"sku": "A", "unit_price": "0.5"}]
        fields = [MatchFieldPair("sku", "sku")]

        sequential = lookup_and_calculate(prices, many_records, fields, basic_calc_config)
        parallel = lookup_and_calculate(
            prices, many_records, fields, basic_calc_config, max_workers=8
        )

        assert parallel.matched == sequential.matched
        assert parallel.unmatched == sequential.unmatched
        assert [m["calc_hours"] for m in parallel.matched] == [
            i for i in range(60) if i % 3
        ]

    def test_parallel_events_cover_every_record(self, many_records, basic_calc_config, recording_sink):
        lookup_and_calculate(
            [{"sku": "A", "unit_price": 1}],
            many_records,
            [MatchFieldPair("sku", "sku")],
            basic_calc_config,
            event_sink=recording_sink,
            max_workers=4,
        )

        attempted = recording_sink.of_type(LookupEventType.MATCH_ATTEMPTED)
        assert sorted(e.record_index for e in attempted) == list(range(60))
        assert len(recording_sink.of_type(LookupEventType.MATCH_RESOLVED)) == 40
        assert len(recording_sink.of_type(LookupEventType.RECORD_UNMATCHED)) == 20


class TestFatalErrors:
    def test_no_match_fields(self, price_list, usage_records, basic_calc_config, recording_sink):
        with pytest.raises(MissingMatchFieldsError):
            lookup_and_calculate(
                price_list, usage_records, [], basic_calc_config, event_sink=recording_sink
            )

        (failed,) = recording_sink.of_type(LookupEventType.INVOCATION_FAILED)
        assert failed.attributes["error_code"] == "MISSING_MATCH_FIELDS"

    def test_non_record_usage(self, price_list, sku_match_fields, basic_calc_config):
        with pytest.raises(ExtractionError) as exc_info:
            lookup_and_calculate(price_list, [{"sku": "A"}, "B"], sku_match_fields, basic_calc_config)
        assert exc_info.value.code == "INVALID_USAGE_DATA_FORMAT"

    def test_empty_usage_is_not_an_error(self, price_list, sku_match_fields, basic_calc_config):
        result = lookup_and_calculate(price_list, [], sku_match_fields, basic_calc_config)
        assert result.matched == ()
        assert result.unmatched == ()


class TestLifecycleEvents:
    def test_event_sequence(self, price_list, usage_records, sku_match_fields, basic_calc_config, recording_sink):
        lookup_and_calculate(
            price_list, usage_records, sku_match_fields, basic_calc_config, event_sink=recording_sink
        )

        types = recording_sink.types()
        assert types[0] is LookupEventType.INVOCATION_STARTED
        assert types[-1] is LookupEventType.INVOCATION_COMPLETED
        started = recording_sink.events[0].attributes
        assert started["price_list_count"] == 4
        assert started["usage_count"] == 3
        assert started["match_mode"] == "flat"
        completed = recording_sink.events[-1].attributes
        assert completed["matched_count"] == 2
        assert completed["unmatched_count"] == 1

    def test_default_sink_logs(self, price_list, usage_records, sku_match_fields, basic_calc_config, captured_logs):
        lookup_and_calculate(price_list, usage_records, sku_match_fields, basic_calc_config)

        logs = captured_logs()
        messages = [r["message"] for r in logs]
        assert "lookup_invocation_started" in messages
        assert "lookup_invocation_completed" in messages

        (unmatched,) = [r for r in logs if r["message"] == "lookup_record_unmatched"]
        assert unmatched["error_code"] == "NO_MATCH_FOUND"
        assert unmatched["record_index"] == "2"
        assert "invocation_id" in unmatched
