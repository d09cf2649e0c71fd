import pytest

from aronpana.aggregate import (
    build_monthly, build_products, build_store_slices, calc_warehouse, filter_products,
    roll_up_stores, run_analysis, sort_store_entries,
)
from aronpana.models import AreaCode, Maker, MakerRebate, ProductRecord, Settings, ShippingRecord

from conftest import SCENARIO_JAN, make_record, make_sale


def _masters():
    shipping = [
        ShippingRecord(jan=SCENARIO_JAN, size_band=150, area_costs={AreaCode.KANTO: 500.0}),
        ShippingRecord(jan="2", size_band=150, area_costs={AreaCode.KANTO: 100.0, AreaCode.KANSAI: 120.0}),
    ]
    products = [
        ProductRecord(jan=SCENARIO_JAN, list_price=1000, cost=600),
        ProductRecord(jan="2", list_price=2000, cost=1200),
    ]
    return shipping, products


def _sales():
    return [
        make_sale(order_no="1", month="2024-05", maker=Maker.ARON),
        make_sale(order_no="2", month="2024-05", maker=Maker.PANA, jan="2", qty=3, unit_price=1800,
                  store="B商店", store_code="S002", sales_rep="佐藤", prefecture="大阪府"),
        make_sale(order_no="3", month="2024-06", maker=Maker.ARON, qty=4, unit_price=950),
        make_sale(order_no="4", month="2024-06", maker=Maker.OTHER, jan="2", qty=1, unit_price=2100,
                  store="", store_code="", sales_rep=""),
    ]


def test_scenario_real_profit(scenario_sale, scenario_shipping, scenario_product, settings):
    result = run_analysis([scenario_sale], [scenario_shipping], [scenario_product], settings)
    bucket = result.monthly[("2024-05", Maker.ARON)]

    assert result.total_gross == -2000
    assert bucket.rebate.variable == pytest.approx(450)
    assert bucket.gross + bucket.rebate.total == pytest.approx(-1550)
    assert result.real_profit == pytest.approx(-1550)


def test_real_profit_identity():
    settings = Settings(
        rebate_aron=0.05, rebate_pana=0.03, warehouse_fee=10000, warehouse_out_fee=50,
        monthly_rebates={"2024-06": {Maker.PANA: MakerRebate(achieve=5000, car=1000)}},
    )
    shipping, products = _masters()
    result = run_analysis(_sales(), shipping, products, settings)

    gross = sum(r.gross_profit for r in result.records)
    rebate = sum(b.rebate.total for b in result.monthly.values())
    expected = gross + rebate - (settings.warehouse_fee * result.month_count + result.total_qty * 50)
    assert result.real_profit == pytest.approx(expected, rel=1e-6)
    assert result.month_count == 2
    assert sum(b.real_profit for b in result.monthly.values()) == pytest.approx(result.real_profit)


def test_fixed_rebate_creates_bucket_without_sales():
    settings = Settings(monthly_rebates={"2024-06": {Maker.PANA: MakerRebate(achieve=5000, car=1000)}})
    shipping, products = _masters()
    result = run_analysis(_sales(), shipping, products, settings)

    bucket = result.monthly[("2024-06", Maker.PANA)]
    assert bucket.sales == 0
    assert bucket.rebate.fixed == 6000
    assert result.rebate_by_maker[Maker.PANA] == pytest.approx(6000)


def test_fixed_rebate_in_month_without_any_sales_is_not_counted():
    settings = Settings(monthly_rebates={"2024-07": {Maker.ARON: MakerRebate(achieve=5000)}})
    shipping, products = _masters()
    result = run_analysis(_sales(), shipping, products, settings)

    assert "2024-07" not in result.months
    assert not any(month == "2024-07" for month, _ in result.monthly)
    assert result.rebate_by_maker[Maker.ARON] == pytest.approx(
        sum(b.rebate.total for (_, maker), b in result.monthly.items() if maker is Maker.ARON))


def test_warehouse_base_apportioned_per_month():
    settings = Settings(warehouse_fee=10000)
    records = [
        make_record(month="2024-05", maker=Maker.ARON, qty=1, unit_price=300),
        make_record(month="2024-05", maker=Maker.PANA, qty=1, unit_price=100),
        make_record(month="2024-06", maker=Maker.OTHER, qty=2, unit_price=50),
    ]
    summary = build_monthly(records, settings)
    for month in ("2024-05", "2024-06"):
        total = sum(b.warehouse.base for (m, _), b in summary.buckets.items() if m == month)
        assert total == pytest.approx(10000)
    assert summary.buckets[("2024-05", Maker.ARON)].warehouse.base == pytest.approx(7500)


def test_warehouse_base_zero_when_month_has_no_sales():
    assert calc_warehouse(0, 0, 0, Settings(warehouse_fee=10000)).base == 0


def test_store_view_roll_up_and_filters():
    records = [
        make_record(store="A商店", store_code="S001", sales_rep="山田", month="2024-05", maker=Maker.ARON),
        make_record(store="A商店", store_code="S001", sales_rep="田中", month="2024-06", maker=Maker.PANA,
                    unit_price=800),
        make_record(store="", store_code="", sales_rep="", month="2024-06", maker=Maker.ARON),
    ]
    slices = build_store_slices(records).values()

    entries = {e.store: e for e in roll_up_stores(slices)}
    a = entries["A商店"]
    assert a.sales_rep == " / ".join(sorted(["山田", "田中"]))
    assert a.aron_rate == pytest.approx(0.9)
    assert a.pana_rate == pytest.approx(0.8)
    assert entries["(不明)"].sales_rep == "(未設定)"

    only_june = roll_up_stores(slices, month="2024-06", maker=Maker.PANA)
    assert [e.store for e in only_june] == ["A商店"]
    assert roll_up_stores(slices, rep="田中")[0].qty == 10


def test_sort_store_entries():
    records = [
        make_record(store="A", unit_price=900),
        make_record(store="B", unit_price=1500),
        make_record(store="C", unit_price=1200),
    ]
    entries = roll_up_stores(build_store_slices(records).values())
    assert [e.store for e in sort_store_entries(entries)] == ["B", "C", "A"]
    assert [e.store for e in sort_store_entries(entries, "sales-asc")] == ["A", "C", "B"]
    assert [e.store for e in sort_store_entries(entries, "store-desc")] == ["C", "B", "A"]
    assert [e.store for e in sort_store_entries(entries, "bogus")] == ["B", "C", "A"]


def test_products_and_filter():
    records = [
        make_record(jan="111", name="ポータブルトイレ", maker=Maker.ARON, unit_price=900),
        make_record(jan="111", name="ポータブルトイレ", maker=Maker.ARON, unit_price=700, qty=0),
        make_record(jan="222", name="温水便座", maker=Maker.PANA, unit_price=1500),
    ]
    buckets = build_products(records)
    toilet = buckets["111"]
    assert toilet.avg_price == pytest.approx(800)
    assert toilet.rate_vs_list == pytest.approx(0.8)
    assert toilet.qty == 10

    assert [b.jan for b in filter_products(buckets.values(), search="便座")] == ["222"]
    assert [b.jan for b in filter_products(buckets.values(), maker=Maker.ARON)] == ["111"]
    assert [b.jan for b in filter_products(buckets.values(), sort_key="profit-asc")] == ["111", "222"]


def test_analysis_totals_split_by_maker():
    shipping, products = _masters()
    result = run_analysis(_sales(), shipping, products, Settings())
    assert result.aron_sales == pytest.approx(9000 + 3800)
    assert result.pana_sales == pytest.approx(5400)
    assert result.months == ("2024-05", "2024-06")
    assert result.total_sales == pytest.approx(9000 + 5400 + 3800 + 2100)
