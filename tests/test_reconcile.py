from aronpana.models import AreaCode, ProductRecord, Settings, ShippingRecord
from aronpana.reconcile import reconcile

from conftest import SCENARIO_JAN, make_sale


def test_scenario_line_values(scenario_sale, scenario_shipping, scenario_product):
    rec = reconcile([scenario_sale], [scenario_shipping], [scenario_product], Settings()).records[0]

    assert rec.shipping_cost == 500
    assert rec.shipping_area is AreaCode.KANTO
    assert rec.total_shipping == 5000
    assert rec.total_cost == 6000
    assert rec.sales_amount == 9000
    assert rec.gross_profit == -2000
    assert rec.rate_vs_list == 0.9


def test_only_lines_with_both_masters_are_kept(scenario_shipping, scenario_product):
    sales = [
        make_sale(jan=SCENARIO_JAN),
        make_sale(jan="no-shipping"),
        make_sale(jan="no-product"),
        make_sale(jan="neither"),
    ]
    shipping = [scenario_shipping, ShippingRecord(jan="no-product", area_costs={AreaCode.KANTO: 1.0})]
    products = [scenario_product, ProductRecord(jan="no-shipping", cost=1.0)]

    result = reconcile(sales, shipping, products, Settings())
    stats = result.stats

    assert [r.jan for r in result.records] == [SCENARIO_JAN]
    assert stats.total == 4
    assert stats.matched + stats.excluded == stats.total
    assert stats.no_shipping == 2
    assert stats.no_product == 2
    assert "1件一致" in stats.summary()


def test_diagnostic_counters(scenario_product):
    shipping = ShippingRecord(jan=SCENARIO_JAN, size_band=150, area_costs={AreaCode.KANSAI: 800.0})
    sales = [make_sale(prefecture="東京都"), make_sale(prefecture="不明"), make_sale(prefecture="大阪府")]
    stats = reconcile(sales, [shipping], [scenario_product], Settings()).stats

    assert stats.area_fallback == 2
    assert stats.no_area == 0
    assert stats.zero_cost == 0


def test_zero_cost_and_no_area_counted(scenario_product):
    shipping = ShippingRecord(jan=SCENARIO_JAN, size_band=150)
    stats = reconcile([make_sale(prefecture="")], [shipping], [scenario_product], Settings()).stats
    assert stats.no_area == 1
    assert stats.zero_cost == 1


def test_warehouse_cost_preferred(scenario_shipping):
    product = ProductRecord(jan=SCENARIO_JAN, list_price=1000, cost=600, warehouse_cost=550)
    rec = reconcile([make_sale()], [scenario_shipping], [product], Settings()).records[0]
    assert rec.effective_cost == 550
