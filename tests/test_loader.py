from aronpana.loader import (
    backfill_store_codes, detect_maker, find_best_sheet, find_header_row,
    load_product, load_sales, load_shipping,
)
from aronpana.models import AreaCode, Maker, Settings
from aronpana.workbook import Workbook

from conftest import (
    PRODUCT_HEADER, SALES_HEADER, SCENARIO_JAN, SHIPPING_HEADER,
    make_sale, make_workbook, product_row, sales_row, shipping_row,
)


# ============================================
# ヘッダー・シート判定
# ============================================

def test_find_header_row_skips_title_rows():
    rows = [["販売実績一覧"], [""], ["受注番号", "日付", "JANコード"], ["1", "2024/05/01", "4901"]]
    assert find_header_row(rows, ["jan"]) == 2


def test_find_header_row_defaults_to_zero():
    rows = [["a", "b"], ["c", "d"]]
    assert find_header_row(rows, ["jan"]) == 0


def test_find_best_sheet_prefers_named_sheet():
    data = [["x"] * 12 for _ in range(8)]
    wb = Workbook("m.xlsx", ["表紙", "商品一覧"], {"表紙": [["タイトル"]], "商品一覧": data})
    assert find_best_sheet(wb, ["商品"], 10, 0, lambda _: None) == "商品一覧"


def test_find_best_sheet_scores_jan_rows():
    notes = [["メモ"] * 12 for _ in range(6)]
    data = [["JAN"] + [""] * 11] + [[f"49000000000{i:02d}"] + ["v"] * 11 for i in range(5)]
    wb = Workbook("m.xlsx", ["メモ", "データ"], {"メモ": notes, "データ": data})
    assert find_best_sheet(wb, [], 10, 0, lambda _: None) == "データ"


# ============================================
# メーカー判定
# ============================================

def test_detect_maker_ignores_brackets_and_kabu():
    s = Settings()
    assert detect_maker("（株）アロン化成", s) is Maker.ARON
    assert detect_maker("パナソニック エイジフリー", s) is Maker.PANA
    assert detect_maker("PANASONIC", s) is Maker.PANA
    assert detect_maker("TOTO", s) is Maker.OTHER
    assert detect_maker("", s) is Maker.OTHER


def test_detect_maker_checks_aron_first():
    s = Settings(keyword_aron=("共通",), keyword_pana=("共通",))
    assert detect_maker("共通メーカー", s) is Maker.ARON


# ============================================
# 送料マスタ
# ============================================

def test_load_shipping_maps_area_columns_from_header():
    rows = [
        SHIPPING_HEADER,
        shipping_row(jan=SCENARIO_JAN, name="トイレ", size_band=150,
                     area_costs={AreaCode.KANTO: 500, AreaCode.OKINAWA: "2,800"}),
        shipping_row(jan="", name="空行"),
    ]
    load = load_shipping(make_workbook(rows, "送料.xlsx"), lambda _: None)
    assert len(load.records) == 1
    assert load.skipped == 1
    rec = load.records[0]
    assert rec.size_band == 150
    assert rec.area_costs == {AreaCode.KANTO: 500.0, AreaCode.OKINAWA: 2800.0}


def test_load_shipping_replaces_numeric_jan():
    rows = [SHIPPING_HEADER, shipping_row(jan=4901234567890.0, area_costs={AreaCode.KANTO: 100})]
    load = load_shipping(make_workbook(rows), lambda _: None)
    assert load.records[0].jan == SCENARIO_JAN


# ============================================
# 販売実績
# ============================================

def test_load_sales_reads_rows(sales_workbook):
    lines = []
    load = load_sales([sales_workbook], [], Settings(), lines.append)

    assert load.added == 3
    assert [r.maker for r in load.records] == [Maker.ARON, Maker.PANA, Maker.OTHER]
    assert [r.month for r in load.records] == ["2024-05", "2024-06", "2024-07"]
    assert load.records[1].unit_price == 1500
    assert load.months == ("2024-05", "2024-06", "2024-07")
    assert any("検出月一覧" in line for line in lines)


def test_load_sales_twice_does_not_duplicate_orders(sales_workbook):
    first = load_sales([sales_workbook], [], Settings(), lambda _: None)
    second = load_sales([sales_workbook], first.records, Settings(), lambda _: None)

    assert second.duplicates == 2
    # 受注番号が空の行は重複除外しない
    assert second.added == 1
    assert len(second.records) == 4


def test_load_sales_backfills_store_code(sales_workbook):
    load = load_sales([sales_workbook], [], Settings(), lambda _: None)
    assert load.backfilled == 1
    assert load.records[1].store_code == "S001"


def test_backfill_uses_most_common_code():
    records = [
        make_sale(store="A", store_code="X"),
        make_sale(store="A", store_code="Y"),
        make_sale(store="A", store_code="Y"),
        make_sale(store="A", store_code=""),
        make_sale(store="B", store_code=""),
    ]
    out, filled = backfill_store_codes(records)
    assert filled == 1
    assert out[3].store_code == "Y"
    assert out[4].store_code == ""


def test_load_sales_clamps_negative_qty():
    rows = [SALES_HEADER, sales_row(order_no="9", date="2024-05-01", jan="1", qty=-3, unit_price=100)]
    load = load_sales([make_workbook(rows)], [], Settings(), lambda _: None)
    assert load.records[0].qty == 0


# ============================================
# 商品マスタ
# ============================================

def test_load_product_last_wins_across_files():
    wb1 = make_workbook([PRODUCT_HEADER, product_row(jan=SCENARIO_JAN, name="旧", list_price=1000, cost=600)],
                        "p1.xlsx")
    wb2 = make_workbook([PRODUCT_HEADER,
                         product_row(jan=SCENARIO_JAN, name="新", list_price=1100, cost=600, warehouse_cost=550),
                         product_row(jan="", name="空")], "p2.xlsx")
    load = load_product([wb1, wb2], lambda _: None)

    assert len(load.records) == 1
    assert load.overwritten == 1
    assert load.skipped == 1
    rec = load.records[0]
    assert rec.name == "新"
    assert rec.effective_cost == 550
