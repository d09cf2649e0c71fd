"""
テスト共通 — 生データ行・ワークブック・レコードの組み立て
"""

import pytest

from aronpana.config import PRODUCT_COLS, SALES_COLS, SHIPPING_AREA_COLS, SHIPPING_COLS
from aronpana.models import (
    AREA_LABEL, AreaCode, Maker, ProductRecord, ReconciledRecord, SalesRecord, Settings, ShippingRecord,
)
from aronpana.workbook import Workbook

SCENARIO_JAN = "4901234567890"


def _row(cols: dict, width: int, **values) -> list:
    row = [""] * width
    for key, value in values.items():
        row[cols[key]] = value
    return row


def sales_row(**values) -> list:
    return _row(SALES_COLS, 28, **values)


def shipping_row(area_costs: dict = None, **values) -> list:
    row = _row(SHIPPING_COLS, 22, **values)
    for i, col in enumerate(SHIPPING_AREA_COLS):
        area = list(AreaCode)[i]
        row[col] = (area_costs or {}).get(area, "")
    return row


def product_row(**values) -> list:
    return _row(PRODUCT_COLS, 16, **values)


SALES_HEADER = sales_row(order_no="受注番号", date="受注日", store_code="得意先コード", store="得意先名",
                         jan="JANコード", name="商品名", qty="数量", unit_price="単価",
                         total_price="金額", maker="メーカー", sales_rep="担当者", prefecture="都道府県")

SHIPPING_HEADER = shipping_row(jan="JANコード", name="商品名", size_band="サイズ")
for _i, _col in enumerate(SHIPPING_AREA_COLS):
    SHIPPING_HEADER[_col] = AREA_LABEL[list(AreaCode)[_i]]

PRODUCT_HEADER = product_row(jan="JAN", name="商品名", list_price="定価", cost="原価", warehouse_cost="倉庫原価")


def make_workbook(rows: list, file_name: str = "data.xlsx", sheet: str = "Sheet1") -> Workbook:
    return Workbook(file_name=file_name, sheet_names=[sheet], sheets={sheet: rows})


def make_sale(**overrides) -> SalesRecord:
    values = dict(
        order_no="", month="2024-05", maker=Maker.ARON, maker_raw="アロン化成",
        sales_rep="山田", store="A商店", store_code="S001", prefecture="東京都",
        jan=SCENARIO_JAN, name="ポータブルトイレ", qty=10.0, unit_price=900.0, total_price=9000.0,
    )
    values.update(overrides)
    return SalesRecord(**values)


def make_record(**overrides) -> ReconciledRecord:
    computed = dict(shipping_cost=500.0, shipping_area=AreaCode.KANTO, effective_cost=600.0, list_price=1000.0)
    for key in list(computed):
        if key in overrides:
            computed[key] = overrides.pop(key)
    return ReconciledRecord.from_sale(make_sale(**overrides), **computed)


@pytest.fixture
def scenario_shipping():
    return ShippingRecord(jan=SCENARIO_JAN, name="ポータブルトイレ", size_band=150,
                          area_costs={AreaCode.KANTO: 500.0})


@pytest.fixture
def scenario_product():
    return ProductRecord(jan=SCENARIO_JAN, name="ポータブルトイレ", list_price=1000.0, cost=600.0)


@pytest.fixture
def scenario_sale():
    return make_sale()


@pytest.fixture
def settings():
    return Settings(rebate_aron=0.05, warehouse_out_fee=0.0)


@pytest.fixture
def sales_workbook():
    rows = [
        SALES_HEADER,
        sales_row(order_no="1001", date="2024/05/10", store_code="S001", store="A商店", jan=SCENARIO_JAN,
                  name="ポータブルトイレ", qty=10, unit_price=900, total_price=9000,
                  maker="アロン化成(株)", sales_rep="山田", prefecture="東京都"),
        sales_row(order_no="1002", date="2024/06/03", store="A商店", jan="4902222222222",
                  name="温水便座", qty=2, unit_price="1,500", total_price=3000,
                  maker="Panasonic", sales_rep="佐藤", prefecture="大阪府"),
        sales_row(order_no="", date="", store="B商店", jan="4903333333333",
                  name="手すり", qty=1, unit_price=500, total_price=500,
                  maker="その他メーカー", prefecture="北海道"),
        sales_row(order_no="1003", date="2024/06/03", store="C商店", jan="",
                  name="JANなし", qty=1, unit_price=100),
    ]
    return make_workbook(rows, file_name="販売実績_2024-07.xlsx")
