import io

import pandas as pd

from aronpana.loader import load_sales
from aronpana.models import Maker, Settings
from aronpana.workbook import read_workbook

from conftest import SALES_HEADER, SCENARIO_JAN, sales_row


def test_read_csv_bytes_trims_blank_cells():
    wb = read_workbook("JAN,商品名,,\n4901,トイレ,,\n,,,\n".encode("utf-8"), "販売実績_2024-05.csv")

    assert wb.file_name == "販売実績_2024-05.csv"
    assert wb.sheet_names == ["販売実績_2024-05"]
    rows = wb.rows(wb.sheet_names[0])
    assert rows[0] == ["JAN", "商品名"]
    assert rows[1] == ["4901", "トイレ"]
    assert rows[2] == []


def test_read_csv_falls_back_to_cp932():
    wb = read_workbook("JAN,商品名\n4901,温水便座\n".encode("cp932"), "master.csv")
    assert wb.rows("master")[1] == ["4901", "温水便座"]


def test_read_excel_all_sheets():
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame([["表紙"]]).to_excel(writer, sheet_name="表紙", header=False, index=False)
        pd.DataFrame([["JAN", "定価"], ["4901", 1000]]).to_excel(
            writer, sheet_name="商品", header=False, index=False)

    wb = read_workbook(buf.getvalue(), "商品マスタ.xlsx")

    assert wb.sheet_names == ["表紙", "商品"]
    assert wb.rows("商品") == [["JAN", "定価"], ["4901", 1000]]
    assert wb.rows("存在しない") == []


def _csv_line(row: list) -> str:
    return ",".join(str(c) for c in row)


def test_read_csv_with_title_row_pads_short_rows():
    text = "\n".join([
        "2024年5月分 実績一覧",
        _csv_line(SALES_HEADER),
        _csv_line(sales_row(order_no="5001", date="2024/05/10", store="A商店", jan=SCENARIO_JAN,
                            name="ポータブルトイレ", qty=3, unit_price=900, maker="アロン化成",
                            prefecture="東京都")),
    ]) + "\n"

    wb = read_workbook(text.encode("utf-8"), "販売実績.csv")
    rows = wb.rows("販売実績")
    assert rows[0] == ["2024年5月分 実績一覧"]
    assert rows[1][0] == "受注番号"
    assert len(rows[2]) > 1

    load = load_sales([wb], [], Settings())
    assert load.added == 1
    sale = load.records[0]
    assert (sale.order_no, sale.month, sale.maker, sale.qty) == ("5001", "2024-05", Maker.ARON, 3)


def test_read_empty_csv():
    wb = read_workbook(b"", "empty.csv")
    assert wb.rows("empty") == []
