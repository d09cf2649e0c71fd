"""
設定ファイル — アロン・パナ分析の列位置・エリア定義・既定値を管理
"""

# アプリケーション設定
APP_TITLE = "📊 アロン・パナ 実利益分析"
APP_ICON = "📊"
MODULE_ID = "aron-pana"

# ページ（タブ）設定
PAGE_UPLOAD = "データ読込"
PAGE_OVERVIEW = "概要"
PAGE_MONTHLY = "月次"
PAGE_STORE = "販売店"
PAGE_SIMULATION = "シミュレーション"
PAGE_FORECAST = "需要予測"
PAGE_DETAILS = "商品明細"

PAGES = [
    PAGE_UPLOAD, PAGE_OVERVIEW, PAGE_MONTHLY, PAGE_STORE,
    PAGE_SIMULATION, PAGE_FORECAST, PAGE_DETAILS,
]

# 列記号 → 0始まりインデックス
COL = {chr(ord("A") + i): i for i in range(26)}
COL.update({"AA": 26, "AB": 27})

# 販売実績の列位置
SALES_COLS = {
    "order_no": COL["A"],     # 受注番号
    "date": COL["B"],         # 受注日
    "store_code": COL["C"],   # 得意先コード
    "store": COL["D"],        # 得意先名
    "jan": COL["H"],          # JANコード
    "name": COL["I"],         # 商品名
    "qty": COL["K"],          # 数量
    "unit_price": COL["L"],   # 単価
    "total_price": COL["M"],  # 金額
    "maker": COL["S"],        # メーカー表記
    "sales_rep": COL["Z"],    # 営業担当
    "prefecture": COL["AB"],  # 都道府県
}

# 送料マスタの列位置
SHIPPING_COLS = {
    "jan": COL["A"],
    "name": COL["B"],
    "size_band": COL["I"],  # サイズ帯
}

# 商品マスタの列位置
PRODUCT_COLS = {
    "jan": COL["A"],
    "name": COL["D"],
    "list_price": COL["H"],       # 定価
    "cost": COL["M"],             # 仕入原価
    "warehouse_cost": COL["O"],   # 倉庫原価（>0なら優先）
}

# 送料マスタのエリア列（J〜V）
SHIPPING_AREA_COLS = [COL[c] for c in "JKLMNOPQRSTUV"]

# エリア見出しが読めない場合の既定マッピング
DEFAULT_AREA_BY_COL = {
    COL["J"]: "hokkaido",
    COL["K"]: "kitaTohoku",
    COL["L"]: "minamiTohoku",
    COL["M"]: "kanto",
    COL["N"]: "shinetsu",
    COL["O"]: "hokuriku",
    COL["P"]: "chubu",
    COL["Q"]: "kansai",
    COL["R"]: "chugoku",
    COL["S"]: "shikoku",
    COL["T"]: "kitaKyushu",
    COL["U"]: "minamiKyushu",
    COL["V"]: "okinawa",
}

# 自エリアに送料がない場合の補完順
AREA_FALLBACK_ORDER = [
    "kanto", "chubu", "kansai", "kitaTohoku", "minamiTohoku", "hokkaido",
    "shinetsu", "hokuriku", "chugoku", "shikoku", "kitaKyushu",
    "minamiKyushu", "okinawa",
]

# 沖縄（小口以外）の固定送料
OKINAWA_SHIPPING_COST = 3000.0

# 小口扱いのサイズ帯上限
SMALL_PARCEL_MAX_SIZE = 100

# ヘッダー行検出キーワード
SHIPPING_HEADER_KEYWORDS = ["jan", "janコード", "商品", "コード", "品番"]
SALES_HEADER_KEYWORDS = ["jan", "janコード", "商品", "コード", "品番", "数量", "販売", "受注"]
PRODUCT_HEADER_KEYWORDS = ["jan", "code", "item", "cost", "price"]

HEADER_SCAN_ROWS = 15

# シート自動判定
SHIPPING_PREFERRED_SHEETS = ["商品"]
SHEET_MIN_COLS = 10
SHEET_SCAN_ROWS = 20

# 設定の既定値
DEFAULT_WAREHOUSE_OUT_FEE = 50.0
DEFAULT_KEYWORD_ARON = ["アロン"]
DEFAULT_KEYWORD_PANA = ["パナソニック", "パナ", "panasonic"]

UNKNOWN_MONTH = "unknown"
UNKNOWN_STORE = "(不明)"
UNSET_REP = "(未設定)"

# シミュレーションの掃引幅（%）
PRICE_SWEEP_STEPS = list(range(-20, 21, 2))

# 保存関連
STATE_SCHEMA_VERSION = 2
STATE_CHUNK_SIZE = 700000
LOCAL_STATE_FILE = ".cache/aron-pana-autostate.json"
