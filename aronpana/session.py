"""
分析セッション: 3データ・設定・最新の分析結果をまとめて保持する

読込・設定変更・クリア・復元のたびに分析結果を破棄し、状態を通知する。
"""

import logging
from datetime import date
from typing import Callable, Iterable, NamedTuple, Optional

from .aggregate import AnalysisResult, roll_up_stores, run_analysis, sort_store_entries
from .config import UNKNOWN_MONTH
from .loader import load_product, load_sales, load_shipping
from .models import Maker, ProductRecord, SalesRecord, Settings, ShippingRecord
from .storage import build_state_payload
from .workbook import Workbook

logger = logging.getLogger(__name__)

NotifyFn = Callable[[str, bool], None]

MSG_NEED_ALL_DATA = "3つのデータすべてを読み込んでください。"


class StoreViewKey(NamedTuple):
    maker: Optional[Maker]
    month: Optional[str]
    rep: Optional[str]


class AnalysisSession:
    """1利用者分の作業状態"""

    def __init__(self, settings: Optional[Settings] = None, notify: Optional[NotifyFn] = None):
        self.shipping: tuple = ()
        self.sales: tuple = ()
        self.products: tuple = ()
        self.settings = settings or Settings()
        self.result: Optional[AnalysisResult] = None
        self.progress_draft: dict = {}
        self.log_lines: list = []
        self.status = ""
        self.ready = False
        self._notify = notify
        self._store_views: dict = {}

    # ============================================
    # 状態通知・ログ
    # ============================================

    @property
    def has_all_data(self) -> bool:
        return bool(self.shipping and self.sales and self.products)

    def log(self, message: str):
        self.log_lines.append(message)
        logger.info(message)

    def clear_log(self):
        self.log_lines = []

    def _report(self, status: str, ready: bool):
        self.status = status
        self.ready = ready
        if self._notify is not None:
            self._notify(status, ready)

    def _invalidate(self, status: str):
        self.result = None
        self._store_views.clear()
        self._report(status, self.has_all_data)

    def data_status(self) -> str:
        return (f"送料マスタ: {len(self.shipping)}件 / 販売実績: {len(self.sales)}件 / "
                f"商品マスタ: {len(self.products)}件")

    # ============================================
    # データ読込
    # ============================================

    def load_shipping(self, workbook: Workbook):
        load = load_shipping(workbook, self.log)
        self.shipping = load.records
        self._invalidate(f"送料マスタを読み込みました（{len(load.records)}件）")
        return load

    def load_sales(self, workbooks: Iterable[Workbook]):
        load = load_sales(workbooks, self.sales, self.settings, self.log)
        self.sales = load.records
        self._invalidate(f"販売実績を追加しました（+{load.added}件 / 累計{len(load.records)}件）")
        return load

    def load_product(self, workbooks: Iterable[Workbook]):
        load = load_product(workbooks, self.log)
        self.products = load.records
        self._invalidate(f"商品マスタを読み込みました（{len(load.records)}件）")
        return load

    def clear_shipping(self):
        self.shipping = ()
        self.log("送料マスタをクリアしました")
        self._invalidate("送料マスタをクリアしました")

    def clear_sales(self):
        self.sales = ()
        self.log("販売実績をクリアしました")
        self._invalidate("販売実績をクリアしました")

    def clear_product(self):
        self.products = ()
        self.log("商品マスタをクリアしました")
        self._invalidate("商品マスタをクリアしました")

    def update_settings(self, settings: Settings):
        if settings == self.settings:
            return
        self.settings = settings
        self._invalidate("設定を変更しました（再分析してください）")

    def set_draft(self, key: str, value):
        """入力途中の値（保存対象だが分析には影響しない）"""
        self.progress_draft[key] = value

    # ============================================
    # 分析
    # ============================================

    def analyze(self) -> Optional[AnalysisResult]:
        if not self.has_all_data:
            self._report(MSG_NEED_ALL_DATA, False)
            return None

        result = run_analysis(self.sales, self.shipping, self.products, self.settings)
        self.result = result
        self._store_views.clear()
        self.log(result.stats.summary())
        self.log(result.summary())
        self._report(result.summary(), True)
        return result

    def store_view(self, maker: Optional[Maker] = None, month: Optional[str] = None,
                   rep: Optional[str] = None, sort_key: str = "gross-desc") -> list:
        """販売店一覧（絞込み条件ごとにキャッシュ）"""
        if self.result is None:
            return []
        key = StoreViewKey(maker, month, rep)
        entries = self._store_views.get(key)
        if entries is None:
            entries = roll_up_stores(self.result.store_slices.values(), maker, month, rep)
            self._store_views[key] = entries
        return sort_store_entries(entries, sort_key)

    def sales_reps(self) -> list:
        if self.result is None:
            return []
        return sorted({k.sales_rep for k in self.result.store_slices if k.sales_rep})

    def months_for_rebate_inputs(self) -> list:
        """固定リベート入力欄を出す月（データがなければ当月）"""
        months = sorted({r.month for r in self.sales if r.month and r.month != UNKNOWN_MONTH})
        return months or [date.today().strftime("%Y-%m")]

    # ============================================
    # 保存・復元
    # ============================================

    def to_payload(self) -> dict:
        return build_state_payload(self.shipping, self.sales, self.products,
                                   self.settings, self.progress_draft)

    def apply_payload(self, payload) -> bool:
        """
        保存済みペイロードで状態を置き換える。
        3データの配列が1つでも欠けていれば何も変更せず False を返す。
        """
        if not isinstance(payload, dict):
            return False
        arrays = [payload.get(k) for k in ("shippingData", "salesData", "productData")]
        if not all(isinstance(a, list) for a in arrays):
            logger.warning("保存データに必須の配列がありません")
            return False

        try:
            shipping = tuple(ShippingRecord.from_dict(d) for d in arrays[0])
            sales = tuple(SalesRecord.from_dict(d) for d in arrays[1])
            products = tuple(ProductRecord.from_dict(d) for d in arrays[2])
            settings = Settings.from_dict(payload.get("settings"))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("保存データの形式が不正です: %s", e)
            return False

        draft = payload.get("progressDraft")
        self.shipping = shipping
        self.sales = sales
        self.products = products
        self.settings = settings
        self.progress_draft = dict(draft) if isinstance(draft, dict) else {}
        self.log(f"保存データを復元しました: {self.data_status()}")
        self._invalidate("保存データを復元しました")
        return True
