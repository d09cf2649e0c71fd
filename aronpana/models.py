"""
データモデル — 送料マスタ・販売実績・商品マスタ・設定・突合済みレコード

保存ペイロード（JSON）とはキャメルケースの辞書で相互変換する。
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional

from .config import (
    DEFAULT_KEYWORD_ARON,
    DEFAULT_KEYWORD_PANA,
    DEFAULT_WAREHOUSE_OUT_FEE,
    UNKNOWN_MONTH,
)
from .normalize import to_number, to_str


class Maker(str, Enum):
    ARON = "aron"
    PANA = "pana"
    OTHER = "other"

    @classmethod
    def parse(cls, value) -> "Maker":
        try:
            return cls(to_str(value).lower())
        except ValueError:
            return cls.OTHER


# リベート対象メーカー
REBATE_MAKERS = (Maker.ARON, Maker.PANA)

MAKER_LABEL = {
    Maker.ARON: "アロン化成",
    Maker.PANA: "パナソニック",
    Maker.OTHER: "その他",
}


class AreaCode(str, Enum):
    HOKKAIDO = "hokkaido"
    KITA_TOHOKU = "kitaTohoku"
    MINAMI_TOHOKU = "minamiTohoku"
    KANTO = "kanto"
    SHINETSU = "shinetsu"
    HOKURIKU = "hokuriku"
    CHUBU = "chubu"
    KANSAI = "kansai"
    CHUGOKU = "chugoku"
    SHIKOKU = "shikoku"
    KITA_KYUSHU = "kitaKyushu"
    MINAMI_KYUSHU = "minamiKyushu"
    OKINAWA = "okinawa"

    @classmethod
    def parse(cls, value) -> Optional["AreaCode"]:
        try:
            return cls(to_str(value))
        except ValueError:
            return None


AREA_LABEL = {
    AreaCode.HOKKAIDO: "北海道",
    AreaCode.KITA_TOHOKU: "北東北",
    AreaCode.MINAMI_TOHOKU: "南東北",
    AreaCode.KANTO: "関東",
    AreaCode.SHINETSU: "信越",
    AreaCode.HOKURIKU: "北陸",
    AreaCode.CHUBU: "中部",
    AreaCode.KANSAI: "関西",
    AreaCode.CHUGOKU: "中国",
    AreaCode.SHIKOKU: "四国",
    AreaCode.KITA_KYUSHU: "北九州",
    AreaCode.MINAMI_KYUSHU: "南九州",
    AreaCode.OKINAWA: "沖縄",
}


# ============================================
# マスタ・実績レコード
# ============================================

@dataclass(frozen=True)
class ShippingRecord:
    jan: str
    name: str = ""
    size_band: float = 0.0
    area_costs: dict = field(default_factory=dict)  # AreaCode -> 送料（>0のみ）

    def cost_for(self, area: Optional[AreaCode]) -> float:
        if area is None:
            return 0.0
        return self.area_costs.get(area, 0.0)

    def to_dict(self) -> dict:
        return {
            "jan": self.jan,
            "name": self.name,
            "sizeBand": self.size_band,
            "areaCosts": {a.value: cost for a, cost in self.area_costs.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShippingRecord":
        area_costs = {}
        for key, cost in (data.get("areaCosts") or {}).items():
            area = AreaCode.parse(key)
            amount = to_number(cost)
            if area is not None and amount > 0:
                area_costs[area] = amount
        return cls(
            jan=to_str(data.get("jan")),
            name=to_str(data.get("name")),
            size_band=to_number(data.get("sizeBand")),
            area_costs=area_costs,
        )


@dataclass(frozen=True)
class SalesRecord:
    order_no: str = ""
    month: str = UNKNOWN_MONTH
    maker: Maker = Maker.OTHER
    maker_raw: str = ""
    sales_rep: str = ""
    store: str = ""
    store_code: str = ""
    prefecture: str = ""
    jan: str = ""
    name: str = ""
    qty: float = 0.0
    unit_price: float = 0.0
    total_price: float = 0.0

    def to_dict(self) -> dict:
        return {
            "orderNo": self.order_no,
            "month": self.month,
            "maker": self.maker.value,
            "makerRaw": self.maker_raw,
            "salesRep": self.sales_rep,
            "store": self.store,
            "storeCode": self.store_code,
            "prefecture": self.prefecture,
            "jan": self.jan,
            "name": self.name,
            "qty": self.qty,
            "unitPrice": self.unit_price,
            "totalPrice": self.total_price,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SalesRecord":
        return cls(
            order_no=to_str(data.get("orderNo")),
            month=to_str(data.get("month")) or UNKNOWN_MONTH,
            maker=Maker.parse(data.get("maker")),
            maker_raw=to_str(data.get("makerRaw")),
            sales_rep=to_str(data.get("salesRep")),
            store=to_str(data.get("store")),
            store_code=to_str(data.get("storeCode")),
            prefecture=to_str(data.get("prefecture")),
            jan=to_str(data.get("jan")),
            name=to_str(data.get("name")),
            qty=to_number(data.get("qty")),
            unit_price=to_number(data.get("unitPrice")),
            total_price=to_number(data.get("totalPrice")),
        )


@dataclass(frozen=True)
class ProductRecord:
    jan: str
    name: str = ""
    list_price: float = 0.0
    cost: float = 0.0
    warehouse_cost: float = 0.0

    @property
    def effective_cost(self) -> float:
        """倉庫原価があればそちらを優先"""
        return self.warehouse_cost if self.warehouse_cost > 0 else self.cost

    def to_dict(self) -> dict:
        return {
            "jan": self.jan,
            "name": self.name,
            "listPrice": self.list_price,
            "cost": self.cost,
            "warehouseCost": self.warehouse_cost,
            "effectiveCost": self.effective_cost,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProductRecord":
        return cls(
            jan=to_str(data.get("jan")),
            name=to_str(data.get("name")),
            list_price=to_number(data.get("listPrice")),
            cost=to_number(data.get("cost")),
            warehouse_cost=to_number(data.get("warehouseCost")),
        )


# ============================================
# 設定
# ============================================

@dataclass(frozen=True)
class MakerRebate:
    """月次の固定リベート（達成リベート・車扱い還元金）"""
    achieve: float = 0.0
    car: float = 0.0

    @property
    def fixed(self) -> float:
        return self.achieve + self.car


def _parse_keywords(value, default: list) -> tuple:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        items = []
    keywords = tuple(k for k in (to_str(i).lower() for i in items) if k)
    return keywords or tuple(default)


@dataclass(frozen=True)
class Settings:
    rebate_aron: float = 0.0            # 率（0.05 = 5%）
    rebate_pana: float = 0.0
    warehouse_fee: float = 0.0          # 円/月
    warehouse_out_fee: float = DEFAULT_WAREHOUSE_OUT_FEE  # 円/個
    monthly_rebates: dict = field(default_factory=dict)   # month -> {Maker: MakerRebate}
    default_shipping_small: float = 0.0
    keyword_aron: tuple = tuple(DEFAULT_KEYWORD_ARON)
    keyword_pana: tuple = tuple(DEFAULT_KEYWORD_PANA)

    def __post_init__(self):
        # 合計0の月は持たない
        pruned = {
            month: {maker: rb for maker, rb in makers.items() if rb.fixed != 0}
            for month, makers in self.monthly_rebates.items()
        }
        pruned = {month: makers for month, makers in pruned.items() if makers}
        object.__setattr__(self, "monthly_rebates", pruned)
        object.__setattr__(self, "rebate_aron", max(0.0, self.rebate_aron))
        object.__setattr__(self, "rebate_pana", max(0.0, self.rebate_pana))
        object.__setattr__(self, "warehouse_fee", max(0.0, self.warehouse_fee))
        object.__setattr__(self, "warehouse_out_fee", max(0.0, self.warehouse_out_fee))
        object.__setattr__(self, "default_shipping_small", max(0.0, self.default_shipping_small))
        object.__setattr__(self, "keyword_aron", _parse_keywords(self.keyword_aron, DEFAULT_KEYWORD_ARON))
        object.__setattr__(self, "keyword_pana", _parse_keywords(self.keyword_pana, DEFAULT_KEYWORD_PANA))

    def rebate_rate(self, maker: Maker) -> float:
        if maker is Maker.ARON:
            return self.rebate_aron
        if maker is Maker.PANA:
            return self.rebate_pana
        return 0.0

    def monthly_rebate(self, month: str, maker: Maker) -> MakerRebate:
        if maker not in REBATE_MAKERS:
            return MakerRebate()
        return self.monthly_rebates.get(month, {}).get(maker, MakerRebate())

    def to_dict(self) -> dict:
        monthly = {}
        for month, makers in self.monthly_rebates.items():
            monthly[month] = {
                m.value: {"achieve": 0.0, "car": 0.0} for m in REBATE_MAKERS
            }
            for maker, rb in makers.items():
                monthly[month][maker.value] = {"achieve": rb.achieve, "car": rb.car}
        return {
            "rebateAron": self.rebate_aron,
            "rebatePana": self.rebate_pana,
            "warehouseFee": self.warehouse_fee,
            "warehouseOutFee": self.warehouse_out_fee,
            "monthlyRebates": monthly,
            "defaultShippingSmall": self.default_shipping_small,
            "keywordAron": list(self.keyword_aron),
            "keywordPana": list(self.keyword_pana),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Settings":
        data = data if isinstance(data, dict) else {}
        monthly = {}
        raw_monthly = data.get("monthlyRebates")
        if isinstance(raw_monthly, dict):
            for month, makers in raw_monthly.items():
                if not isinstance(makers, dict):
                    continue
                entry = {}
                for maker in REBATE_MAKERS:
                    m = makers.get(maker.value) or {}
                    if isinstance(m, dict):
                        entry[maker] = MakerRebate(
                            achieve=to_number(m.get("achieve")),
                            car=to_number(m.get("car")),
                        )
                monthly[to_str(month)] = entry
        out_fee = data.get("warehouseOutFee")
        return cls(
            rebate_aron=to_number(data.get("rebateAron")),
            rebate_pana=to_number(data.get("rebatePana")),
            warehouse_fee=to_number(data.get("warehouseFee")),
            warehouse_out_fee=to_number(out_fee) if out_fee not in (None, "") else DEFAULT_WAREHOUSE_OUT_FEE,
            monthly_rebates=monthly,
            default_shipping_small=to_number(data.get("defaultShippingSmall")),
            keyword_aron=data.get("keywordAron") or DEFAULT_KEYWORD_ARON,
            keyword_pana=data.get("keywordPana") or DEFAULT_KEYWORD_PANA,
        )


# ============================================
# 突合済みレコード
# ============================================

@dataclass(frozen=True)
class ReconciledRecord(SalesRecord):
    shipping_cost: float = 0.0
    shipping_area: Optional[AreaCode] = None
    effective_cost: float = 0.0
    list_price: float = 0.0

    @property
    def sales_amount(self) -> float:
        return self.unit_price * self.qty

    @property
    def total_shipping(self) -> float:
        return self.qty * self.shipping_cost

    @property
    def total_cost(self) -> float:
        return self.qty * self.effective_cost

    @property
    def gross_profit(self) -> float:
        return self.sales_amount - self.total_cost - self.total_shipping

    @property
    def rate_vs_list(self) -> float:
        return self.unit_price / self.list_price if self.list_price > 0 else 0.0

    @classmethod
    def from_sale(cls, sale: SalesRecord, **computed) -> "ReconciledRecord":
        base = {f.name: getattr(sale, f.name) for f in fields(SalesRecord)}
        return cls(**base, **computed)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "shippingCost": self.shipping_cost,
            "shippingArea": self.shipping_area.value if self.shipping_area else "",
            "effectiveCost": self.effective_cost,
            "listPrice": self.list_price,
            "salesAmount": self.sales_amount,
            "totalShipping": self.total_shipping,
            "totalCost": self.total_cost,
            "grossProfit": self.gross_profit,
            "rateVsList": self.rate_vs_list,
        })
        return data
