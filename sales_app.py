"""
📊 アロン・パナ 実利益分析 — メインアプリケーション

販売実績を送料マスタ・商品マスタと突合し、リベート・倉庫料を加味した
実利益を月次・販売店・商品別に集計する。シミュレーションと需要予測つき。
Streamlit + Supabase で構築。

起動コマンド:
    streamlit run sales_app.py
"""

import logging

import streamlit as st
import pandas as pd

# --- ページ設定（必ず最初に呼ぶ） ---
st.set_page_config(
    page_title="📊 アロン・パナ分析",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

from aronpana.config import (
    APP_TITLE, LOCAL_STATE_FILE, MODULE_ID, PAGES,
    PAGE_UPLOAD, PAGE_OVERVIEW, PAGE_MONTHLY, PAGE_STORE,
    PAGE_SIMULATION, PAGE_FORECAST, PAGE_DETAILS,
)
from aronpana.export import PRODUCT_EXPORT_FILE, PRODUCT_EXPORT_HEADER, export_csv, product_export_rows
from aronpana.forecast import (
    ForecastParams, WhatIfParams, current_markup_rates, forecast_slice,
    scan_price_response, simulate_store, simulate_what_if,
)
from aronpana.aggregate import filter_products
from aronpana.models import MAKER_LABEL, Maker, MakerRebate, REBATE_MAKERS, Settings
from aronpana.session import AnalysisSession
from aronpana.storage import LocalStateCache, PersistenceError, RemoteStateStore, SaveCoalescer
from aronpana.ui_components import apply_custom_css, fmt, fmt_pct, fmt_yen, show_load_log, show_stat_cards
from aronpana.workbook import read_workbook

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ============================================
# カスタムCSS適用
# ============================================
apply_custom_css()

MAKER_OPTIONS = {"全メーカー": None, "アロン化成": Maker.ARON, "パナソニック": Maker.PANA, "その他": Maker.OTHER}


# ============================================
# 保存先
# ============================================
@st.cache_resource
def get_remote_store():
    """Supabase の設定がなければ None（クラウド保存は無効）"""
    if "supabase" not in st.secrets:
        return None
    return RemoteStateStore(st.secrets["supabase"]["url"], st.secrets["supabase"]["key"])


local_cache = LocalStateCache(LOCAL_STATE_FILE)


def make_cloud_save(remote):
    """保存キュー用の保存関数（ペイロードはスクリプト側で作って渡す）"""
    def save(payload):
        if remote is None or payload is None:
            return None
        return remote.save(MODULE_ID, payload)
    return save


# ============================================
# セッション状態の初期化
# ============================================
def init_session_state():
    """セッション状態を初期化（ローカル → クラウドの順に復元）"""
    if "session" in st.session_state:
        return

    session = AnalysisSession()
    restored = session.apply_payload(local_cache.get())
    if not restored and get_remote_store() is not None:
        try:
            restored = session.apply_payload(get_remote_store().load(MODULE_ID))
        except PersistenceError as e:
            logger.warning("クラウドからの復元に失敗: %s", e)
            st.session_state.startup_error = str(e)
    if restored and session.has_all_data:
        session.analyze()

    # タイマースレッドから呼ばれるので保存先はここで確定させておく
    st.session_state.session = session
    st.session_state.saver = SaveCoalescer(make_cloud_save(get_remote_store()))


init_session_state()
session: AnalysisSession = st.session_state.session
saver: SaveCoalescer = st.session_state.saver

if st.session_state.get("startup_error"):
    st.error(f"クラウドからの復元に失敗しました: {st.session_state.pop('startup_error')}")


def persist():
    """変更のたびにローカルへ即時保存し、クラウド保存を予約"""
    payload = session.to_payload()
    if not local_cache.set(payload):
        st.warning("ローカル保存に失敗しました")
    if get_remote_store() is not None:
        saver.schedule(payload)


def select_maker(label: str, key: str):
    return MAKER_OPTIONS[st.selectbox(label, list(MAKER_OPTIONS), key=key)]


# ============================================
# サイドバー（設定）
# ============================================
with st.sidebar:
    st.markdown(f"## {APP_TITLE}")
    st.caption(session.data_status())
    st.divider()

    s = session.settings
    with st.form("settings_form"):
        st.markdown("### ⚙️ 設定")
        rebate_aron = st.number_input("アロン リベート率(%)", min_value=0.0, value=s.rebate_aron * 100, step=0.1)
        rebate_pana = st.number_input("パナ リベート率(%)", min_value=0.0, value=s.rebate_pana * 100, step=0.1)
        warehouse_fee = st.number_input("倉庫料（円/月）", min_value=0.0, value=s.warehouse_fee, step=1000.0)
        warehouse_out_fee = st.number_input("出庫料（円/個）", min_value=0.0, value=s.warehouse_out_fee, step=10.0)
        default_small = st.number_input("小型送料（100サイズ以下, 円）", min_value=0.0,
                                        value=s.default_shipping_small, step=10.0)
        keyword_aron = st.text_input("アロン判定キーワード（カンマ区切り）", value=",".join(s.keyword_aron))
        keyword_pana = st.text_input("パナ判定キーワード（カンマ区切り）", value=",".join(s.keyword_pana))

        st.markdown("#### 月次固定リベート")
        monthly = {}
        for month in session.months_for_rebate_inputs():
            with st.expander(month):
                entry = {}
                for maker in REBATE_MAKERS:
                    cur = s.monthly_rebate(month, maker)
                    c1, c2 = st.columns(2)
                    with c1:
                        achieve = st.number_input(f"{MAKER_LABEL[maker]} 達成", value=cur.achieve,
                                                  step=1000.0, key=f"rb_{month}_{maker.value}_achieve")
                    with c2:
                        car = st.number_input(f"{MAKER_LABEL[maker]} 車扱い", value=cur.car,
                                              step=1000.0, key=f"rb_{month}_{maker.value}_car")
                    entry[maker] = MakerRebate(achieve=achieve, car=car)
                monthly[month] = entry

        if st.form_submit_button("💾 設定を反映", use_container_width=True, type="primary"):
            # 入力欄に出ていない月の設定は残す
            merged = {m: dict(v) for m, v in s.monthly_rebates.items()}
            merged.update(monthly)
            session.update_settings(Settings(
                rebate_aron=rebate_aron / 100,
                rebate_pana=rebate_pana / 100,
                warehouse_fee=warehouse_fee,
                warehouse_out_fee=warehouse_out_fee,
                monthly_rebates=merged,
                default_shipping_small=default_small,
                keyword_aron=keyword_aron,
                keyword_pana=keyword_pana,
            ))
            persist()
            st.rerun()

    st.divider()

    # --- クラウド保存 ---
    st.markdown("### ☁️ クラウド保存")
    if get_remote_store() is None:
        st.info("Supabase が未設定のため、ローカル保存のみ有効です")
    else:
        c1, c2 = st.columns(2)
        with c1:
            if st.button("保存", use_container_width=True, key="cloud_save_btn"):
                try:
                    with st.spinner("保存中..."):
                        meta = saver.request_now(session.to_payload(), timeout=120)
                    st.success(f"保存しました（{meta.byte_length:,} bytes / {meta.chunk_count}分割）")
                except PersistenceError as e:
                    logger.warning("クラウド保存に失敗: %s", e)
                    st.error(f"クラウド保存に失敗しました: {e}")
        with c2:
            if st.button("読込", use_container_width=True, key="cloud_load_btn"):
                try:
                    with st.spinner("読込中..."):
                        payload = get_remote_store().load(MODULE_ID)
                except PersistenceError as e:
                    logger.warning("クラウド読込に失敗: %s", e)
                    st.error(f"クラウド読込に失敗しました: {e}")
                else:
                    if payload is None:
                        st.warning("クラウドに保存データがありません")
                    elif session.apply_payload(payload):
                        local_cache.set(payload)
                        if session.has_all_data:
                            session.analyze()
                        st.rerun()
                    else:
                        st.error("保存データの形式が不正なため読み込めませんでした")
        if saver.last_error is not None:
            st.warning(f"自動保存に失敗しています: {saver.last_error}")

    st.divider()
    if session.ready:
        st.success(session.status or "準備完了")
    elif session.status:
        st.info(session.status)


result = session.result
tabs = dict(zip(PAGES, st.tabs(PAGES)))


# ============================================
# データ読込
# ============================================
with tabs[PAGE_UPLOAD]:
    st.markdown("## 📤 データ読込")
    c1, c2, c3 = st.columns(3)

    with c1:
        st.markdown("### 🚚 送料マスタ")
        st.caption(f"{len(session.shipping):,}件（読込で全置換）")
        ship_file = st.file_uploader("送料マスタ", type=["xlsx", "xls", "csv"], key="ship_upload",
                                     label_visibility="collapsed")
        if ship_file and st.button("読み込む", key="ship_load_btn", use_container_width=True):
            try:
                session.load_shipping(read_workbook(ship_file.getvalue(), ship_file.name))
                persist()
                st.rerun()
            except Exception as e:
                st.error(f"送料マスタの読み込みに失敗しました: {e}")
        if st.button("クリア", key="ship_clear_btn", use_container_width=True):
            session.clear_shipping()
            persist()
            st.rerun()

    with c2:
        st.markdown("### 🧾 販売実績")
        st.caption(f"{len(session.sales):,}件（受注番号で重複除外して累積）")
        sales_files = st.file_uploader("販売実績", type=["xlsx", "xls", "csv"], key="sales_upload",
                                       accept_multiple_files=True, label_visibility="collapsed")
        if sales_files and st.button("追加する", key="sales_load_btn", use_container_width=True):
            try:
                session.load_sales([read_workbook(f.getvalue(), f.name) for f in sales_files])
                persist()
                st.rerun()
            except Exception as e:
                st.error(f"販売実績の読み込みに失敗しました: {e}")
        if st.button("クリア", key="sales_clear_btn", use_container_width=True):
            session.clear_sales()
            persist()
            st.rerun()

    with c3:
        st.markdown("### 📦 商品マスタ")
        st.caption(f"{len(session.products):,}件（読込で全置換）")
        product_files = st.file_uploader("商品マスタ", type=["xlsx", "xls", "csv"], key="product_upload",
                                         accept_multiple_files=True, label_visibility="collapsed")
        if product_files and st.button("読み込む", key="product_load_btn", use_container_width=True):
            try:
                session.load_product([read_workbook(f.getvalue(), f.name) for f in product_files])
                persist()
                st.rerun()
            except Exception as e:
                st.error(f"商品マスタの読み込みに失敗しました: {e}")
        if st.button("クリア", key="product_clear_btn", use_container_width=True):
            session.clear_product()
            persist()
            st.rerun()

    st.divider()
    if st.button("🔍 分析する", type="primary", use_container_width=True,
                 disabled=not session.has_all_data, key="analyze_btn"):
        if session.analyze() is None:
            st.warning(session.status)
        st.rerun()
    if not session.has_all_data:
        st.info("3つのデータすべてを読み込んでください。")

    with st.expander("📝 読込ログ", expanded=False):
        show_load_log(session.log_lines)
        if st.button("ログを消去", key="clear_log_btn"):
            session.clear_log()
            st.rerun()

    with st.expander("📝 メモ（保存されます）"):
        memo = st.text_area("メモ", value=session.progress_draft.get("memo", ""),
                            key="memo_input", label_visibility="collapsed")
        if memo != session.progress_draft.get("memo", ""):
            session.set_draft("memo", memo)
            persist()


def need_result() -> bool:
    if result is None:
        st.info("データを読み込んで「分析する」を押してください")
        return False
    return True


# ============================================
# 概要
# ============================================
with tabs[PAGE_OVERVIEW]:
    st.markdown("## 📈 概要")
    if need_result():
        show_stat_cards({
            "売上": fmt_yen(result.total_sales),
            "商品粗利": fmt_yen(result.total_gross),
            "リベート": fmt_yen(result.total_rebate),
            "マイナス要件": fmt_yen(-result.total_minus),
            "実利益": fmt_yen(result.real_profit),
        })
        st.markdown("")
        show_stat_cards({
            "数量": f"{fmt(result.total_qty)}個",
            "対象月数": f"{result.month_count}か月",
            "アロン売上": fmt_yen(result.aron_sales),
            "パナ売上": fmt_yen(result.pana_sales),
        })
        st.caption(result.stats.summary())

        rows = []
        for maker in Maker:
            buckets = result.monthly_entries(maker)
            sales = sum(b.sales for b in buckets)
            gross = sum(b.gross for b in buckets)
            rows.append({
                "メーカー": MAKER_LABEL[maker],
                "売上": sales,
                "粗利": gross,
                "粗利率": fmt_pct(gross / sales if sales > 0 else 0),
                "リベート": result.rebate_by_maker[maker],
                "マイナス要件": result.minus_by_maker[maker],
                "実利益": gross + result.rebate_by_maker[maker] - result.minus_by_maker[maker],
            })
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


# ============================================
# 月次
# ============================================
with tabs[PAGE_MONTHLY]:
    st.markdown("## 📅 月次推移")
    if need_result():
        maker = select_maker("メーカー", "monthly_maker")
        rows = [{
            "月": b.month,
            "メーカー": MAKER_LABEL[b.maker],
            "売上": b.sales,
            "原価": b.cost,
            "送料": b.shipping,
            "粗利": b.gross,
            "数量": b.qty,
            "変動リベート": b.rebate.variable,
            "達成リベート": b.rebate.achieve,
            "車扱い": b.rebate.car,
            "倉庫料": b.warehouse.base,
            "出庫料": b.warehouse.out,
            "実利益": b.real_profit,
        } for b in result.monthly_entries(maker)]
        if rows:
            df = pd.DataFrame(rows)
            st.bar_chart(df.groupby("月")[["粗利", "実利益"]].sum())
            st.dataframe(df, use_container_width=True, hide_index=True)
        else:
            st.info("該当データがありません")


# ============================================
# 販売店
# ============================================
with tabs[PAGE_STORE]:
    st.markdown("## 🏪 販売店別")
    if need_result():
        c1, c2, c3, c4 = st.columns(4)
        with c1:
            maker = select_maker("メーカー", "store_maker")
        with c2:
            month_opt = st.selectbox("月", ["全期間"] + list(result.months), key="store_month")
        with c3:
            rep_opt = st.selectbox("担当者", ["全担当"] + session.sales_reps(), key="store_rep")
        with c4:
            sort_labels = {
                "粗利（多い順）": "gross-desc", "粗利（少ない順）": "gross-asc",
                "売上（多い順）": "sales-desc", "数量（多い順）": "qty-desc",
                "粗利率（高い順）": "rate-desc", "粗利率（低い順）": "rate-asc",
                "アロン掛け率（高い順）": "aron-rate-desc", "パナ掛け率（高い順）": "pana-rate-desc",
                "担当者": "rep-asc", "販売店名": "store-asc",
            }
            sort_key = sort_labels[st.selectbox("並び順", list(sort_labels), key="store_sort")]

        entries = session.store_view(
            maker=maker,
            month=None if month_opt == "全期間" else month_opt,
            rep=None if rep_opt == "全担当" else rep_opt,
            sort_key=sort_key,
        )
        st.dataframe(pd.DataFrame([{
            "販売店": e.store, "得意先コード": e.store_code, "担当者": e.sales_rep,
            "売上": e.sales, "原価": e.cost, "送料": e.shipping, "粗利": e.gross, "数量": e.qty,
            "粗利率": fmt_pct(e.rate), "アロン掛け率": fmt_pct(e.aron_rate), "パナ掛け率": fmt_pct(e.pana_rate),
        } for e in entries]), use_container_width=True, hide_index=True)

        st.divider()
        st.markdown("### 🧮 販売店シミュレーション")
        rates = current_markup_rates(result.records)
        st.caption(f"現在の平均掛け率: アロン {fmt_pct(rates.aron)} / パナ {fmt_pct(rates.pana)} / "
                   f"全体 {fmt_pct(rates.all)}")
        store_names = [e.store for e in entries]
        if store_names:
            c1, c2, c3, c4 = st.columns(4)
            with c1:
                sim_store = st.selectbox("販売店", store_names, key="store_sim_store")
            with c2:
                sim_maker = select_maker("対象", "store_sim_maker")
            with c3:
                sim_rate = st.number_input("単価変更(%)", value=0.0, step=1.0, key="store_sim_rate")
            with c4:
                sim_qty = st.number_input("数量上乗せ", min_value=0.0, value=0.0, step=1.0, key="store_sim_qty")

            sim = simulate_store(result.records, sim_store, sim_maker, sim_rate / 100, sim_qty)
            diff = sim.diff()
            st.dataframe(pd.DataFrame([
                {"項目": "売上", "現状": fmt_yen(sim.before.sales), "変更後": fmt_yen(sim.after.sales),
                 "差分": fmt_yen(diff["sales"])},
                {"項目": "粗利", "現状": fmt_yen(sim.before.gross), "変更後": fmt_yen(sim.after.gross),
                 "差分": fmt_yen(diff["gross"])},
                {"項目": "数量", "現状": fmt(sim.before.qty), "変更後": fmt(sim.after.qty),
                 "差分": fmt(diff["qty"])},
                {"項目": "粗利率", "現状": fmt_pct(sim.before.profit_rate),
                 "変更後": fmt_pct(sim.after.profit_rate), "差分": fmt_pct(diff["profit_rate"])},
                {"項目": "アロン掛け率", "現状": fmt_pct(sim.before.aron_rate),
                 "変更後": fmt_pct(sim.after.aron_rate), "差分": fmt_pct(diff["aron_rate"])},
                {"項目": "パナ掛け率", "現状": fmt_pct(sim.before.pana_rate),
                 "変更後": fmt_pct(sim.after.pana_rate), "差分": fmt_pct(diff["pana_rate"])},
            ]), use_container_width=True, hide_index=True)


# ============================================
# シミュレーション（全体）
# ============================================
with tabs[PAGE_SIMULATION]:
    st.markdown("## 🧪 価格・リベート シミュレーション")
    if need_result():
        c1, c2 = st.columns(2)
        with c1:
            target = select_maker("単価変更の対象", "sim_target")
            price_pct = st.slider("単価変更(%)", min_value=-30, max_value=30, value=0, step=1, key="sim_rate")
        with c2:
            aron_rate_delta = st.number_input("アロン リベート率 増減(%)", value=0.0, step=0.1, key="sim_aron_rate")
            pana_rate_delta = st.number_input("パナ リベート率 増減(%)", value=0.0, step=0.1, key="sim_pana_rate")
            aron_fixed_delta = st.number_input("アロン 固定リベート 増減(円/月)", value=0.0, step=1000.0,
                                               key="sim_aron_fixed")
            pana_fixed_delta = st.number_input("パナ 固定リベート 増減(円/月)", value=0.0, step=1000.0,
                                               key="sim_pana_fixed")

        params = WhatIfParams(
            maker=target,
            price_change=price_pct / 100,
            rebate_rate_delta={Maker.ARON: aron_rate_delta / 100, Maker.PANA: pana_rate_delta / 100},
            fixed_rebate_delta={Maker.ARON: aron_fixed_delta, Maker.PANA: pana_fixed_delta},
        )
        what_if = simulate_what_if(result, params)
        show_stat_cards({
            "粗利（現状）": fmt_yen(what_if.gross_before),
            "粗利（変更後）": fmt_yen(what_if.gross_after),
            "実利益（現状）": fmt_yen(what_if.real_profit_before),
            "実利益（変更後）": fmt_yen(what_if.real_profit_after),
            "実利益 差分": fmt_yen(what_if.real_profit_diff),
        })

        st.markdown("### 単価変動に対する応答")
        curve = scan_price_response(result, target, base=params)
        df = pd.DataFrame([{"単価変更(%)": p.pct, "粗利": p.gross, "実利益": p.real_profit} for p in curve])
        st.line_chart(df.set_index("単価変更(%)"))


# ============================================
# 需要予測
# ============================================
with tabs[PAGE_FORECAST]:
    st.markdown("## 🔮 需要予測")
    if need_result():
        c1, c2, c3 = st.columns(3)
        with c1:
            stores = sorted({e.store for e in session.store_view()})
            store_opt = st.selectbox("販売店", ["全販売店"] + stores, key="fc_store")
            fc_maker = select_maker("メーカー", "fc_maker")
            horizon = st.number_input("予測月数", min_value=1, max_value=24, value=3, step=1, key="fc_horizon")
        with c2:
            price_change = st.number_input("単価変更(%)", value=0.0, step=1.0, key="fc_price")
            manual_elasticity = st.number_input("弾力性（手入力）", value=-1.0, step=0.1, key="fc_elasticity")
            lookback = st.number_input("基準期間（月）", min_value=1, max_value=24, value=3, step=1, key="fc_lookback")
        with c3:
            manual_qty_change = st.number_input("数量補正(%)", value=0.0, step=1.0, key="fc_qty_change")
            manual_qty_increase = st.number_input("数量上乗せ（個/月）", value=0.0, step=1.0, key="fc_qty_inc")
            use_trend = st.checkbox("トレンドを使う", value=True, key="fc_trend")
            use_season = st.checkbox("季節性を使う", value=True, key="fc_season")

        fc = forecast_slice(
            result.records,
            ForecastParams(
                horizon=int(horizon), price_change=price_change / 100,
                manual_elasticity=manual_elasticity, manual_qty_change=manual_qty_change / 100,
                manual_qty_increase=manual_qty_increase, lookback_months=int(lookback),
                use_trend=use_trend, use_seasonality=use_season,
            ),
            store=None if store_opt == "全販売店" else store_opt,
            maker=fc_maker,
        )
        if not fc.months_used:
            st.info("対象期間の実績がありません")
        else:
            show_stat_cards({
                "予測数量": f"{fmt(fc.forecast_qty)}個",
                "予測売上": fmt_yen(fc.after_sales),
                "予測粗利": fmt_yen(fc.after_gross),
                "現状ペース粗利": fmt_yen(fc.before_gross),
            })
            source = "回帰" if fc.elasticity.source == "regression" else "手入力"
            st.caption(
                f"基準月: {', '.join(fc.months_used)} / 月平均数量 {fc.base_monthly_qty:,.1f} / "
                f"トレンド {fc.trend.rate * 100:+.1f}%/月（R² {fc.trend.r2:.2f}, 信頼度 {fc.trend.confidence:.2f}） / "
                f"弾力性 {fc.elasticity.value:.2f}（{source}） / 季節係数 {fc.seasonal_factor:.2f}"
            )


# ============================================
# 商品明細
# ============================================
with tabs[PAGE_DETAILS]:
    st.markdown("## 📋 商品明細")
    if need_result():
        c1, c2, c3 = st.columns(3)
        with c1:
            d_maker = select_maker("メーカー", "details_maker")
        with c2:
            product_sorts = {"粗利（多い順）": "profit-desc", "粗利（少ない順）": "profit-asc",
                             "売上（多い順）": "sales-desc", "数量（多い順）": "qty-desc"}
            d_sort = product_sorts[st.selectbox("並び順", list(product_sorts), key="details_sort")]
        with c3:
            d_search = st.text_input("検索", placeholder="JANコードまたは商品名", key="details_search")

        buckets = filter_products(result.products.values(), d_maker, d_search, d_sort)
        st.dataframe(pd.DataFrame([{
            "JANコード": b.jan, "商品名": b.name, "メーカー": MAKER_LABEL[b.maker],
            "定価": b.list_price, "原価": b.effective_cost, "販売単価(平均)": round(b.avg_price),
            "掛け率": fmt_pct(b.rate_vs_list), "送料": b.shipping_cost, "数量合計": b.qty,
            "売上合計": b.sales, "粗利合計": b.gross, "粗利率": fmt_pct(b.profit_rate),
        } for b in buckets]), use_container_width=True, hide_index=True)

        st.download_button(
            label="📥 CSVダウンロード",
            data=export_csv(PRODUCT_EXPORT_HEADER, product_export_rows(result.products.values())),
            file_name=PRODUCT_EXPORT_FILE,
            mime="text/csv",
            use_container_width=True,
        )
