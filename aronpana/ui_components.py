"""
共通UIコンポーネント — 各タブで使い回すUI部品と表示用フォーマッタ
"""

import html
import math

import streamlit as st


def fmt(n) -> str:
    """整数に丸めて3桁区切り（不正値は "-"）"""
    if n is None or (isinstance(n, float) and math.isnan(n)):
        return "-"
    return f"{round(n):,}"


def fmt_yen(n) -> str:
    text = fmt(n)
    return text if text == "-" else f"¥{text}"


def fmt_pct(n) -> str:
    if n is None or (isinstance(n, float) and math.isnan(n)):
        return "-"
    return f"{n * 100:.1f}%"


def apply_custom_css():
    """分析画面向けのカスタムCSSを適用"""
    st.markdown("""
    <style>
        /* 横長の表が多いので左右の余白を詰める */
        .main .block-container {
            padding: 0.8rem 1.5rem 2rem;
        }

        div[data-testid="stTabs"] button p {
            font-size: 0.95rem;
            font-weight: 600;
        }

        /* ===== 統計カード ===== */
        .stat-card {
            background: #fcfcfd;
            border-left: 4px solid #2f6fb0;
            border-radius: 6px;
            padding: 0.7rem 0.9rem;
            box-shadow: 0 1px 3px rgba(20,40,80,0.08);
        }
        .stat-card .stat-value {
            font-size: 1.35rem;
            font-weight: 700;
            color: #1d3f66;
            font-variant-numeric: tabular-nums;
        }
        .stat-card .stat-value.negative { color: #c0392b; }
        .stat-card .stat-label {
            font-size: 0.78rem;
            color: #6b7785;
        }

        /* ===== 読込ログ ===== */
        .load-log {
            font-family: "SFMono-Regular", Consolas, monospace;
            font-size: 0.78rem;
            line-height: 1.45;
            white-space: pre-wrap;
            background: #f4f6f8;
            border: 1px solid #dde3ea;
            padding: 0.5rem 0.7rem;
            max-height: 360px;
            overflow-y: auto;
        }

        section[data-testid="stSidebar"] .stNumberInput input {
            text-align: right;
        }
    </style>
    """, unsafe_allow_html=True)


def show_stat_cards(stats: dict):
    """統計カードを横並びで表示（値は表示用文字列か数値）"""
    cols = st.columns(len(stats))
    for col, (label, value) in zip(cols, stats.items()):
        negative = isinstance(value, str) and value.startswith(("-", "¥-"))
        with col:
            st.markdown(f"""
            <div class="stat-card">
                <div class="stat-value{' negative' if negative else ''}">{value}</div>
                <div class="stat-label">{label}</div>
            </div>
            """, unsafe_allow_html=True)


def show_load_log(lines: list, limit: int = 200):
    """読込ログを末尾から表示"""
    text = html.escape("\n".join(lines[-limit:])) or "（ログなし）"
    st.markdown(f'<div class="load-log">{text}</div>', unsafe_allow_html=True)
