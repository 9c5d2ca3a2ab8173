import os
import sys
import asyncio
import threading
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st
import plotly.graph_objs as go

# Ensure local src/ is on PYTHONPATH for `dexinfo` imports
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(BASE_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dexinfo.config import load_config
from dexinfo.logger import configure_logging
from dexinfo.series import candle_frame, daily_frame
from dexinfo.service import ALL_TIME, MONTH, WEEK, AnalyticsService

st.set_page_config(page_title="DEX Analytics", layout="wide")
st.title("DEX Analytics")


class _Backend:
    """Service plus the event loop it lives on, shared across Streamlit reruns."""

    def __init__(self):
        cfg = load_config()
        configure_logging(cfg.log_level, cfg.write_logs_to_files)
        self.cfg = cfg
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self.thread.start()
        self.service: AnalyticsService = self.run(self._build())

    async def _build(self) -> AnalyticsService:
        return AnalyticsService(self.cfg)

    def run(self, coro, timeout: float = 120.0):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout=timeout)


@st.cache_resource
def get_backend() -> _Backend:
    return _Backend()


def _fmt_usd(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"${val:,.0f}" if abs(val) >= 1 else f"${val:,.4f}"


def _fmt_pct(val: Optional[float]) -> str:
    return "-" if val is None else f"{val:+.2f}%"


def _pairs_frame(records) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for r in records:
        rows.append({
            "pair": r.label,
            "id": r.id,
            "liquidity_usd": r.reserve_usd,
            "tracked_liquidity_usd": r.tracked_reserve_usd,
            "volume_24h_usd": r.one_day_volume_usd,
            "volume_7d_usd": r.one_week_volume_usd,
            "volume_change_pct": r.volume_change_usd,
            "liquidity_change_pct": r.liquidity_change_usd,
            "fee_bps": r.swap_fee,
        })
    if not rows:
        return pd.DataFrame(columns=["pair", "id", "liquidity_usd", "volume_24h_usd"])
    return pd.DataFrame(rows).sort_values("liquidity_usd", ascending=False).reset_index(drop=True)


def render_daily_chart(points) -> None:
    df = daily_frame(points or [])
    if df.empty:
        st.info("No daily data for this pair.")
        return
    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=df["date"],
            y=df["daily_volume_usd"],
            name="Volume",
            marker_color="#4c78a8",
            hovertemplate="%{x|%b %d, %Y}<br>Volume=$%{y:,.0f}<extra></extra>",
        )
    )
    fig.add_trace(
        go.Scatter(
            x=df["date"],
            y=df["reserve_usd"],
            name="Liquidity",
            mode="lines",
            line=dict(color="#e45756", width=1.5),
            yaxis="y2",
            hovertemplate="%{x|%b %d, %Y}<br>Liquidity=$%{y:,.0f}<extra></extra>",
        )
    )
    fig.update_layout(
        height=360,
        margin=dict(l=10, r=10, t=10, b=30),
        legend=dict(orientation="h", y=1.1),
        yaxis=dict(title="Volume (USD)"),
        yaxis2=dict(title="Liquidity (USD)", overlaying="y", side="right", showgrid=False),
    )
    st.plotly_chart(fig, use_container_width=True, config={"scrollZoom": True})


def render_candles(candles, title: str) -> None:
    df = candle_frame(candles or [])
    if df.empty:
        st.info("No hourly rates for this window.")
        return
    fig = go.Figure(
        go.Candlestick(
            x=df["timestamp"],
            open=df["open"],
            close=df["close"],
            # only open/close are tracked per hour
            high=df[["open", "close"]].max(axis=1),
            low=df[["open", "close"]].min(axis=1),
            name=title,
        )
    )
    fig.update_layout(
        height=320,
        margin=dict(l=10, r=10, t=30, b=30),
        title=dict(text=title, x=0.0, font=dict(size=13)),
        xaxis_rangeslider_visible=False,
        showlegend=False,
    )
    st.plotly_chart(fig, use_container_width=True)


backend = get_backend()
service = backend.service

with st.sidebar:
    networks = list(backend.cfg.networks)
    sel_network = st.selectbox("Network", networks, index=networks.index(service.network))
    if sel_network != service.network:
        backend.run(service.switch_network(sel_network))
    if st.button("Refresh"):
        backend.run(service.refresh_top_pairs())

top = backend.run(service.ensure_top_entities())
synced, head = service.latest_blocks
if service.indexer_lagging():
    st.warning(
        f"The {service.network} indexer is {head - synced} blocks behind the chain head. "
        "Figures reflect the last synced block."
    )

if not top:
    st.info("No pairs loaded yet. The subgraph may be unreachable; try Refresh.")
    st.stop()

df_pairs = _pairs_frame(top.values())
c1, c2, c3 = st.columns(3)
c1.metric("Liquidity (top pairs)", _fmt_usd(df_pairs["liquidity_usd"].sum()))
c2.metric("Volume 24h", _fmt_usd(df_pairs["volume_24h_usd"].sum()))
c3.metric("Pairs", f"{len(df_pairs)}")

tab_pairs, tab_detail, tab_mining = st.tabs(["Top Pairs", "Pair", "Liquidity Mining"])

with tab_pairs:
    st.dataframe(df_pairs, use_container_width=True, hide_index=True)

with tab_detail:
    labels = {f"{row.pair} ({row.id[:6]}…{row.id[-4:]})": row.id for row in df_pairs.itertuples()}
    sel_label = st.selectbox("Select pair", list(labels))
    pair_id = labels[sel_label]
    record = top.get(pair_id) or backend.run(service.ensure_entity(pair_id))
    if record is None:
        st.info("Pair data is not available right now.")
    else:
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Liquidity", _fmt_usd(record.reserve_usd), _fmt_pct(record.liquidity_change_usd))
        m2.metric("Volume 24h", _fmt_usd(record.one_day_volume_usd), _fmt_pct(record.volume_change_usd))
        m3.metric("Volume 7d", _fmt_usd(record.one_week_volume_usd))
        m4.metric("Swap fee", f"{record.swap_fee / 100:.2f}%")

        render_daily_chart(backend.run(service.ensure_daily_series(pair_id)))

        window = st.radio("Rate window", [WEEK, MONTH, ALL_TIME], horizontal=True)
        series = backend.run(service.ensure_hourly_series(pair_id, window), timeout=600)
        if series is None:
            st.info("Hourly rates are not available right now.")
        else:
            rate0, rate1 = series
            r1, r2 = st.columns(2)
            with r1:
                render_candles(rate0, f"{record.token0.symbol}/{record.token1.symbol}")
            with r2:
                render_candles(rate1, f"{record.token1.symbol}/{record.token0.symbol}")

        txns = backend.run(service.ensure_transactions(pair_id))
        if txns is not None:
            st.subheader("Recent transactions")
            t1, t2, t3 = st.columns(3)
            t1.caption(f"Swaps: {len(txns.swaps)}")
            t2.caption(f"Adds: {len(txns.mints)}")
            t3.caption(f"Removes: {len(txns.burns)}")
            if txns.swaps:
                st.dataframe(pd.json_normalize(txns.swaps), use_container_width=True, hide_index=True)

with tab_mining:
    campaigns = backend.run(service.ensure_mining_campaigns())
    for status, items in campaigns.items():
        st.subheader(status.capitalize())
        if items is None:
            st.info("Campaigns are not available right now.")
            continue
        if not items:
            st.info("No campaigns.")
            continue
        st.dataframe(
            pd.DataFrame([
                {
                    "campaign": c.id,
                    "pair": f"{c.pair.token0.symbol}-{c.pair.token1.symbol}",
                    "staked_usd": c.staked_price_usd,
                    "starts_at": pd.to_datetime(c.starts_at, unit="s", utc=True),
                    "ends_at": pd.to_datetime(c.ends_at, unit="s", utc=True),
                    "locked": c.locked,
                }
                for c in items
            ]),
            use_container_width=True,
            hide_index=True,
        )
