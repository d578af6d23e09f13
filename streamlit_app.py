from __future__ import annotations

import asyncio

import pandas as pd
import plotly.express as px
import streamlit as st
from dotenv import load_dotenv

from walkpad.api_client import ApiClient
from walkpad.cli import history_frame, load_history
from walkpad.config import ClientSettings, configure_logging, load_client_settings
from walkpad.controller import CaptureController, CycleResult
from walkpad.history import HistoryStore
from walkpad.status import StatusReporter

st.set_page_config(page_title="Walking Pad Stats", layout="wide")

_STATUS_RENDERERS = {
    "success": st.success,
    "error": st.error,
    "processing": st.info,
    "info": st.info,
}
_PLOTLY_THEME = "plotly_white"
_NUMERIC_FIELDS = ["calories", "speed", "steps", "distance"]


async def _analyze_image(settings: ClientSettings, history: HistoryStore,
                         image_bytes: bytes) -> tuple[CycleResult | None, StatusReporter, bytes | None]:
    reporter = StatusReporter(history)
    async with ApiClient(settings.api_base_url) as api:
        controller = CaptureController(api, history, reporter)
        result = await controller.handle_manual_upload(image_bytes)
        await controller.close()
    return result, reporter, controller.last_frame_png


def _readings_chart(df: pd.DataFrame) -> None:
    """Line chart of the numeric readings; sentinel values drop out as NaN."""
    chart_df = df.copy()
    chart_df["captured_at"] = pd.to_datetime(chart_df["captured_at"])
    for col in _NUMERIC_FIELDS:
        chart_df[col] = pd.to_numeric(chart_df[col], errors="coerce")
    long_df = chart_df.melt(id_vars="captured_at", value_vars=_NUMERIC_FIELDS,
                            var_name="field", value_name="value").dropna(subset=["value"])
    if long_df.empty:
        st.info("No numeric readings to chart yet.")
        return
    fig = px.line(
        long_df.sort_values("captured_at"),
        x="captured_at", y="value", color="field",
        facet_row="field", markers=True,
        template=_PLOTLY_THEME, title="Readings over time",
    )
    fig.update_yaxes(matches=None)
    fig.update_layout(height=180 * long_df["field"].nunique() + 60, showlegend=False,
                      margin=dict(l=10, r=10, t=40, b=10))
    st.plotly_chart(fig, use_container_width=True)


def main() -> None:
    load_dotenv()
    configure_logging()
    settings = load_client_settings()
    history = load_history(settings)

    st.title("Walking Pad Stats")
    st.caption(f"Backend: {settings.api_base_url}  ·  history: {settings.history_path}")

    # ── Status & stats ───────────────────────────────────────────────────────
    last = st.session_state.get("last_status")
    if last:
        _STATUS_RENDERERS.get(last["level"], st.info)(last["message"])

    m1, m2, m3 = st.columns([1, 1, 3])
    m1.metric("Total captures", history.total_captures)
    m2.metric("Success rate", f"{history.success_rate}%")
    m3.metric("Last reading", history.entries[0].formatted if history.entries else "--")

    st.divider()

    # ── Capture ──────────────────────────────────────────────────────────────
    c1, c2 = st.columns([1, 1])
    with c1:
        st.subheader("Capture")
        source = st.radio("Source", ["Camera", "Image file"], horizontal=True)
        if source == "Camera":
            image = st.camera_input("Point the camera at the display")
        else:
            image = st.file_uploader("Display photo", type=["png", "jpg", "jpeg", "webp", "bmp"])

        if image is not None and st.button("Analyze", type="primary"):
            with st.spinner("Uploading and analyzing…"):
                _, reporter, frame_png = asyncio.run(
                    _analyze_image(settings, history, image.getvalue())
                )
            st.session_state["last_status"] = {
                "message": reporter.snapshot.message,
                "level": reporter.snapshot.level,
            }
            if frame_png:
                st.session_state["last_frame"] = frame_png
            st.rerun()

    with c2:
        st.subheader("Last analyzed frame")
        if "last_frame" in st.session_state:
            st.image(st.session_state["last_frame"], use_container_width=True)
        else:
            st.markdown("_No capture yet._")

    st.divider()

    # ── History ──────────────────────────────────────────────────────────────
    st.subheader("History")
    df = history_frame(history)
    if df.empty:
        st.info("No readings recorded yet.")
    else:
        st.dataframe(df, use_container_width=True, hide_index=True)
        _readings_chart(df)

    confirm = st.checkbox("Yes, delete all history and counters")
    if st.button("🗑 Clear history", disabled=not confirm):
        history.clear()
        st.session_state.pop("last_frame", None)
        st.session_state["last_status"] = {"message": "History cleared.", "level": "info"}
        st.rerun()


if __name__ == "__main__":
    main()
