"""
Streamlit TRT Tracker dashboard.
Main page: calendar of scheduled / completed / missed injections + quick logging.
Sidebar: navigation and the current protocol's dose summary.
Talks to the FastAPI backend only; holds no data of its own.
"""

import calendar
import json
import os
from datetime import date, time as dtime, timedelta

import httpx
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

# --- Config ---
API_BASE = os.getenv("TRT_API_URL", "http://localhost:8000")
API_KEY = os.getenv("TRT_API_KEY", "")
HEADERS = {"x-api-key": API_KEY} if API_KEY else {}


def _detail(e: httpx.HTTPError) -> str:
    if isinstance(e, httpx.HTTPStatusError):
        try:
            return str(e.response.json().get("detail", e))
        except ValueError:
            return str(e)
    return str(e)


def api_get(path: str, params: dict | None = None) -> dict | list:
    try:
        r = httpx.get(f"{API_BASE}{path}", params=params, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPError as e:
        st.error(f"API Error: {_detail(e)}")
        return {}


def api_send(method: str, path: str, data: dict) -> dict:
    try:
        r = httpx.request(method, f"{API_BASE}{path}", json=data, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPError as e:
        st.error(f"API Error: {_detail(e)}")
        return {}


def api_post(path: str, data: dict) -> dict:
    return api_send("POST", path, data)


def api_put(path: str, data: dict) -> dict:
    return api_send("PUT", path, data)


# --- Plotly mobile-friendly helper ---
PLOTLY_MOBILE_CONFIG = {
    "displayModeBar": False,
    "scrollZoom": False,
    "staticPlot": False,
    "responsive": True,
}

PLOTLY_MOBILE_LAYOUT = dict(
    dragmode=False,
    template="plotly_dark",
    margin=dict(l=40, r=20, t=40, b=35),
    legend=dict(orientation="h", yanchor="bottom", y=1.02),
    xaxis=dict(fixedrange=True),
    yaxis=dict(fixedrange=True),
)


def mobile_chart(fig, height=350, **kwargs):
    """Render a Plotly chart with mobile-friendly settings (no accidental zoom/pan)."""
    fig.update_layout(**PLOTLY_MOBILE_LAYOUT, height=height, **kwargs)
    st.plotly_chart(fig, use_container_width=True, config=PLOTLY_MOBILE_CONFIG)


STATUS_STYLE = {
    "Completed": ("Done", "#10b981"),
    "Missed": ("Missed", "#ef4444"),
    "PendingLog": ("Log?", "#f59e0b"),
    "Upcoming": ("Due", "#71717a"),
}

PROTOCOLS = ["Daily", "E2D", "E3D", "Weekly"]


# --- Page Config ---
st.set_page_config(
    page_title="TRT Tracker",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

st.markdown("""
<style>
    .block-container {
        padding-top: 0.3rem;
        padding-left: 0.5rem;
        padding-right: 0.5rem;
        max-width: 100%;
    }
    div[data-testid="stMetric"] {
        background-color: #18181b;
        border: 1px solid #27272a;
        border-radius: 10px;
        padding: 8px 10px;
    }
    .cal-cell {
        min-height: 72px;
        border: 1px solid #27272a;
        border-radius: 8px;
        padding: 4px 6px;
        font-size: 0.8rem;
    }
    .cal-today { outline: 2px solid rgba(245, 158, 11, 0.6); }
    .cal-start { outline: 2px solid rgba(16, 185, 129, 0.6); }
</style>
""", unsafe_allow_html=True)

# =========================================================
# SIDEBAR: navigation + dose summary
# =========================================================
PAGES = ["Calendar", "History", "Protocol", "Backup"]

with st.sidebar:
    st.header("TRT Tracker")
    current_page = st.radio("Navigation", PAGES, index=0, label_visibility="collapsed")
    st.divider()
    summary = api_get("/api/dose-summary")
    if isinstance(summary, dict) and "protocol" in summary:
        st.metric("Protocol", summary["protocol"])
        st.metric("Per Injection", summary["formatted"]["mg"])
        st.metric("Weekly Total", summary["weekly_formatted"])
        st.caption(f"{summary['formatted']['ml']}  /  {summary['formatted']['units']}")
        if not summary.get("valid", True):
            st.warning("Protocol settings give no valid dose, check concentration and syringe.")
    st.caption("Always consult with your healthcare provider")


# =========================================================
# PAGE: Calendar (default)
# =========================================================
if current_page == "Calendar":
    today = date.today()
    if "month" not in st.session_state:
        st.session_state.month = today.replace(day=1)

    nc1, nc2, nc3 = st.columns([1, 3, 1])
    with nc1:
        if st.button("<", use_container_width=True):
            st.session_state.month = (st.session_state.month - timedelta(days=1)).replace(day=1)
            st.rerun()
    with nc3:
        if st.button(">", use_container_width=True):
            st.session_state.month = (st.session_state.month + timedelta(days=32)).replace(day=1)
            st.rerun()
    month = st.session_state.month
    with nc2:
        st.subheader(month.strftime("%B %Y"))

    cal = api_get("/api/calendar", {"month": month.strftime("%Y-%m")})
    cells = {c["date"]: c for c in cal.get("days", [])} if isinstance(cal, dict) else {}

    header = st.columns(7)
    for col, name in zip(header, ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]):
        col.caption(name)

    weeks = calendar.Calendar(firstweekday=6).monthdatescalendar(month.year, month.month)
    for week in weeks:
        cols = st.columns(7)
        for col, day in zip(cols, week):
            if day.month != month.month:
                col.write("")
                continue
            cell = cells.get(day.isoformat())
            classes = "cal-cell"
            if day == today:
                classes += " cal-today"
            if cell and cell.get("protocol_start"):
                classes += " cal-start"
            body = f"<b>{day.day}</b>"
            if cell:
                label, color = STATUS_STYLE[cell["status"]]
                dose = f"{cell['dose_mg']:.0f} mg" if cell.get("dose_mg") is not None else ""
                body += (
                    f"<br><span style='color:{cell['color']}'>●</span> "
                    f"<span style='color:{color}'>{label}</span><br>{dose}"
                )
            col.markdown(f"<div class='{classes}'>{body}</div>", unsafe_allow_html=True)

    # ---- Log injection ----
    st.divider()
    st.subheader("Record Injection")
    due_days = [c for c in cells.values() if c["status"] in ("PendingLog", "Upcoming") and c["scheduled"]]
    default_day = next((date.fromisoformat(c["date"]) for c in due_days if c["date"] >= today.isoformat()), today)
    rc1, rc2 = st.columns(2)
    with rc1:
        rec_day = st.date_input("Date", value=default_day, key="rec_day")
    with rc2:
        default_dose = float(summary.get("mg_per_injection") or 0.0) if isinstance(summary, dict) else 0.0
        rec_dose = st.number_input("Dose (mg)", min_value=0.0, step=5.0, value=round(default_dose, 1), key="rec_dose")
    rec_notes = st.text_input("Notes (optional)", key="rec_notes", placeholder="Site, how it went...")
    if st.button("Mark as done", type="primary", use_container_width=True):
        r = api_post("/api/records", {
            "date": rec_day.isoformat(), "dose_mg": rec_dose, "missed": False, "notes": rec_notes,
        })
        if r.get("status") == "ok":
            st.success(f"Recorded {rec_dose:.1f} mg on {rec_day:%d %b}")
            st.rerun()

    with st.expander("Missed dose"):
        st.caption(
            "Skip: leave the schedule as is. Maintain: keep the original days. "
            "Shift: restart the whole schedule the day after the missed dose."
        )
        md1, md2 = st.columns(2)
        with md1:
            missed_day = st.date_input("Missed date", value=default_day, key="missed_day")
        with md2:
            option = st.selectbox("Handling", ["skip", "maintain", "shift"], key="missed_opt")
        missed_notes = st.text_input("Notes", key="missed_notes")
        if option == "shift":
            preview = api_post("/api/schedule/reschedule", {"missed_date": missed_day.isoformat(), "count": 5})
            if preview.get("dates"):
                st.info("New schedule: " + ", ".join(preview["dates"]))
        if st.button("Save missed dose", use_container_width=True):
            r = api_post("/api/missed", {
                "date": missed_day.isoformat(), "option": option, "notes": missed_notes or None,
            })
            if r.get("status") == "ok":
                st.success("Missed dose saved")
                st.rerun()

    nxt = api_get("/api/schedule/next", {"count": 5})
    if isinstance(nxt, dict) and nxt.get("next_injection_dates"):
        st.caption(f"{nxt['frequency']}: next " + ", ".join(nxt["next_injection_dates"]))


# =========================================================
# PAGE: History (chart + weekly analytics)
# =========================================================
elif current_page == "History":
    st.subheader("Injection History")
    points = api_get("/api/chart")
    if isinstance(points, list) and points:
        df = pd.DataFrame(points)
        df["date"] = pd.to_datetime(df["date"])
        fig = go.Figure(go.Bar(
            x=df["date"], y=df["dose_mg"],
            marker_color=df["color"],
            customdata=df[["protocol", "notes"]],
            hovertemplate="%{x|%d %b %Y}<br>%{y:.1f} mg (%{customdata[0]})<br>%{customdata[1]}<extra></extra>",
        ))
        mobile_chart(fig, yaxis_title="mg")
    else:
        st.info("No injection data yet. Start logging your injections to see your history chart.")

    st.divider()
    st.subheader("Weekly Analytics")
    wa = api_get("/api/analytics/weekly")
    if isinstance(wa, dict) and "overall" in wa:
        ov = wa["overall"]
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Compliance", f"{ov['compliance_rate']:.0f}%")
        m2.metric("Injections", ov["total_injections"])
        m3.metric("Missed", ov["total_missed"])
        m4.metric("Avg / Injection", f"{ov['average_mg_per_injection']:.1f} mg")
        if wa["weeks"]:
            wdf = pd.DataFrame(wa["weeks"])
            fig = go.Figure()
            fig.add_trace(go.Bar(x=wdf["week_start"], y=wdf["total_mg"], name="mg", marker_color="#f59e0b"))
            fig.add_trace(go.Scatter(
                x=wdf["week_start"], y=wdf["missed_count"], name="missed",
                yaxis="y2", mode="markers", marker=dict(color="#ef4444", size=10),
            ))
            mobile_chart(
                fig, height=300,
                yaxis_title="mg / week",
                yaxis2=dict(overlaying="y", side="right", fixedrange=True, showgrid=False),
            )


# =========================================================
# PAGE: Protocol
# =========================================================
elif current_page == "Protocol":
    settings = api_get("/api/settings")
    if isinstance(settings, dict) and "current" in settings:
        cur = settings["current"]

        st.subheader("Dose Calculator")
        with st.form("protocol_form"):
            pc1, pc2 = st.columns(2)
            with pc1:
                protocol = st.selectbox("Protocol", PROTOCOLS, index=PROTOCOLS.index(cur["protocol"]))
                concentration = st.number_input(
                    "Concentration (mg/mL)", min_value=0.0, step=10.0, value=float(cur["concentration_mg_per_ml"]),
                )
                fill = st.slider(
                    "Syringe fill", 0.0, 1.0, float(cur["syringe_fill_amount"]), step=0.01,
                    help="Fraction of the syringe drawn per injection",
                )
            with pc2:
                syr = cur["syringe"]
                volume = st.number_input("Syringe volume (mL)", min_value=0.0, step=0.5, value=float(syr["volume_ml"]))
                units = st.number_input("Syringe units", min_value=0.0, step=10.0, value=float(syr["total_units"]))
                dead = st.number_input("Dead space (mL)", min_value=0.0, step=0.01, value=float(syr["dead_space_ml"]))
            as_new = st.checkbox("Start as a new protocol period (keeps history)", value=protocol != cur["protocol"])
            start = st.date_input("Start date", value=date.fromisoformat(cur["start_date"]) if not as_new else date.today())
            submitted = st.form_submit_button("Save", type="primary", use_container_width=True)

        if submitted:
            payload = {
                "protocol": protocol, "concentration_mg_per_ml": concentration,
                "syringe_volume_ml": volume, "syringe_units": units, "dead_space_ml": dead,
                "syringe_fill_amount": fill, "start_date": start.isoformat(),
            }
            r = api_post("/api/protocols", payload) if as_new else api_put("/api/settings", payload)
            if r:
                st.success("Protocol saved")
                st.rerun()

        st.divider()
        st.subheader("Protocol History")
        hist = pd.DataFrame([
            {
                "Start": p["start_date"], "Protocol": p["protocol"],
                "mg/mL": p["concentration_mg_per_ml"], "Fill": p["syringe_fill_amount"],
                "Color": p["display_color"],
            }
            for p in settings["protocols"]
        ])
        st.dataframe(hist, use_container_width=True, hide_index=True)

        st.divider()
        st.subheader("Reminders")
        with st.form("notify_form"):
            hh, mm = (int(x) for x in settings["reminder_time"].split(":"))
            reminder = st.time_input("Reminder time", value=dtime(hh, mm))
            enabled = st.toggle("Notifications", value=settings["enable_notifications"])
            if st.form_submit_button("Save reminders", use_container_width=True):
                r = api_put("/api/notifications", {
                    "reminder_time": reminder.strftime("%H:%M"), "enable_notifications": enabled,
                })
                if r:
                    st.success("Saved")


# =========================================================
# PAGE: Backup (export / import)
# =========================================================
elif current_page == "Backup":
    st.subheader("Export")
    doc = api_get("/api/export")
    if isinstance(doc, dict) and "records" in doc:
        st.download_button(
            "Download backup (JSON)",
            data=json.dumps(doc, indent=2),
            file_name=f"trt-backup-{date.today().isoformat()}.json",
            mime="application/json",
            use_container_width=True,
        )
        if doc["records"]:
            rdf = pd.DataFrame(doc["records"]).sort_values("date")
            st.download_button(
                "Download records (CSV)",
                data=rdf.to_csv(index=False),
                file_name=f"trt-records-{date.today().isoformat()}.csv",
                mime="text/csv",
                use_container_width=True,
            )
            st.dataframe(rdf, use_container_width=True, hide_index=True)

    st.divider()
    st.subheader("Import")
    st.caption("Replaces all settings and records with the backup file.")
    upload = st.file_uploader("Backup file", type=["json"])
    if upload is not None and st.button("Import backup", type="primary", use_container_width=True):
        try:
            data = json.loads(upload.getvalue())
        except ValueError as e:
            st.error(f"Not a JSON file: {e}")
        else:
            r = api_post("/api/import", data)
            if r.get("status") == "ok":
                st.success(f"Imported {r['record_count']} records")
                st.rerun()
