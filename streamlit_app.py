from __future__ import annotations

import base64
from datetime import date, datetime

import streamlit as st

from odontosync.client import (
    ApiClient,
    ApiError,
    AuthenticationRequired,
    ClientPermissions,
    SessionStore,
    check_and_clean_expired_token,
)
from odontosync.client.session import CLEANUP_INTERVAL_SECONDS
from odontosync.config import API_BASE

st.set_page_config(page_title="OdontoSync", layout="wide")

MODULE_LABELS = {
    "dashboard": "Dashboard",
    "patients": "Patients",
    "schedule": "Schedule",
    "consultations": "Consultations",
    "procedures": "Procedures",
    "financial": "Financial",
    "purchases": "Purchases",
    "stock": "Stock",
    "reports": "Reports",
    "settings": "Settings",
    "companies": "Companies",
    "saas-management": "SaaS management",
}


# Session (lives in st.session_state across reruns)

store = SessionStore(st.session_state)
api = ApiClient(API_BASE, store)


def do_logout() -> None:
    store.clear()
    st.session_state.pop("perms", None)
    st.session_state.pop("auth_error", None)
    st.rerun()


def on_session_expired() -> None:
    st.session_state.pop("perms", None)
    st.session_state["auth_error"] = "Session expired. Please log in again."


# Expired or unreadable token: back to the login form.
check_and_clean_expired_token(store, on_logout=on_session_expired)


@st.fragment(run_every=CLEANUP_INTERVAL_SECONDS)
def token_watch() -> None:
    """Re-checks the token while the page sits idle; a full rerun shows the login form."""
    if check_and_clean_expired_token(store, on_logout=on_session_expired):
        st.rerun()


def load_permissions() -> ClientPermissions | None:
    perms = st.session_state.get("perms")
    if perms is not None:
        return perms
    try:
        perms = ClientPermissions(api).load()
    except AuthenticationRequired as e:
        st.session_state["auth_error"] = e.message
        return None
    st.session_state["perms"] = perms
    return perms


def show_api_error(e: Exception) -> None:
    if isinstance(e, AuthenticationRequired):
        st.session_state["auth_error"] = e.message
        st.error("Session no longer valid. Log in again from the sidebar.")
    elif isinstance(e, ApiError):
        st.error(e.message)
    else:
        st.error(f"API unreachable: {e}")


def unauthorized() -> None:
    st.header("Access denied")
    st.warning("Your profile does not include this module. Ask the clinic administrator for access.")


# Sidebar login

with st.sidebar:
    st.header("Access")

    if not store.is_authenticated:
        login = st.text_input("Username or email", key="login_user")
        password = st.text_input("Password", type="password", key="login_pass")

        if st.button("Login", key="login_btn"):
            try:
                api.login(login, password)
                st.session_state.pop("auth_error", None)
                st.session_state.pop("perms", None)
                st.rerun()
            except ApiError as e:
                st.error(e.message)
            except Exception as e:
                st.error(str(e))
    else:
        user = store.user or {}
        st.write(f"User: **{user.get('name') or user.get('username')}**")
        st.caption(f"Role: {user.get('role')}")
        token_watch()

        if st.button("Logout", key="logout_btn"):
            do_logout()

    if st.session_state.get("auth_error"):
        st.error(st.session_state["auth_error"])

    st.divider()
    st.caption(f"API: {API_BASE}")


st.title("OdontoSync")

if not store.is_authenticated:
    st.info("Log in from the sidebar to use the system.")
    st.stop()


# Forced password change (first access of generated accounts)

if store.force_password_change:
    st.subheader("Set a new password")
    st.write("Your password was generated by the system. Choose a new one to continue.")
    new1 = st.text_input("New password", type="password", key="force_new1")
    new2 = st.text_input("Confirm password", type="password", key="force_new2")
    if st.button("Save password", key="force_btn"):
        if new1 != new2:
            st.error("Passwords do not match.")
        else:
            try:
                api.force_change_password(new1)
                st.success("Password changed.")
                st.rerun()
            except Exception as e:
                show_api_error(e)
    st.stop()


perms = load_permissions()
if perms is None:
    st.error("Session no longer valid. Log in again from the sidebar.")
    st.stop()

if perms.is_system_admin:
    with st.sidebar:
        try:
            companies = api.get("/api/companies")
        except Exception as e:
            companies = []
            show_api_error(e)
        options = [None] + [c["id"] for c in companies]
        names = {c["id"]: c["name"] for c in companies}
        api.company_id = st.selectbox(
            "Company",
            options=options,
            format_func=lambda cid: "All companies" if cid is None else names.get(cid, str(cid)),
            key="company_select",
        )

modules = perms.accessible_modules()
with st.sidebar:
    page = st.radio(
        "Modules",
        options=list(MODULE_LABELS),
        format_func=lambda m: MODULE_LABELS[m] + ("" if m in modules else " (locked)"),
        key="nav_module",
    )

if not perms.has_access(page):
    unauthorized()
    st.stop()

st.header(MODULE_LABELS[page])


# Dashboard

if page == "dashboard":
    try:
        m = api.get("/api/dashboard/metrics")
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Appointments today", m["today_appointments"])
        c2.metric("Active patients", m["active_patients"])
        c3.metric("Revenue this month", f"R$ {m['monthly_revenue']}")
        c4.metric("Pending payments", f"R$ {m['pending_payments']}")
    except Exception as e:
        show_api_error(e)


# Patients

elif page == "patients":
    with st.expander("New patient"):
        c1, c2 = st.columns(2)
        name = c1.text_input("Name", key="pat_name")
        cpf = c2.text_input("CPF", key="pat_cpf")
        birth = c1.date_input("Birth date", value=date(1990, 1, 1), key="pat_birth")
        phone = c2.text_input("Phone", key="pat_phone")
        email = st.text_input("Email (optional)", key="pat_email")

        if st.button("Create patient", key="pat_submit"):
            try:
                res = api.post(
                    "/api/patients",
                    {
                        "name": name.strip(),
                        "cpf": cpf.strip(),
                        "birth_date": birth.isoformat(),
                        "phone": phone.strip(),
                        "email": email.strip() or None,
                    },
                )
                st.success(f"Patient created: {res['id']}")
            except Exception as e:
                show_api_error(e)

    search = st.text_input("Search", key="pat_search")
    try:
        patients = api.get("/api/patients", params={"search": search} if search else None)
        if not patients:
            st.info("No patients found.")
        for p in patients:
            st.write(f"- **{p['name']}** | CPF {p['cpf']} | {p['phone']} | {p.get('email') or '-'}")
    except Exception as e:
        show_api_error(e)


# Schedule

elif page == "schedule":
    day = st.date_input("Day", value=date.today(), key="sched_day")
    try:
        items = api.get("/api/appointments", params={"date": day.isoformat()})
        if not items:
            st.info("No appointments for this day.")
        for a in items:
            start = datetime.fromisoformat(a["scheduled_date"]).strftime("%H:%M")
            end = datetime.fromisoformat(a["end_date"]).strftime("%H:%M")
            st.write(
                f"- **{start} - {end}** | {a['patient']['name']} | {a['procedure']['name']} | "
                f"Dr(a). {a['dentist']['name']} | {a['status']}"
            )
    except Exception as e:
        show_api_error(e)


# Financial

elif page == "financial":
    try:
        flow = api.get("/api/cash-flow")
        st.metric("Current balance", f"R$ {flow['current_balance']}")
        for e in flow["entries"][:50]:
            st.write(f"- {e['date']} | {e['type']} | R$ {e['amount']} | {e['description']}")
    except Exception as e:
        show_api_error(e)


# Stock

elif page == "stock":
    try:
        low = api.get("/api/products/low-stock")
        if low:
            st.warning(f"{len(low)} products below minimum stock.")
        for p in api.get("/api/products"):
            flag = " (low)" if p.get("low_stock") else ""
            st.write(f"- **{p['name']}** | stock {p['current_stock']} {p['unit']} | min {p['minimum_stock']}{flag}")
    except Exception as e:
        show_api_error(e)


# Companies (system administrator)

elif page == "companies":
    try:
        metrics = api.get("/api/saas/metrics")
        st.json(metrics)
        for c in api.get("/api/companies"):
            state = "active" if c["is_active"] else "inactive"
            st.write(f"- **{c['name']}** | {c['email']} | {state}")
    except Exception as e:
        show_api_error(e)


# Settings: the clinic's WhatsApp instance

elif page == "settings":
    st.subheader("WhatsApp")
    try:
        wa = api.get("/api/whatsapp/status")
    except Exception as e:
        wa = None
        show_api_error(e)

    if wa is not None:
        st.write(f"Status: **{wa['status']}** | instance: {wa['instance_id'] or '-'}")
        if wa.get("connected_at"):
            st.caption(f"Connected since {wa['connected_at']}")

        c1, c2 = st.columns(2)
        if c1.button("Set up WhatsApp", key="wa_setup"):
            try:
                wa = api.post("/api/whatsapp/setup")
            except Exception as e:
                show_api_error(e)
        if wa["instance_id"] and c2.button("New QR code", key="wa_qr"):
            try:
                wa = api.post("/api/whatsapp/refresh-qr")
            except Exception as e:
                show_api_error(e)

        if wa.get("qr_code"):
            qr = wa["qr_code"].split(",", 1)[-1]
            st.image(base64.b64decode(qr), caption="Scan with WhatsApp to connect", width=260)

        with st.expander("Send a test message"):
            phone = st.text_input("Phone number", key="wa_phone")
            text = st.text_input("Message", value="Hello! This is a test message from OdontoSync.", key="wa_text")
            if st.button("Send", key="wa_send"):
                try:
                    api.post("/api/whatsapp/test-message", {"phone_number": phone, "message": text})
                    st.success("Message sent.")
                except Exception as e:
                    show_api_error(e)


else:
    st.info("This module is available through the REST API.")
