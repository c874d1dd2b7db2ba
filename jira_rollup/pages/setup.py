"""Connection setup page: collect Jira credentials and initialize the orchestrator."""

from __future__ import annotations

import streamlit as st

from jira_rollup.app import register_page
from jira_rollup.core.config import AppSettings
from jira_rollup.core.service import create_orchestrator
from jira_rollup.core.settings import load_settings, normalize_server


@register_page("Setup / Connection")
def setup_page():
    st.title("Jira Connection Setup")
    st.caption("Enter credentials (values from config.yaml are pre-filled).")

    defaults = st.session_state.get("settings") or load_settings()

    server = st.text_input("Jira Server URL", value=defaults.server)
    email = st.text_input("Email / Username", value=defaults.email)
    token = st.text_input("API Token", type="password", value=defaults.token)
    hierarchy_jql = st.text_input("Base hierarchy JQL", value=defaults.hierarchy_jql)
    data_dir = st.text_input("Snapshot data directory", value=defaults.data_dir)
    timeout = st.number_input("HTTP timeout (seconds)", min_value=5, max_value=300, value=int(defaults.timeout))
    init_btn = st.button("Initialize Connection", type="primary")

    if init_btn:
        settings = AppSettings(
            server=normalize_server(server),
            email=email,
            token=token,
            rest_api_version=defaults.rest_api_version,
            timeout=float(timeout),
            hierarchy_jql=hierarchy_jql,
            data_dir=data_dir or ".",
        )
        if not settings.is_complete:
            st.error("Server, email and token are required.")
            return
        try:
            st.session_state["orchestrator"] = create_orchestrator(settings)
            st.session_state["settings"] = settings
            st.success("Connection initialized.")
        except Exception as e:  # pragma: no cover
            st.error(f"Failed to initialize Jira client: {e}")

    if "orchestrator" in st.session_state:
        st.info("Snapshot engine ready.")
