"""Convenience launcher for the Streamlit app.

Usage:
  streamlit run run_dashboard.py

Automatically imports every module in ``jira_rollup/pages`` so each page
decorated with ``@register_page`` registers itself without manual edits here.
"""

import logging
from importlib import import_module
from pathlib import Path

import streamlit as st

from jira_rollup.app import main
from jira_rollup.core.settings import load_settings, settings_from_mapping

st.set_page_config(layout="wide")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _auto_init_orchestrator():
    """Initialize the snapshot engine from config.yaml or Streamlit secrets."""
    if "orchestrator" in st.session_state:
        return

    settings = load_settings()
    if not settings.is_complete:
        jira_secrets = st.secrets.get("jira", {})
        settings = settings_from_mapping(
            {
                "jira": {
                    "server": jira_secrets.get("JIRA_SERVER") or st.secrets.get("JIRA_SERVER"),
                    "email": jira_secrets.get("JIRA_EMAIL") or st.secrets.get("JIRA_EMAIL"),
                    "api_token": jira_secrets.get("JIRA_API_TOKEN") or st.secrets.get("JIRA_API_TOKEN"),
                },
                "snapshot": {"hierarchy_jql": settings.hierarchy_jql, "data_dir": settings.data_dir},
            }
        )

    if settings.is_complete:
        try:
            from jira_rollup.core.service import create_orchestrator

            st.session_state["orchestrator"] = create_orchestrator(settings)
            st.session_state["settings"] = settings
            st.sidebar.success("Jira connection successful!")
        except Exception as e:
            st.sidebar.error(f"Jira connection failed: {e}")
            if "orchestrator" in st.session_state:
                del st.session_state["orchestrator"]
    else:
        st.sidebar.warning("Jira credentials not found. Please use the Setup page.")


_auto_init_orchestrator()

PAGES_DIR = Path(__file__).parent / "jira_rollup" / "pages"
for py in sorted(PAGES_DIR.glob("[!_]*.py")):
    mod_name = f"jira_rollup.pages.{py.stem}"
    try:
        import_module(mod_name)
    except Exception as e:  # pragma: no cover
        logging.getLogger(__name__).error("Failed importing page %s: %s", mod_name, e)

if __name__ == "__main__":
    main()
