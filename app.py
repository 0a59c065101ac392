"""
Main Streamlit application entry point for the SPV portfolio simulator.
Orchestrates UI setup (sidebar, tabs), input handling, projection
execution, and visualization display by calling functions from the
spvsim package modules.
"""

import streamlit as st
import logging

# --- Basic Configuration ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Project Module Imports ---
try:
    from spvsim.core.inputs import ModelSettings
    from spvsim.core.constants import HIGH_LTV_THRESHOLD
    from spvsim.core.metrics import compute_kpis
    from spvsim.core.ranges import run_scenario_range
    from spvsim.ui.inputs import render_sidebar_inputs
    from spvsim.ui.visualizations import plot_cash_reserve, plot_income, plot_portfolio_value, plot_tax_components
except ImportError as e:
    st.error(f"Failed to import spvsim modules. Ensure the 'spvsim' package is installed. Error: {e}")
    st.stop()

# --- Page Configuration ---
st.set_page_config(
    page_title="SPV Portfolio Simulator",
    layout="wide",
    initial_sidebar_state="expanded"
)


def _format_eur(value: float) -> str:
    if abs(value) >= 1_000_000:
        return f"€{value / 1_000_000:.2f}M"
    if abs(value) >= 1_000:
        return f"€{value / 1_000:.1f}k"
    return f"€{value:.0f}"


def _render_results(settings: ModelSettings, scenario_range) -> None:
    base = scenario_range.base
    if base.warnings.is_underfunded:
        st.warning("The SPV cash reserve turns negative in at least one year: the plan is underfunded.")
    if base.warnings.high_ltv:
        st.warning(f"LTV breaches the {HIGH_LTV_THRESHOLD:.0f}% stress cap in at least one year.")

    kpis = compute_kpis(base, settings)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Equity at Horizon", _format_eur(kpis.equity_at_end),
                help=f"Equity at retirement (Y{settings.retirement_year}): {_format_eur(kpis.equity_at_retirement)}")
    col2.metric("LTV at Horizon", f"{kpis.ltv_at_end:.1f}%")
    col3.metric("Annual Net Dividend", _format_eur(kpis.annual_after_tax_income))
    col4.metric("Equity Multiple", f"{kpis.equity_multiple:.2f}x")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Cumulative Property Taxes", _format_eur(kpis.cumulative_property_taxes))
    col2.metric("Depreciation Tax Shield", _format_eur(kpis.depreciation_shield))
    col3.metric("Portfolio Value", _format_eur(kpis.total_properties_value))
    col4.metric("Gross Yield on Value", f"{kpis.average_gross_yield:.2f}%")

    tabs = st.tabs(["📈 Portfolio", "💰 Cash", "🧾 Taxes", "📋 Table"])
    with tabs[0]:
        fig = plot_portfolio_value(scenario_range)
        if fig is not None:
            st.plotly_chart(fig, use_container_width=True)
        if scenario_range.min is None or scenario_range.max is None:
            st.caption("Sensitivity band unavailable: no ranged inputs, or a bound run failed.")
    with tabs[1]:
        for builder in (plot_income, plot_cash_reserve):
            fig = builder(base)
            if fig is not None:
                st.plotly_chart(fig, use_container_width=True)
    with tabs[2]:
        fig = plot_tax_components(base)
        if fig is not None:
            st.plotly_chart(fig, use_container_width=True)
    with tabs[3]:
        st.dataframe(base.to_dataframe().round(0), use_container_width=True)


# --- Main Application Logic ---
def main():
    st.title("🏢 SPV Portfolio Simulator")
    st.subheader("Leveraged buy-and-hold projections with stress tests")

    if "results" not in st.session_state:
        st.session_state["results"] = None

    with st.sidebar:
        settings = render_sidebar_inputs(ModelSettings())
        run_button = st.button("🚀 Run Projection", key="run_button", type="primary", use_container_width=True)

    if run_button:
        errors = settings.validate()
        if errors:
            for message in errors:
                st.error(f"Input Error: {message}")
            st.session_state["results"] = None
        else:
            try:
                with st.spinner("Running projections..."):
                    st.session_state["results"] = (settings, run_scenario_range(settings))
            except Exception as e:
                logger.error(f"Projection failed: {e}", exc_info=True)
                st.error(f"Projection Error: {e}")
                st.session_state["results"] = None

    if st.session_state["results"] is not None:
        _render_results(*st.session_state["results"])
    else:
        st.info("Adjust the inputs in the sidebar and press **Run Projection**.")


if __name__ == "__main__":
    main()
