"""Streamlit operator UI and the backend HTTP client."""
