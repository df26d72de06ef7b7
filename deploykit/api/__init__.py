"""HTTP API for the deployment dashboard."""
