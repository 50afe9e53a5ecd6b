"""Admin command-line tools (run with python -m backend_dappstats.tools.<name>)."""
