"""Allow ``python -m agentpipe``."""

from agentpipe.cli.main import app_entry

app_entry()
