"""agentpipe: declarative pipelines over CLI coding agents."""

__version__ = "0.4.0"
