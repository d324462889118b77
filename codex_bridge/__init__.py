"""Bridge between the Codex CLI and a paginated, structured-edit response protocol."""

__version__ = "0.3.0"
