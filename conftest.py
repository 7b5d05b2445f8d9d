"""Makes the repository root importable so tests can use ``src.terminal_chat``."""
