"""Application state shared by the CLI and any UI."""

from siakad.state.context import AppContext

__all__ = ["AppContext"]
