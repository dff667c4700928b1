"""Base prompt handling and UI components."""

from rich.console import Console, RenderableType
from rich.live import Live
from rich.spinner import Spinner

console = Console()


class PromptHandler:
    """Base class for live terminal displays."""

    def __init__(self, refresh_rate: float = 1.0) -> None:
        """Initialize the PromptHandler.

        Args:
            refresh_rate: Seconds between display updates
        """
        self._refresh_rate = refresh_rate
        self._spinner = Spinner("dots", text="")

    def create_live_display(self, content: RenderableType, *, transient: bool = True) -> Live:
        """Create a live display refreshed manually by the caller."""
        return Live(
            content,
            console=console,
            transient=transient,
            auto_refresh=False,
        )
