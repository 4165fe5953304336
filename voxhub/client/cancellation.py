class CancellationToken:
    """Cooperative cancellation flag shared between a caller and an upload."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled
