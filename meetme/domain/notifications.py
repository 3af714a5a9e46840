from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Toast:
    level: str  # "success" | "error" | "info"
    message: str
    persist: bool = False


class ToastBuffer:
    """Notifier that queues toasts until the client collects them."""

    def __init__(self):
        self._toasts: List[Toast] = []

    def success(self, message: str) -> None:
        self._toasts.append(Toast("success", message))

    def error(self, message: str) -> None:
        self._toasts.append(Toast("error", message))

    def info(self, message: str, persist: bool = False) -> None:
        self._toasts.append(Toast("info", message, persist))

    def drain(self) -> List[Toast]:
        toasts, self._toasts = self._toasts, []
        return toasts

    def __len__(self):
        return len(self._toasts)
