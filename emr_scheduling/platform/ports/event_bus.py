from typing import Protocol, runtime_checkable

@runtime_checkable
class EventBusPort(Protocol):
    """Downstream sink for scheduling events (audit trail, reminders, notifications)."""
    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None: ...
