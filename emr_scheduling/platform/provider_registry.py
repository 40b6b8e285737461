from emr_scheduling.core.config import settings
from emr_scheduling.platform.ports.event_bus import EventBusPort
from emr_scheduling.platform.adapters.bus_noop import NoopEventBus

class ProviderRegistry:
    _event_bus: EventBusPort | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                # imported lazily so the noop bus works without a Redis client configured
                from emr_scheduling.platform.adapters.bus_redis import RedisEventBus
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def set_event_bus(cls, bus: EventBusPort | None) -> None:
        cls._event_bus = bus

registry = ProviderRegistry()
