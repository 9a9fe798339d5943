"""
Registry of the downstream services the gateway proxies to.
"""

from dataclasses import dataclass

from gateway.config.settings import Settings
from gateway.services.exceptions import ServiceNotFound


@dataclass(frozen=True)
class ServiceDefinition:
    """Where a downstream service lives and how to probe it."""

    name: str
    url: str
    health_path: str = "/health"


class ServiceRegistry:
    """
    Lookup table from service name to base URL.

    Names are matched case-insensitively.
    """

    SERVICE_NAMES = ("users", "doctors", "appointments", "notifications", "payments")

    def __init__(self, services: dict[str, ServiceDefinition]):
        self._services = {name.lower(): definition for name, definition in services.items()}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceRegistry":
        urls = {
            "users": settings.USERS_SERVICE_URL,
            "doctors": settings.DOCTORS_SERVICE_URL,
            "appointments": settings.APPOINTMENTS_SERVICE_URL,
            "notifications": settings.NOTIFICATIONS_SERVICE_URL,
            "payments": settings.PAYMENTS_SERVICE_URL,
        }
        return cls({name: ServiceDefinition(name=name, url=urls[name].rstrip("/")) for name in cls.SERVICE_NAMES})

    @property
    def names(self) -> list[str]:
        return list(self._services)

    def get(self, name: str) -> ServiceDefinition:
        """Return the definition for a service, raising ServiceNotFound if unknown."""
        definition = self._services.get(str(name).lower())
        if definition is None:
            raise ServiceNotFound(str(name))
        return definition

    def url_for(self, name: str) -> str:
        return self.get(name).url

    def health_path_for(self, name: str) -> str:
        return self.get(name).health_path

    def all_services(self) -> dict[str, str]:
        """Map of every service name to its base URL."""
        return {name: definition.url for name, definition in self._services.items()}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._services
