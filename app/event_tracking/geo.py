"""
Geo resolution for behavior events.

Country/city lookup is an extension point: the default resolver returns
empty values, and deployments may plug in a resolver backed by a GeoIP
database or an IP lookup service.
"""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class GeoInfo:
    """Geographic location of a client."""
    country: Optional[str] = None
    city: Optional[str] = None


class GeoResolver(Protocol):
    """Anything that maps an IP address to a GeoInfo."""

    def resolve(self, ip_address: str) -> GeoInfo:
        ...


class NullGeoResolver:
    """Default resolver: no geographic information."""

    def resolve(self, ip_address: str) -> GeoInfo:
        return GeoInfo()
