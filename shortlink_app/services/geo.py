"""
Geo lookup strategies for click classification.

The production lookup reads a MaxMind GeoLite2/GeoIP2 City database.
Without one, every address resolves to "Unknown".
"""

import ipaddress
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GeoLocation:
    country: str = "Unknown"
    city: str = "Unknown"


UNKNOWN_LOCATION = GeoLocation()

# Public addresses used to give local traffic a plausible location in demos
MOCK_LOCATIONS = (
    ("8.8.8.8", GeoLocation("US", "Mountain View")),
    ("49.36.15.255", GeoLocation("IN", "Mumbai")),
    ("146.196.44.17", GeoLocation("GB", "London")),
)


def is_private_address(ip_address: Optional[str]) -> bool:
    """Loopback, private or link-local, including IPv4-mapped IPv6 forms"""
    if not ip_address:
        return False
    try:
        address = ipaddress.ip_address(ip_address)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return address.is_loopback or address.is_private or address.is_link_local


class GeoLookupStrategy(ABC):
    """Resolve an IP address to a (country, city) pair"""

    @abstractmethod
    def lookup(self, ip_address: Optional[str]) -> GeoLocation:
        pass


class NullGeoLookup(GeoLookupStrategy):
    """Used when no GeoIP database is configured"""

    def lookup(self, ip_address: Optional[str]) -> GeoLocation:
        return UNKNOWN_LOCATION


class GeoIP2Lookup(GeoLookupStrategy):
    """
    MaxMind City database reader.

    The reader memory-maps the .mmdb file once; lookups are local and fast.
    """

    def __init__(self, database_path: str):
        import geoip2.database

        self.reader = geoip2.database.Reader(database_path)

    def lookup(self, ip_address: Optional[str]) -> GeoLocation:
        import geoip2.errors

        if not ip_address:
            return UNKNOWN_LOCATION
        try:
            response = self.reader.city(ip_address)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return UNKNOWN_LOCATION

        return GeoLocation(
            country=response.country.iso_code or "Unknown",
            city=response.city.name or "Unknown",
        )


class MockPrivateGeoLookup(GeoLookupStrategy):
    """
    Demo/testing wrapper: local addresses get one of MOCK_LOCATIONS.

    Enabled with ``geo_mock_private_ips``; public addresses go to the
    wrapped lookup untouched.
    """

    def __init__(self, inner: GeoLookupStrategy, choose=random.choice):
        self.inner = inner
        self.choose = choose

    def lookup(self, ip_address: Optional[str]) -> GeoLocation:
        if is_private_address(ip_address):
            _, location = self.choose(MOCK_LOCATIONS)
            return location
        return self.inner.lookup(ip_address)


def build_geo_lookup(database_path: Optional[str], mock_private_ips: bool) -> GeoLookupStrategy:
    lookup: GeoLookupStrategy = NullGeoLookup()
    if database_path:
        try:
            lookup = GeoIP2Lookup(database_path)
            logger.info("geoip_initialized", path=database_path)
        except (OSError, ValueError, RuntimeError) as e:
            logger.warning("geoip_unavailable", path=database_path, error=str(e))

    if mock_private_ips:
        lookup = MockPrivateGeoLookup(lookup)
    return lookup
