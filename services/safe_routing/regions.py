"""
Serviceable region: named districts approximated by bounding boxes.

The district containing a request's start point decides which road graph is
used. Crime reports and request points outside every district are rejected.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from common.constants import EARTH_RADIUS_M
from models.network import TravelMode


@dataclass(frozen=True)
class District:
    name: str
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    @property
    def slug(self) -> str:
        return district_slug(self.name)

    def expanded(self, margin_m: float) -> "District":
        """Same district with its box grown by margin_m on every side."""
        dlat = math.degrees(margin_m / EARTH_RADIUS_M)
        mid_lat = math.radians((self.min_lat + self.max_lat) / 2.0)
        dlng = dlat / max(math.cos(mid_lat), 1e-6)
        return District(
            self.name,
            self.min_lat - dlat,
            self.min_lng - dlng,
            self.max_lat + dlat,
            self.max_lng + dlng,
        )


BANGLADESH_DISTRICTS: Tuple[District, ...] = (
    District("Bagerhat", 21.80, 89.40, 22.90, 89.95),
    District("Bandarban", 21.10, 92.15, 22.00, 92.70),
    District("Barguna", 21.80, 89.90, 22.60, 90.30),
    District("Barisal", 22.30, 90.10, 22.90, 90.50),
    District("Bhola", 21.90, 90.50, 22.90, 91.10),
    District("Bogra", 24.50, 88.90, 25.10, 89.60),
    District("Brahmanbaria", 23.60, 90.80, 24.20, 91.30),
    District("Chandpur", 23.00, 90.55, 23.60, 91.00),
    District("Chapai Nawabganj", 24.40, 88.00, 24.90, 88.40),
    District("Chattogram", 21.90, 91.60, 22.80, 92.20),
    District("Chuadanga", 23.30, 88.70, 23.70, 89.10),
    District("Cox's Bazar", 20.85, 91.80, 21.90, 92.30),
    District("Cumilla", 23.20, 90.90, 24.00, 91.30),
    District("Dhaka", 23.60, 90.20, 24.00, 90.60),
    District("Dinajpur", 25.30, 88.40, 26.10, 89.00),
    District("Faridpur", 23.10, 89.50, 23.80, 90.10),
    District("Feni", 22.75, 91.30, 23.15, 91.55),
    District("Gaibandha", 25.00, 89.30, 25.50, 89.70),
    District("Gazipur", 23.90, 90.20, 24.30, 90.60),
    District("Gopalganj", 22.90, 89.80, 23.40, 90.20),
    District("Habiganj", 24.00, 91.10, 24.60, 91.50),
    District("Jamalpur", 24.60, 89.70, 25.30, 90.30),
    District("Jashore", 23.00, 88.80, 23.60, 89.40),
    District("Jhalokati", 22.30, 90.00, 22.70, 90.30),
    District("Jhenaidah", 23.10, 88.90, 23.70, 89.40),
    District("Joypurhat", 24.80, 88.90, 25.20, 89.30),
    District("Khagrachari", 22.90, 91.80, 23.50, 92.30),
    District("Khulna", 22.60, 89.30, 23.10, 89.70),
    District("Kishoreganj", 24.10, 90.70, 24.60, 91.20),
    District("Kurigram", 25.60, 89.30, 26.20, 89.80),
    District("Kushtia", 23.70, 88.90, 24.10, 89.30),
    District("Lakshmipur", 22.60, 90.70, 23.10, 91.10),
    District("Lalmonirhat", 25.80, 89.20, 26.30, 89.60),
    District("Madaripur", 23.00, 89.90, 23.50, 90.30),
    District("Magura", 23.20, 89.20, 23.60, 89.60),
    District("Manikganj", 23.70, 89.90, 24.10, 90.20),
    District("Meherpur", 23.60, 88.50, 23.90, 88.80),
    District("Moulvibazar", 24.10, 91.40, 24.70, 92.00),
    District("Munshiganj", 23.30, 90.30, 23.70, 90.70),
    District("Mymensingh", 24.40, 90.10, 25.00, 90.60),
    District("Naogaon", 24.60, 88.50, 25.10, 89.10),
    District("Narail", 23.00, 89.30, 23.40, 89.70),
    District("Narayanganj", 23.50, 90.40, 23.90, 90.70),
    District("Narsingdi", 23.70, 90.60, 24.10, 91.00),
    District("Natore", 24.20, 88.80, 24.80, 89.30),
    District("Netrokona", 24.60, 90.80, 25.20, 91.20),
    District("Nilphamari", 25.80, 88.80, 26.30, 89.30),
    District("Noakhali", 22.60, 90.90, 23.20, 91.30),
    District("Pabna", 23.70, 89.00, 24.30, 89.60),
    District("Panchagarh", 26.20, 88.30, 26.60, 88.60),
    District("Patuakhali", 21.80, 90.10, 22.60, 90.60),
    District("Pirojpur", 22.30, 89.90, 22.80, 90.30),
    District("Rajbari", 23.40, 89.40, 23.90, 89.80),
    District("Rajshahi", 24.20, 88.40, 24.70, 88.80),
    District("Rangamati", 22.40, 91.80, 23.30, 92.40),
    District("Rangpur", 25.50, 88.90, 25.90, 89.40),
    District("Satkhira", 21.80, 88.90, 22.70, 89.30),
    District("Shariatpur", 23.00, 90.20, 23.50, 90.60),
    District("Sherpur", 24.90, 89.90, 25.30, 90.30),
    District("Sirajganj", 24.10, 89.30, 24.80, 89.90),
    District("Sunamganj", 24.60, 90.90, 25.20, 91.50),
    District("Sylhet", 24.50, 91.60, 25.10, 92.10),
    District("Tangail", 24.00, 89.80, 24.70, 90.40),
    District("Thakurgaon", 25.80, 88.20, 26.30, 88.60),
)


class RegionCatalog:
    """Ordered collection of districts; the first match wins."""

    def __init__(self, districts: Iterable[District] = BANGLADESH_DISTRICTS):
        self.districts: Tuple[District, ...] = tuple(districts)

    def find_district(self, lat: float, lng: float) -> Optional[District]:
        for district in self.districts:
            if district.contains(lat, lng):
                return district
        return None

    def contains(self, lat: float, lng: float) -> bool:
        return self.find_district(lat, lng) is not None

    def get(self, name: str) -> Optional[District]:
        wanted = name.lower()
        for district in self.districts:
            if district.name.lower() == wanted or district.slug == wanted:
                return district
        return None


def district_slug(name: str) -> str:
    return name.lower().replace("'", "").replace(" ", "_")


def district_key(district: str, mode: TravelMode) -> str:
    """Cache/file key of a district graph, e.g. "coxs_bazar_walk"."""
    return f"{district_slug(district)}_{TravelMode(mode).value}"
