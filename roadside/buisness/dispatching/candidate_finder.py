"""
Geo index / candidate finder

Answers "which available providers are within R km of this point" for a
broadcast. Pure read: nothing here writes to the database.

The SQL prefilter is a latitude/longitude bounding box (served by
ix_users_lat_lng); the exact great-circle distance is computed in Python.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from roadside.buisness.dispatching.errors import DispatchValidationError

EARTH_RADIUS_KM = 6371.0
# One degree of latitude is ~111.2 km everywhere
KM_PER_DEGREE_LAT = 111.195


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(latitude: float, longitude: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Return (min_lat, max_lat, min_lng, max_lng) enclosing the radius.

    Near the poles, or when the box would cross the antimeridian, the
    longitude range widens to the full circle.
    """
    dlat = radius_km / KM_PER_DEGREE_LAT
    min_lat = max(-90.0, latitude - dlat)
    max_lat = min(90.0, latitude + dlat)

    cos_lat = math.cos(math.radians(latitude))
    if cos_lat < 1e-6 or max_lat >= 90.0 or min_lat <= -90.0:
        return min_lat, max_lat, -180.0, 180.0

    dlng = radius_km / (KM_PER_DEGREE_LAT * cos_lat)
    if dlng >= 180.0 or longitude - dlng < -180.0 or longitude + dlng > 180.0:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, longitude - dlng, longitude + dlng


@dataclass(frozen=True)
class ProviderPosition:
    provider_id: int
    latitude: float
    longitude: float
    rating: float = 0.0


@dataclass(frozen=True)
class Candidate:
    provider_id: int
    # None only for a direct-booking target with no known position
    distance_km: Optional[float]
    rating: float

    def to_dict(self):
        return {
            'provider_id': self.provider_id,
            'distance_km': round(self.distance_km, 2) if self.distance_km is not None else None,
            'rating': self.rating,
        }


@dataclass(frozen=True)
class CandidateSet:
    """Request-scoped, ordered candidate list produced by one broadcast"""
    request_id: Optional[int]
    latitude: float
    longitude: float
    radius_km: float
    candidates: Tuple[Candidate, ...] = field(default_factory=tuple)

    @property
    def provider_ids(self) -> List[int]:
        return [c.provider_id for c in self.candidates]

    @property
    def is_empty(self) -> bool:
        return not self.candidates

    def __len__(self):
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    def to_dict(self):
        return {
            'request_id': self.request_id,
            'radius_km': self.radius_km,
            'candidates': [c.to_dict() for c in self.candidates],
        }


class ProviderPositionSource(Protocol):
    """Supplies the last known position of available providers"""

    def positions_within(self, box: Tuple[float, float, float, float],
                         exclude: Sequence[int] = ()) -> Iterable[ProviderPosition]:
        ...


class UserPositionSource:
    """Reads positions of active, available mechanics from the users table"""

    def positions_within(self, box, exclude=()):
        from roadside.data.core.user_info.user import User

        min_lat, max_lat, min_lng, max_lng = box
        query = User.query.filter(
            User.role == User.ROLE_MECHANIC,
            User.is_active.is_(True),
            User.is_available.is_(True),
            User.latitude.isnot(None),
            User.longitude.isnot(None),
            User.latitude.between(min_lat, max_lat),
            User.longitude.between(min_lng, max_lng),
        )
        if exclude:
            query = query.filter(User.id.notin_(list(exclude)))

        for user in query.all():
            yield ProviderPosition(user.id, user.latitude, user.longitude, user.rating or 0.0)


class CandidateFinder:
    """
    Finds the nearest eligible providers for a point.

    Ordering: distance ascending, then rating descending, then provider id
    ascending so equal inputs always produce the same list.
    """

    MAX_RADIUS_KM = 50.0
    DEFAULT_LIMIT = 20

    def __init__(self, source: Optional[ProviderPositionSource] = None,
                 max_radius_km: float = MAX_RADIUS_KM, default_limit: int = DEFAULT_LIMIT):
        self.source = source or UserPositionSource()
        self.max_radius_km = max_radius_km
        self.default_limit = default_limit

    def find_candidates(self, location, radius_km: float, limit: Optional[int] = None,
                        exclude: Sequence[int] = (), request_id: Optional[int] = None) -> CandidateSet:
        """
        Args:
            location: (latitude, longitude) pair
            radius_km: Search radius, 0 < radius_km <= max_radius_km
            limit: Maximum number of candidates (default from config)
            exclude: Provider ids never to return
            request_id: Request the set is scoped to

        Returns:
            CandidateSet, possibly empty
        """
        latitude, longitude = location
        self._validate(latitude, longitude, radius_km)
        limit = self.default_limit if limit is None else limit
        if limit <= 0:
            raise DispatchValidationError("limit must be positive", field='limit')

        box = bounding_box(latitude, longitude, radius_km)
        found = []
        for position in self.source.positions_within(box, exclude):
            if position.provider_id in exclude:
                continue
            distance = haversine_km(latitude, longitude, position.latitude, position.longitude)
            if distance <= radius_km:
                found.append(Candidate(position.provider_id, distance, position.rating or 0.0))

        found.sort(key=lambda c: (c.distance_km, -c.rating, c.provider_id))
        return CandidateSet(
            request_id=request_id,
            latitude=latitude,
            longitude=longitude,
            radius_km=radius_km,
            candidates=tuple(found[:limit]),
        )

    def _validate(self, latitude, longitude, radius_km):
        if latitude is None or not -90.0 <= latitude <= 90.0:
            raise DispatchValidationError("latitude must be between -90 and 90", field='latitude')
        if longitude is None or not -180.0 <= longitude <= 180.0:
            raise DispatchValidationError("longitude must be between -180 and 180", field='longitude')
        if radius_km is None or radius_km <= 0 or radius_km > self.max_radius_km:
            raise DispatchValidationError(
                f"radius_km must be in (0, {self.max_radius_km:g}]", field='radius_km'
            )
