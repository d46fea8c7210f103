"""
Request Details Policy

Validates and normalizes what a customer submits when creating a service
request. Accepts either flat keys or the nested `vehicle` / `location`
objects the mobile client sends.
"""

import re
from datetime import datetime
from typing import Any, Dict

from roadside.buisness.dispatching.errors import DispatchValidationError
from roadside.data.dispatching.service_request import ServiceRequest

IMAGE_URL_PATTERN = re.compile(r'^https?://.+\.(jpg|jpeg|png|gif)$', re.IGNORECASE)


class RequestDetailsPolicy:

    MAX_DESCRIPTION = 1000
    MAX_ADDRESS = 200
    MAX_IMAGES = 5
    MIN_RADIUS_KM = 1
    MIN_QUOTATION = 0
    MAX_QUOTATION = 100000
    MIN_DURATION = 5
    MAX_DURATION = 480
    MIN_VEHICLE_YEAR = 1900

    @classmethod
    def normalize(cls, details: Dict[str, Any], default_radius_km: float = 10.0,
                  max_radius_km: float = 50.0) -> Dict[str, Any]:
        """
        Return ServiceRequest column values for a creation payload.

        Raises:
            DispatchValidationError: On the first invalid field
        """
        details = dict(details or {})
        vehicle = details.pop('vehicle', None) or {}
        location = details.pop('location', None) or {}
        for key, value in vehicle.items():
            details.setdefault(f'vehicle_{key}' if not key.startswith('vehicle_') else key, value)
        for key, value in location.items():
            details.setdefault({'lat': 'latitude', 'lng': 'longitude'}.get(key, key), value)

        out = {}

        out['issue_type'] = cls._choice(details, 'issue_type', ServiceRequest.ISSUE_TYPES)
        out['description'] = cls._text(details, 'description', cls.MAX_DESCRIPTION, required=True)

        out['vehicle_type'] = cls._choice(details, 'vehicle_type', ServiceRequest.VEHICLE_TYPES)
        out['vehicle_model'] = cls._text(details, 'vehicle_model', 100, required=True)
        out['vehicle_plate'] = cls._text(details, 'vehicle_plate', 20, required=True).upper()
        year = details.get('vehicle_year')
        if year is not None:
            max_year = datetime.utcnow().year + 1
            if not isinstance(year, int) or not cls.MIN_VEHICLE_YEAR <= year <= max_year:
                raise DispatchValidationError(
                    f"vehicle_year must be between {cls.MIN_VEHICLE_YEAR} and {max_year}", field='vehicle_year'
                )
            out['vehicle_year'] = year

        out['latitude'] = cls._number(details, 'latitude', -90, 90, required=True)
        out['longitude'] = cls._number(details, 'longitude', -180, 180, required=True)
        address = cls._text(details, 'address', cls.MAX_ADDRESS)
        if address:
            out['address'] = address

        radius = details.get('broadcast_radius_km')
        out['broadcast_radius_km'] = default_radius_km if radius is None else \
            cls._number(details, 'broadcast_radius_km', cls.MIN_RADIUS_KM, max_radius_km)

        priority = details.get('priority') or 'medium'
        if priority not in ServiceRequest.PRIORITIES:
            raise DispatchValidationError(f"Invalid priority: {priority}", field='priority')
        out['priority'] = priority

        quotation = cls._number(details, 'quotation', cls.MIN_QUOTATION, cls.MAX_QUOTATION)
        if quotation is not None:
            out['quotation'] = quotation
        duration = cls.check_number(details.get('estimated_duration_min'), 'estimated_duration_min',
                                    cls.MIN_DURATION, cls.MAX_DURATION, integer=True)
        if duration is not None:
            out['estimated_duration_min'] = duration

        images = details.get('images') or []
        if not isinstance(images, list) or len(images) > cls.MAX_IMAGES:
            raise DispatchValidationError(f"images must be a list of at most {cls.MAX_IMAGES} URLs", field='images')
        for url in images:
            if not isinstance(url, str) or not IMAGE_URL_PATTERN.match(url):
                raise DispatchValidationError("Image URLs must be http(s) links to jpg, jpeg, png or gif files",
                                              field='images')
        out['images'] = images

        target = details.get('target_provider_id')
        if target is not None:
            if isinstance(target, bool) or not isinstance(target, int):
                raise DispatchValidationError("target_provider_id must be an integer", field='target_provider_id')
            out['target_provider_id'] = target

        return out

    @staticmethod
    def _choice(details, field, choices):
        value = details.get(field)
        if value not in choices:
            raise DispatchValidationError(f"{field} must be one of: {', '.join(choices)}", field=field)
        return value

    @staticmethod
    def _text(details, field, max_length, required=False):
        value = details.get(field)
        value = str(value).strip() if value is not None else ''
        if required and not value:
            raise DispatchValidationError(f"{field} is required", field=field)
        if len(value) > max_length:
            raise DispatchValidationError(f"{field} cannot exceed {max_length} characters", field=field)
        return value

    @classmethod
    def _number(cls, details, field, minimum, maximum, required=False):
        value = details.get(field)
        if value is None and required:
            raise DispatchValidationError(f"{field} is required", field=field)
        return cls.check_number(value, field, minimum, maximum)

    @staticmethod
    def check_number(value, field, minimum, maximum, integer=False):
        """
        Range-check a JSON number; None passes through.

        Raises:
            DispatchValidationError: If value is not a number (booleans and
            strings included), not an int when integer=True, or out of range
        """
        if value is None:
            return None
        kinds = int if integer else (int, float)
        if isinstance(value, bool) or not isinstance(value, kinds):
            kind = "a whole number" if integer else "a number"
            raise DispatchValidationError(f"{field} must be {kind}", field=field)
        if not minimum <= value <= maximum:
            raise DispatchValidationError(f"{field} must be between {minimum:g} and {maximum:g}", field=field)
        return value if integer else float(value)
