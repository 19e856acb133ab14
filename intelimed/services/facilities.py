"""
Mock healthcare facility search.

There is no places provider behind this; nearby results are random points
scattered around the caller's coordinates so the map view has something to
show. Pass an explicit random.Random for reproducible output.
"""
from __future__ import annotations

import math
import random
import time
from typing import Any, Dict, List, Optional

FACILITY_TYPES = ["hospital", "clinic", "emergency", "pharmacy", "diagnostic"]
KM_PER_DEGREE_LAT = 111.0

FACILITY_NAMES: Dict[str, List[str]] = {
    "hospital": ["City General Hospital", "Metro Medical Center", "Regional Health Hospital", "Community Hospital", "Medical Center"],
    "clinic": ["Family Health Clinic", "Quick Care Clinic", "Primary Care Center", "Health Plus Clinic", "Wellness Clinic"],
    "emergency": ["Emergency Medical Center", "Urgent Care", "Emergency Hospital", "Crisis Care Center", "Emergency Services"],
    "pharmacy": ["Health Pharmacy", "MedPlus Pharmacy", "Care Pharmacy", "Wellness Pharmacy", "Quick Pharmacy"],
    "diagnostic": ["Diagnostic Center", "Lab Services", "Medical Diagnostics", "Health Lab", "Scan Center"],
}

STATIC_FACILITIES: List[Dict[str, Any]] = [
    {
        "id": "1",
        "name": "City General Hospital",
        "type": "hospital",
        "address": "123 Main Street, Central District",
        "phone": "+91-11-2345-6789",
        "distance": "2.3 km",
        "rating": 4.5,
        "available24h": True,
        "coordinates": {"lat": 28.6139, "lng": 77.2090},
    },
    {
        "id": "2",
        "name": "Heart Care Clinic",
        "type": "clinic",
        "address": "456 Healthcare Avenue, Medical Plaza",
        "phone": "+91-11-9876-5432",
        "distance": "1.8 km",
        "rating": 4.2,
        "available24h": False,
        "coordinates": {"lat": 28.6129, "lng": 77.2080},
    },
    {
        "id": "3",
        "name": "Emergency Medical Center",
        "type": "emergency",
        "address": "789 Emergency Lane, Quick Response Zone",
        "phone": "+91-11-1111-0000",
        "distance": "0.9 km",
        "rating": 4.8,
        "available24h": True,
        "coordinates": {"lat": 28.6149, "lng": 77.2100},
    },
]


def list_facilities(facility_type: Optional[str] = None) -> List[Dict[str, Any]]:
    if not facility_type or facility_type == "all":
        return list(STATIC_FACILITIES)
    return [f for f in STATIC_FACILITIES if f["type"] == facility_type]


def facility_name(facility_type: str, rng: random.Random) -> str:
    # Unknown categories borrow hospital names
    return rng.choice(FACILITY_NAMES.get(facility_type) or FACILITY_NAMES["hospital"])


def generate_nearby_facilities(
    lat: float,
    lng: float,
    radius_km: float,
    facility_type: str = "all",
    rng: Optional[random.Random] = None,
) -> List[Dict[str, Any]]:
    """8-15 facilities at uniformly random bearing and distance within radius_km, nearest first."""
    rng = rng or random.Random()
    stamp = int(time.time() * 1000)
    lng_scale = max(math.cos(math.radians(lat)), 1e-6)

    facilities: List[Dict[str, Any]] = []
    for i in range(rng.randint(8, 15)):
        angle = rng.random() * 2 * math.pi
        distance = rng.random() * radius_km
        delta_lat = (distance / KM_PER_DEGREE_LAT) * math.cos(angle)
        delta_lng = (distance / (KM_PER_DEGREE_LAT * lng_scale)) * math.sin(angle)
        category = rng.choice(FACILITY_TYPES) if facility_type == "all" else facility_type

        facilities.append({
            "place_id": f"facility_{i}_{stamp}",
            "name": facility_name(category, rng),
            "category": category,
            "vicinity": f"Street {i + 1}, Medical District",
            "address_line1": f"{rng.randint(1, 999)} Healthcare Ave",
            "geometry": {"location": {"lat": lat + delta_lat, "lng": lng + delta_lng}},
            "contact": {"phone": f"+91-11-{rng.randint(1000, 9999)}-{rng.randint(1000, 9999)}"},
            "distance": f"{distance:.1f}",
            "opening_hours": "Open 24 hours" if rng.random() > 0.3 else "Mon-Fri 9AM-6PM",
            "rating": f"{3.5 + rng.random() * 1.5:.1f}",
        })

    facilities.sort(key=lambda f: float(f["distance"]))
    return facilities


def facility_details(place_id: str) -> Dict[str, Any]:
    return {
        "place_id": place_id,
        "name": "Sample Healthcare Facility",
        "formatted_address": "123 Healthcare Street, Medical District, City 12345",
        "formatted_phone_number": "+91-11-2345-6789",
        "website": "https://example-hospital.com",
        "rating": 4.3,
        "user_ratings_total": 127,
        "opening_hours": {
            "weekday_text": [
                "Monday: 8:00 AM – 8:00 PM",
                "Tuesday: 8:00 AM – 8:00 PM",
                "Wednesday: 8:00 AM – 8:00 PM",
                "Thursday: 8:00 AM – 8:00 PM",
                "Friday: 8:00 AM – 8:00 PM",
                "Saturday: 9:00 AM – 6:00 PM",
                "Sunday: 10:00 AM – 4:00 PM",
            ]
        },
        "photos": [{"photo_reference": "sample1"}, {"photo_reference": "sample2"}],
    }
