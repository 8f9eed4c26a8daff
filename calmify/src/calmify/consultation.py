"""
Consultation Directory

Mock directory of stress and mental-health doctors with simple string
filters, plus crisis hotline details.
"""

from typing import List, Optional

from calmify.user_state import Doctor

MOCK_DOCTORS: List[Doctor] = [
    Doctor(
        id="1",
        name="Dr. Sarah Chen",
        specialty="Clinical Psychologist",
        rating=4.9,
        image="https://images.unsplash.com/photo-1559839734-2b71ea197ec2?auto=format&fit=crop&q=80&w=300&h=300",
        available=True,
        location="New York, NY",
    ),
    Doctor(
        id="2",
        name="Dr. James Wilson",
        specialty="Stress Management Expert",
        rating=4.8,
        image="https://images.unsplash.com/photo-1612349317150-e413f6a5b16d?auto=format&fit=crop&q=80&w=300&h=300",
        available=True,
        location="Brooklyn, NY",
    ),
    Doctor(
        id="3",
        name="Dr. Emily Rodriguez",
        specialty="Psychiatrist",
        rating=5.0,
        image="https://images.unsplash.com/photo-1594824476967-48c8b964273f?auto=format&fit=crop&q=80&w=300&h=300",
        available=False,
        location="San Francisco, CA",
    ),
]

CRISIS_HOTLINE = {
    "name": "Crisis Hotline",
    "description": "Our crisis counselors are available 24/7.",
    "phone": "988",
    "emergency": "For emergencies, please call 911.",
}


def _matches(value: str, term: Optional[str]) -> bool:
    return not term or term.strip().lower() in value.lower()


def _near(doctor: Doctor, near: Optional[str]) -> bool:
    """A doctor is nearby if any comma-separated part of the location matches."""
    if not near or not near.strip():
        return True
    parts = [p.strip().lower() for p in near.split(",") if p.strip()]
    location = doctor.location.lower()
    return any(part in location for part in parts)


def search_doctors(
    query: Optional[str] = None,
    specialty: Optional[str] = None,
    available_only: bool = False,
    near: Optional[str] = None,
    doctors: Optional[List[Doctor]] = None
) -> List[Doctor]:
    """
    Filter the directory.

    Args:
        query: Substring matched against name or specialty
        specialty: Substring matched against specialty
        available_only: Only doctors available now
        near: User location ("City, ST"); matches on city or state
        doctors: Directory to search (defaults to MOCK_DOCTORS)

    Returns:
        Matching doctors, best rated first
    """
    pool = MOCK_DOCTORS if doctors is None else doctors
    results = [
        d for d in pool
        if (_matches(d.name, query) or _matches(d.specialty, query))
        and _matches(d.specialty, specialty)
        and (d.available or not available_only)
        and _near(d, near)
    ]
    return sorted(results, key=lambda d: d.rating, reverse=True)


def get_doctor(doctor_id: str) -> Doctor:
    for doctor in MOCK_DOCTORS:
        if doctor.id == doctor_id:
            return doctor
    raise KeyError(doctor_id)
