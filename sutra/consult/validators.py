"""
Data validators for patient profile information.

DOB parsing and range, age calculation, gender / blood-type normalisation.
"""

from __future__ import annotations

from datetime import date, datetime

BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "unknown")
GENDERS = ("male", "female", "other", "prefer_not_to_say")

_DOB_FORMATS = ["%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"]


def parse_dob(dob_str: str) -> date | None:
    """Parse a date of birth.  Accepts YYYY-MM-DD, DD/MM/YYYY, DD-MM-YYYY."""
    value = (dob_str or "").strip()
    # Tolerate full ISO timestamps
    if "T" in value:
        value = value.split("T", 1)[0]
    for fmt in _DOB_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def validate_dob(dob_str: str) -> bool:
    """
    Validate a date of birth string.

    Must be a parseable date, in the past, and within 120 years of today.
    """
    parsed = parse_dob(dob_str)
    if parsed is None:
        return False

    today = date.today()
    if parsed >= today:
        return False

    age_years = (today - parsed).days / 365.25
    if age_years > 120:
        return False

    return True


def calculate_age(dob_str: str, today: date | None = None) -> int:
    """Whole years between the date of birth and today.  0 when unparseable."""
    born = parse_dob(dob_str)
    if born is None:
        return 0
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return max(age, 0)


def normalise_gender(value: str | None) -> str | None:
    """'Prefer not to say' → 'prefer_not_to_say'.  Unknown values → None."""
    if not value:
        return None
    gender = value.strip().lower().replace(" ", "_")
    return gender if gender in GENDERS else None


def normalise_blood_type(value: str | None) -> str | None:
    if not value:
        return None
    blood = value.strip().upper()
    if blood == "UNKNOWN":
        return "unknown"
    return blood if blood in BLOOD_TYPES else None
