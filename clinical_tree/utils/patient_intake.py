"""
Patient intake - Validate patient form data into a PatientContext

Accepted input (dict, e.g. JSON body of the web surface):
    {"gender": "male" | "female",
     "age": 1-120,
     "weight": 1-300 (kg),
     "chronic_diseases": "free text"}

The camel-case key "chronicDiseases" is accepted as an alias.
Numbers may arrive as strings ("42"); they must still be whole numbers.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from clinical_tree.contracts import NOT_SPECIFIED, PatientContext

logger = logging.getLogger(__name__)

VALID_GENDERS = ('male', 'female')
AGE_RANGE = (1, 120)
WEIGHT_RANGE = (1, 300)


def validate_patient_data(data: Dict[str, Any]) -> Tuple[Optional[PatientContext], List[str]]:
    """
    Validate intake form data.

    Args:
        data: Raw form fields

    Returns:
        (PatientContext, []) when valid, (None, errors) otherwise

    Examples:
        >>> validate_patient_data({'gender': 'female', 'age': '42', 'weight': 70})[0].age
        42
    """
    if not isinstance(data, dict):
        return None, ["Patient data must be an object"]

    errors = []

    gender = data.get('gender')
    if gender not in VALID_GENDERS:
        errors.append(f"gender must be one of {list(VALID_GENDERS)}")

    age = _parse_whole_number(data.get('age'))
    if age is None or not AGE_RANGE[0] <= age <= AGE_RANGE[1]:
        errors.append(f"age must be a whole number between {AGE_RANGE[0]} and {AGE_RANGE[1]}")

    weight = _parse_whole_number(data.get('weight'))
    if weight is None or not WEIGHT_RANGE[0] <= weight <= WEIGHT_RANGE[1]:
        errors.append(f"weight must be a whole number between {WEIGHT_RANGE[0]} and {WEIGHT_RANGE[1]} kg")

    chronic_diseases = data.get('chronic_diseases', data.get('chronicDiseases', ""))
    if chronic_diseases is None:
        chronic_diseases = ""
    if not isinstance(chronic_diseases, str):
        errors.append("chronic_diseases must be text")

    if errors:
        logger.debug(f"Patient data rejected: {errors}")
        return None, errors

    return PatientContext(
        gender=gender,
        age=age,
        weight=weight,
        chronic_diseases=chronic_diseases.strip(),
    ), []


def skipped_patient() -> PatientContext:
    """Context for a skipped intake form; the report omits patient data."""
    return PatientContext(gender=NOT_SPECIFIED)


def _parse_whole_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
