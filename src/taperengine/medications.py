# src/taperengine/medications.py
from __future__ import annotations

from typing import Dict, Union

from .errors import InvalidTaperInput
from .types import Medication, MedicationProfile

REFERENCE_MEDICATION = Medication.DIAZEPAM

# Approximate equivalents to 10 mg diazepam (Ashton Manual).
MEDICATION_PROFILES: Dict[Medication, MedicationProfile] = {
    # 0.5 mg Xanax ~= 10 mg Valium
    Medication.ALPRAZOLAM: MedicationProfile("Alprazolam", (6.0, 12.0), 20.0),
    # 0.5 mg Klonopin ~= 10 mg Valium
    Medication.CLONAZEPAM: MedicationProfile("Clonazepam", (18.0, 50.0), 20.0),
    Medication.DIAZEPAM: MedicationProfile("Diazepam", (20.0, 100.0), 1.0),
    # 1 mg Ativan ~= 10 mg Valium
    Medication.LORAZEPAM: MedicationProfile("Lorazepam", (10.0, 20.0), 10.0),
    # 20 mg Restoril ~= 10 mg Valium
    Medication.TEMAZEPAM: MedicationProfile("Temazepam", (8.0, 22.0), 0.5),
    # 25 mg Librium ~= 10 mg Valium
    Medication.CHLORDIAZEPOXIDE: MedicationProfile("Chlordiazepoxide", (5.0, 30.0), 0.4),
}

DISCLAIMER_TEXT = """\
This tool is for informational and educational purposes only.
It is NOT a medical device and does NOT provide medical advice.

Benzodiazepine withdrawal can be dangerous and potentially life-threatening if done too quickly.
The schedules generated here are mathematical approximations based on the Ashton Manual principles
but must be reviewed and supervised by a qualified healthcare professional.

Never stop taking benzodiazepines abruptly.
"""


def parse_medication(value: Union[Medication, str]) -> Medication:
    """
    Resolve a medication from an enum member, its display value
    ("Alprazolam (Xanax)"), member name ("ALPRAZOLAM", any case) or short
    name ("Alprazolam").
    """
    if isinstance(value, Medication):
        return value
    if not isinstance(value, str):
        raise InvalidTaperInput(f"medication must be a string (got {value!r}).")
    key = value.strip()
    for med in Medication:
        if key == med.value or key.upper() == med.name or key.lower() == MEDICATION_PROFILES[med].name.lower():
            return med
    raise InvalidTaperInput(f"Unknown medication '{value}'.")


def get_profile(medication: Union[Medication, str]) -> MedicationProfile:
    return MEDICATION_PROFILES[parse_medication(medication)]


def is_reference(medication: Union[Medication, str]) -> bool:
    return parse_medication(medication) is REFERENCE_MEDICATION
