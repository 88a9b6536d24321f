"""virtual_patient.tools.blood_pressure

Manual blood pressure reading taken by the student on the patient.

Every call draws a fresh reading; repeated measurements are expected to vary.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any, Dict, Optional

NAME = "take_blood_pressure"

SYSTOLIC_RANGE = (140, 150)
DIASTOLIC_RANGE = (70, 80)

DEFINITION: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": NAME,
        "description": (
            "Allows the pharmacist to take a manual blood pressure reading on you. After calling this tool, "
            "display the blood pressure reading in *italics*, describing what happened to you from your "
            "perspective in *italics*."
        ),
        "parameters": {"type": "object", "properties": {}},
    },
}


def take_blood_pressure(rng: Optional[random.Random] = None) -> Dict[str, Any]:
    r = rng or random
    systolic = r.randint(*SYSTOLIC_RANGE)
    diastolic = r.randint(*DIASTOLIC_RANGE)
    return {
        "systolic": systolic,
        "diastolic": diastolic,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "reading": f"{systolic}/{diastolic} mmHg",
    }
