"""virtual_patient.tools.log_book

The patient's home blood pressure log book.

The readings are fixed so the story stays consistent however often the patient
pulls the book out; only the dates follow the calendar.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

NAME = "get_my_log_book"

# (reading, time of day), newest first; entry N was taken N days ago.
HOME_READINGS = (
    ("142/85", "9:15 AM"),
    ("148/90", "11:45 AM"),
    ("144/87", "8:30 AM"),
    ("150/92", "2:20 PM"),
    ("146/88", "4:10 PM"),
    ("143/86", "10:45 AM"),
    ("149/91", "3:30 PM"),
    ("145/89", "12:15 PM"),
    ("147/90", "9:00 AM"),
    ("141/84", "4:45 PM"),
)

DEFINITION: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": NAME,
        "description": (
            "Allows you to pull out your home blood pressure logs and readings from your log book. When you want "
            "to show your blood pressure history to the pharmacist, call this tool to grab your log book. First "
            "describe taking out your log book and flipping through the pages, then display the results in a "
            "markdown table with 3 columns: Date, Time, Blood Pressure."
        ),
        "parameters": {"type": "object", "properties": {}},
    },
}


def get_my_log_book(today: Optional[date] = None) -> List[Dict[str, Any]]:
    day0 = today or date.today()
    return [
        {
            "bp": bp,
            "date": (day0 - timedelta(days=i)).isoformat(),
            "time": time_of_day,
            "reading": f"{bp} mmHg",
        }
        for i, (bp, time_of_day) in enumerate(HOME_READINGS)
    ]
