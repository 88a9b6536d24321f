"""virtual_patient.state.session_keys

Centralized Streamlit session_state keys to prevent typos.
"""

SCENARIO_SESSION = "scenario_session"

LAST_EVALUATION = "last_evaluation"
COMPLETION_RESULT = "completion_result"
CONFIRM_COMPLETE = "confirm_complete"
