from datetime import datetime, timezone
from typing import Any, Dict


def build_trace_entry(
    model_name: str,
    prompt_id: str,
    raw_response: str,
    parsed: bool,
) -> Dict[str, Any]:
    return {
        "model_name": model_name,
        "prompt_id": prompt_id,
        "raw_response": raw_response,
        "parsed": parsed,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
