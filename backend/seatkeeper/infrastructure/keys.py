"""
Lock-store key layout.

Per-seat, per-client and per-show keys all carry a TTL. The admission queue
structures (delayed set, ready set, job sequence) are long-lived; the sets
only hold job ids and drain as jobs are claimed, and each job hash expires
on its own.
"""

SYSTEM_LOAD = "system_load"
SWEEPER_LOCK = "sweeper:lock"

ADMISSION_JOB_PREFIX = "admission:job:"
ADMISSION_DELAYED = "admission:queue:delayed"
ADMISSION_READY = "admission:queue:ready"
ADMISSION_JOB_SEQ = "admission:queue:seq"


def seat_lock(show_id: int, seat_id: int) -> str:
    return f"seat_lock:{show_id}:{seat_id}"


def show_demand(show_id) -> str:
    return f"show_demand:{show_id}"


def queue_marker(client_id: str) -> str:
    return f"waiting_room:{client_id}"


def admitted_token(token: str) -> str:
    return f"can_proceed:{token}"


def admission_job(job_id: str) -> str:
    return f"{ADMISSION_JOB_PREFIX}{job_id}"


def rate_limit(client_id: str) -> str:
    return f"rate_limit:{client_id}"
