from __future__ import annotations

import os
from typing import Any, Literal

import attrs

HintStatus = Literal["pass", "fail", "skip"]

NICE_LEVEL = -20


@attrs.define(frozen=True, slots=True)
class SchedHint:
    name: str
    status: HintStatus
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status, "details": self.details}


def set_niceness(start: int = NICE_LEVEL) -> SchedHint:
    """Raise process priority as far as permitted, trying `start`, `start + 1`, ... up to 0.

    "pass" once any level is accepted; `details` carries the level reached.
    """
    for level in range(start, 1):
        try:
            current = os.nice(level)
        except OSError:
            continue
        return SchedHint(name="niceness", status="pass", details=f"niceness level = {current}")
    return SchedHint(name="niceness", status="fail", details="os.nice() refused every level")


def set_fifo_scheduling() -> SchedHint:
    if not hasattr(os, "sched_setscheduler"):
        return SchedHint(name="fifo_scheduling", status="skip", details="sched_setscheduler unavailable on this platform")
    policy = os.SCHED_FIFO
    try:
        os.sched_setscheduler(0, policy, os.sched_param(os.sched_get_priority_max(policy)))
    except OSError as e:
        return SchedHint(name="fifo_scheduling", status="fail", details=str(e))
    return SchedHint(name="fifo_scheduling", status="pass")


def set_affinity(cpus: range) -> SchedHint:
    if not hasattr(os, "sched_setaffinity"):
        return SchedHint(name="affinity", status="skip", details="sched_setaffinity unavailable on this platform")
    try:
        os.sched_setaffinity(0, set(cpus))
    except (OSError, ValueError) as e:
        return SchedHint(name="affinity", status="fail", details=f"cpus={list(cpus)}: {e}")
    return SchedHint(name="affinity", status="pass", details=f"cpus={list(cpus)}")


def apply_all(cpus: range) -> list[SchedHint]:
    """Apply every scheduling hint; failures are recorded, never raised."""
    return [set_niceness(), set_fifo_scheduling(), set_affinity(cpus)]
