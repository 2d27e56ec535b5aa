"""In-process counters for the occurrence workflow."""
from __future__ import annotations

import time
from collections import defaultdict
from functools import wraps
from typing import Dict


class Metrics:
    def __init__(self):
        self.reset()

    def reset(self):
        self.counters = {
            "occurrences_created": 0,
            "occurrences_deleted": 0,
            "notifications_sent": 0,
            "notifications_failed": 0,
            "rewrite_fallbacks": 0,
        }
        self.transitions = defaultdict(int)
        self.refusals = defaultdict(int)
        self.durations = {
            "rewrite_latency_ms": [],
        }

    def record_created(self):
        self.counters["occurrences_created"] += 1

    def record_deleted(self):
        self.counters["occurrences_deleted"] += 1

    def record_transition(self, action_type: str):
        self.transitions[action_type] += 1

    def record_refusal(self, code: str):
        self.refusals[code] += 1

    def record_notification(self, sent: bool):
        key = "notifications_sent" if sent else "notifications_failed"
        self.counters[key] += 1

    def record_rewrite_fallback(self):
        self.counters["rewrite_fallbacks"] += 1

    def record_latency(self, ms: float):
        self.durations["rewrite_latency_ms"].append(ms)

    def snapshot(self) -> Dict[str, object]:
        avg_latency = 0.0
        latencies = self.durations.get("rewrite_latency_ms", [])
        if latencies:
            avg_latency = sum(latencies) / len(latencies)
        return {
            "counters": dict(self.counters),
            "transitions": dict(self.transitions),
            "refusals": dict(self.refusals),
            "average_rewrite_latency_ms": round(avg_latency, 2),
        }


metrics = Metrics()


def timed(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        start = time.time()
        try:
            return fn(*args, **kwargs)
        finally:
            metrics.record_latency((time.time() - start) * 1000)

    return wrapper
