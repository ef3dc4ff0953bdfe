"""In-process metrics collector with Prometheus text exposition."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
import time
from typing import Dict, Tuple


_lock = Lock()
_started_at = time.time()

_http_requests_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_http_request_duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
_http_request_duration_count: Dict[Tuple[str, str], int] = defaultdict(int)
_queue_items_created_total: Dict[str, int] = defaultdict(int)
_queue_transitions_total: Dict[Tuple[str, str], int] = defaultdict(int)
_workflow_phase_total: Dict[Tuple[str, str], int] = defaultdict(int)
_publish_results_total: Dict[Tuple[str, str], int] = defaultdict(int)
_progress_events_dropped_total: Dict[str, int] = defaultdict(int)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _normalize_label(value: str, *, fallback: str = "unknown") -> str:
    normalized = (value or "").strip()
    return normalized or fallback


def record_http_request(*, method: str, path: str, status_code: int, duration_seconds: float) -> None:
    status = str(status_code)
    method_label = method.upper()
    path_label = path or "unknown"
    duration = max(duration_seconds, 0.0)

    with _lock:
        _http_requests_total[(method_label, path_label, status)] += 1
        _http_request_duration_sum[(method_label, path_label)] += duration
        _http_request_duration_count[(method_label, path_label)] += 1


def record_queue_item_created(*, org_id: str, count: int = 1) -> None:
    if count <= 0:
        return
    with _lock:
        _queue_items_created_total[_normalize_label(org_id)] += int(count)


def record_queue_transition(*, from_status: str, to_status: str) -> None:
    with _lock:
        _queue_transitions_total[(_normalize_label(from_status), _normalize_label(to_status))] += 1


def record_workflow_phase(*, phase: str, outcome: str) -> None:
    with _lock:
        _workflow_phase_total[(_normalize_label(phase), _normalize_label(outcome))] += 1


def record_publish_result(*, platform: str, status: str) -> None:
    with _lock:
        _publish_results_total[(_normalize_label(platform), _normalize_label(status))] += 1


def record_progress_events_dropped(*, queue_id: str, count: int = 1) -> None:
    if count <= 0:
        return
    with _lock:
        _progress_events_dropped_total[_normalize_label(queue_id)] += int(count)


def snapshot_counters() -> Dict[str, Dict[object, float]]:
    with _lock:
        return {
            "queue_items_created_total": dict(_queue_items_created_total),
            "queue_transitions_total": dict(_queue_transitions_total),
            "workflow_phase_total": dict(_workflow_phase_total),
            "publish_results_total": dict(_publish_results_total),
            "progress_events_dropped_total": dict(_progress_events_dropped_total),
        }


def render_prometheus_metrics(*, app_name: str, app_version: str, env: str) -> str:
    uptime = max(time.time() - _started_at, 0.0)

    with _lock:
        http_total = dict(_http_requests_total)
        duration_sum = dict(_http_request_duration_sum)
        duration_count = dict(_http_request_duration_count)
        created_total = dict(_queue_items_created_total)
        transitions_total = dict(_queue_transitions_total)
        phase_total = dict(_workflow_phase_total)
        publish_total = dict(_publish_results_total)
        dropped_total = dict(_progress_events_dropped_total)

    lines = [
        "# HELP content_queue_build_info Build metadata.",
        "# TYPE content_queue_build_info gauge",
        (
            f'content_queue_build_info{{app_name="{_escape_label(app_name)}",'
            f'version="{_escape_label(app_version)}",env="{_escape_label(env)}"}} 1'
        ),
        "# HELP content_queue_process_uptime_seconds Process uptime in seconds.",
        "# TYPE content_queue_process_uptime_seconds gauge",
        f"content_queue_process_uptime_seconds {uptime:.6f}",
        "# HELP content_queue_http_requests_total Total HTTP requests.",
        "# TYPE content_queue_http_requests_total counter",
    ]

    for (method, path, status), value in sorted(http_total.items()):
        lines.append(
            (
                f'content_queue_http_requests_total{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}",status="{_escape_label(status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP content_queue_http_request_duration_seconds Request duration summary.",
            "# TYPE content_queue_http_request_duration_seconds summary",
        ]
    )
    for (method, path), value in sorted(duration_sum.items()):
        lines.append(
            (
                f'content_queue_http_request_duration_seconds_sum{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value:.6f}'
            )
        )
    for (method, path), value in sorted(duration_count.items()):
        lines.append(
            (
                f'content_queue_http_request_duration_seconds_count{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP content_queue_items_created_total Queue items created per org.",
            "# TYPE content_queue_items_created_total counter",
        ]
    )
    for org_id, value in sorted(created_total.items()):
        lines.append(f'content_queue_items_created_total{{org_id="{_escape_label(org_id)}"}} {value}')

    lines.extend(
        [
            "# HELP content_queue_transitions_total Committed status transitions.",
            "# TYPE content_queue_transitions_total counter",
        ]
    )
    for (from_status, to_status), value in sorted(transitions_total.items()):
        lines.append(
            (
                f'content_queue_transitions_total{{from_status="{_escape_label(from_status)}",'
                f'to_status="{_escape_label(to_status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP content_queue_workflow_phase_total Workflow phase outcomes.",
            "# TYPE content_queue_workflow_phase_total counter",
        ]
    )
    for (phase, outcome), value in sorted(phase_total.items()):
        lines.append(
            (
                f'content_queue_workflow_phase_total{{phase="{_escape_label(phase)}",'
                f'outcome="{_escape_label(outcome)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP content_queue_publish_results_total Per-platform publish outcomes.",
            "# TYPE content_queue_publish_results_total counter",
        ]
    )
    for (platform, status), value in sorted(publish_total.items()):
        lines.append(
            (
                f'content_queue_publish_results_total{{platform="{_escape_label(platform)}",'
                f'status="{_escape_label(status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP content_queue_progress_events_dropped_total Events dropped by slow subscribers.",
            "# TYPE content_queue_progress_events_dropped_total counter",
        ]
    )
    for queue_id, value in sorted(dropped_total.items()):
        lines.append(
            f'content_queue_progress_events_dropped_total{{queue_id="{_escape_label(queue_id)}"}} {value}'
        )

    lines.append("")
    return "\n".join(lines)


def reset_metrics_for_tests() -> None:
    global _started_at
    with _lock:
        _http_requests_total.clear()
        _http_request_duration_sum.clear()
        _http_request_duration_count.clear()
        _queue_items_created_total.clear()
        _queue_transitions_total.clear()
        _workflow_phase_total.clear()
        _publish_results_total.clear()
        _progress_events_dropped_total.clear()
    _started_at = time.time()
