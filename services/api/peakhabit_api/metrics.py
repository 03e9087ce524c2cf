from __future__ import annotations

from collections import Counter
from threading import Lock
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from peakhabit_api.models import CompletionRecord, Event, GuildRaid


_HTTP_LOCK = Lock()
_HTTP_REQUESTS: Counter[tuple[str, str, str]] = Counter()
_HTTP_LATENCY_BUCKETS_S: tuple[float, ...] = (
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
)
_HTTP_LATENCY_BINS: dict[tuple[str, str], list[int]] = {}
_HTTP_LATENCY_SUM_S: dict[tuple[str, str], float] = {}
_HTTP_LATENCY_COUNT: dict[tuple[str, str], int] = {}

_DOMAIN_EVENT_TYPES: tuple[str, ...] = (
    "reward_credited",
    "level_up",
    "streak_extended",
    "raid_completed",
    "raid_failed",
    "theme_unlocked",
    "treasury_donation",
    "guild_upgrade_purchased",
    "pet_level_up",
)


def observe_http_request(
    *,
    path: str,
    method: str,
    status: str,
    duration_ms: float | None = None,
) -> None:
    key = (str(path), str(method), str(status))
    latency_key = (str(path), str(method))
    dur_s = max(0.0, float(duration_ms) / 1000.0) if duration_ms is not None else None

    with _HTTP_LOCK:
        _HTTP_REQUESTS[key] += 1
        if dur_s is None:
            return
        bins = _HTTP_LATENCY_BINS.get(latency_key)
        if bins is None:
            bins = [0 for _ in range(len(_HTTP_LATENCY_BUCKETS_S) + 1)]
            _HTTP_LATENCY_BINS[latency_key] = bins

        idx = len(_HTTP_LATENCY_BUCKETS_S)
        for i, edge in enumerate(_HTTP_LATENCY_BUCKETS_S):
            if dur_s <= float(edge):
                idx = i
                break
        bins[idx] += 1
        _HTTP_LATENCY_SUM_S[latency_key] = _HTTP_LATENCY_SUM_S.get(latency_key, 0.0) + dur_s
        _HTTP_LATENCY_COUNT[latency_key] = _HTTP_LATENCY_COUNT.get(latency_key, 0) + 1


def reset_http_metrics() -> None:
    with _HTTP_LOCK:
        _HTTP_REQUESTS.clear()
        _HTTP_LATENCY_BINS.clear()
        _HTTP_LATENCY_SUM_S.clear()
        _HTTP_LATENCY_COUNT.clear()


def _snapshot_http() -> list[tuple[tuple[str, str, str], int]]:
    with _HTTP_LOCK:
        return list(_HTTP_REQUESTS.items())


def _snapshot_latency() -> list[tuple[tuple[str, str], list[int], float, int]]:
    with _HTTP_LOCK:
        return [
            (key, list(bins), float(_HTTP_LATENCY_SUM_S.get(key, 0.0)), int(_HTTP_LATENCY_COUNT.get(key, 0)))
            for key, bins in _HTTP_LATENCY_BINS.items()
        ]


def _fmt_labels(**labels: str) -> str:
    def esc(value: str) -> str:
        return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')

    parts = [f'{k}="{esc(v)}"' for k, v in labels.items()]
    return "{" + ",".join(parts) + "}" if parts else ""


def _render_counter(
    *,
    name: str,
    help_text: str,
    rows: Iterable[tuple[dict[str, str], int]],
) -> str:
    lines: list[str] = [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} counter",
    ]
    for labels, value in rows:
        lines.append(f"{name}{_fmt_labels(**labels)} {int(value)}")
    return "\n".join(lines) + "\n"


def _render_histogram(
    *,
    name: str,
    help_text: str,
    buckets: Iterable[float],
    rows: Iterable[tuple[dict[str, str], list[int], float, int]],
) -> str:
    lines: list[str] = [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} histogram",
    ]
    edges = [float(b) for b in buckets]
    for labels, bin_counts, sum_s, count in rows:
        cumulative = 0
        for i, edge in enumerate(edges):
            cumulative += int(bin_counts[i]) if i < len(bin_counts) else 0
            lines.append(f"{name}_bucket{_fmt_labels(**labels, le=str(edge))} {cumulative}")
        if len(bin_counts) > len(edges):
            cumulative += int(bin_counts[len(edges)])
        lines.append(f"{name}_bucket{_fmt_labels(**labels, le='+Inf')} {cumulative}")
        lines.append(f"{name}_sum{_fmt_labels(**labels)} {float(sum_s):.6f}")
        lines.append(f"{name}_count{_fmt_labels(**labels)} {int(count)}")
    return "\n".join(lines) + "\n"


def render_prometheus_metrics(*, db: Session) -> str:
    out: list[str] = []

    out.append(
        _render_counter(
            name="peakhabit_http_requests_total",
            help_text="Total HTTP requests processed by this API process.",
            rows=[
                ({"path": path, "method": method, "status": status}, count)
                for (path, method, status), count in sorted(_snapshot_http())
            ],
        )
    )
    out.append(
        _render_histogram(
            name="peakhabit_http_request_duration_seconds",
            help_text="HTTP request duration (seconds) by route template and method (in-process).",
            buckets=_HTTP_LATENCY_BUCKETS_S,
            rows=[
                ({"path": path, "method": method}, bins, sum_s, count)
                for ((path, method), bins, sum_s, count) in sorted(_snapshot_latency())
            ],
        )
    )

    completion_rows = db.execute(
        select(CompletionRecord.source_type, func.count(CompletionRecord.id)).group_by(
            CompletionRecord.source_type
        )
    ).all()
    out.append(
        _render_counter(
            name="peakhabit_completions_total",
            help_text="Accepted completions by source type.",
            rows=[({"source_type": str(st)}, int(cnt or 0)) for (st, cnt) in completion_rows],
        )
    )

    raid_rows = db.execute(
        select(GuildRaid.status, func.count(GuildRaid.id)).group_by(GuildRaid.status)
    ).all()
    out.append(
        _render_counter(
            name="peakhabit_raids_total",
            help_text="Guild raids by status.",
            rows=[({"status": str(s)}, int(cnt or 0)) for (s, cnt) in raid_rows],
        )
    )

    ev_rows = db.execute(
        select(Event.type, func.count(Event.id))
        .where(Event.type.in_(_DOMAIN_EVENT_TYPES))
        .group_by(Event.type)
    ).all()
    out.append(
        _render_counter(
            name="peakhabit_domain_events_total",
            help_text="Persisted domain events by type.",
            rows=[({"type": str(t)}, int(cnt or 0)) for (t, cnt) in ev_rows],
        )
    )

    return "\n".join(out)
