# Overview: Replacement projections; mines install/uninstall history to forecast the next change of each installed unit.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..actors import normalize_client
from ..models import UnitRecord, STATE_INSTALLED, STATE_UNINSTALLED
from ..time_utils import format_ledger_date, parse_ledger_date
from . import ledger_service
from .ledger_service import store_guard

"""
Projection rules

- A sample is one UNINSTALLED unit with both install and uninstall dates;
  its duration is whole calendar days between them. Durations <= 0 are data
  entry anomalies and are dropped.
- Samples are grouped by (client, reference). The cohort mean is rounded
  half-up to whole days so repeated runs on the same data agree.
- Each INSTALLED unit is forecast at install date + cohort mean, or the
  configured default when its cohort has no history yet.
- Rows whose dates cannot be parsed are skipped (and logged), both as
  samples and as forecasts. So are forecasts that would land past year 9999.
- Read-only: nothing here writes to the ledger.
"""

UNASSIGNED_CLIENT = "UNASSIGNED"


def round_half_up(value: Decimal | float | int) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def mean_days(durations: list[int]) -> int:
    if not durations:
        return 0
    return round_half_up(Decimal(sum(durations)) / Decimal(len(durations)))


@dataclass(frozen=True)
class Cohort:
    client: str
    reference: str
    mean_days: int
    samples: int

    def to_dict(self) -> dict:
        return {
            "client": self.client,
            "reference": self.reference,
            "mean_duration_days": self.mean_days,
            "samples": self.samples,
        }


@dataclass(frozen=True)
class ForecastEntry:
    unit_id: int
    client: str
    reference: str
    serial: str
    plate: str
    installed_on: date
    mean_duration_days: int
    estimated_replacement_on: date
    has_history: bool

    def to_dict(self) -> dict:
        return {
            "id": self.unit_id,
            "client": self.client,
            "reference": self.reference,
            "serial": self.serial,
            "plate": self.plate,
            "installed_on": format_ledger_date(self.installed_on),
            "mean_duration_days": self.mean_duration_days,
            "estimated_replacement_on": format_ledger_date(self.estimated_replacement_on),
            "has_history": self.has_history,
        }


@dataclass
class ProjectionResult:
    forecast: list[ForecastEntry] = field(default_factory=list)
    cohorts: list[Cohort] = field(default_factory=list)
    total_samples: int = 0
    overall_mean_days: int = 0

    @property
    def forecast_count(self) -> int:
        return len(self.forecast)

    def stats(self) -> dict:
        return {
            "total_samples": self.total_samples,
            "overall_mean_days": self.overall_mean_days,
            "forecast_count": self.forecast_count,
        }

    def to_dict(self) -> dict:
        return {
            "forecast": [f.to_dict() for f in self.forecast],
            "cohorts": [c.to_dict() for c in self.cohorts],
            "stats": self.stats(),
        }


def _cohort_key(record: UnitRecord) -> tuple[str, str]:
    return record.client_key or UNASSIGNED_CLIENT, record.reference


def _client_label(record: UnitRecord) -> str:
    return record.client or UNASSIGNED_CLIENT


def _parse_or_skip(record: UnitRecord, column: str) -> tuple[date | None, bool]:
    """(parsed date, ok). ok=False means the value was present but malformed."""
    try:
        return parse_ledger_date(getattr(record, column)), True
    except ValueError:
        current_app.logger.warning(
            "Skipping unit %s in projections: unparsable %s %r",
            record.unit_key, column, getattr(record, column),
        )
        return None, False


def collect_samples(records: list[UnitRecord]) -> dict[tuple[str, str], list[int]]:
    """Duration samples (days) per (client_key, reference) from completed units."""
    samples: dict[tuple[str, str], list[int]] = {}
    for record in records:
        if record.state != STATE_UNINSTALLED:
            continue
        if not record.date_installed or not record.date_uninstalled:
            continue

        installed_on, ok_installed = _parse_or_skip(record, "date_installed")
        if not ok_installed:
            continue
        uninstalled_on, ok_uninstalled = _parse_or_skip(record, "date_uninstalled")
        if not ok_uninstalled or installed_on is None or uninstalled_on is None:
            continue

        days = (uninstalled_on - installed_on).days
        if days <= 0:
            continue
        samples.setdefault(_cohort_key(record), []).append(days)
    return samples


def build_forecast(
    records: list[UnitRecord],
    cohort_means: dict[tuple[str, str], int],
    default_days: int,
) -> list[ForecastEntry]:
    forecast: list[ForecastEntry] = []
    for record in records:
        if record.state != STATE_INSTALLED:
            continue

        installed_on, ok = _parse_or_skip(record, "date_installed")
        if not ok or installed_on is None:
            continue

        key = _cohort_key(record)
        has_history = key in cohort_means
        days = cohort_means[key] if has_history else default_days

        try:
            estimated = installed_on + timedelta(days=days)
        except OverflowError:
            current_app.logger.warning(
                "Skipping unit %s in projections: replacement date past %r is out of range",
                record.unit_key, record.date_installed,
            )
            continue

        forecast.append(ForecastEntry(
            unit_id=record.id,
            client=_client_label(record),
            reference=record.reference,
            serial=record.serial,
            plate=record.plate,
            installed_on=installed_on,
            mean_duration_days=days,
            estimated_replacement_on=estimated,
            has_history=has_history,
        ))

    forecast.sort(key=lambda f: (f.estimated_replacement_on, f.unit_id))
    return forecast


def project(client_filter: str | None = None, *, default_days: int | None = None) -> ProjectionResult:
    """
    Forecast the next replacement of every installed unit.

    Args:
        client_filter: limit to one client (case-insensitive exact match)
        default_days: lifespan for cohorts without history
            (DEFAULT_REPLACEMENT_DAYS when omitted)

    Raises:
        StoreUnavailableError: the global ledger could not be read
    """
    if default_days is None:
        default_days = current_app.config["DEFAULT_REPLACEMENT_DAYS"]

    client_key = normalize_client(client_filter)
    with store_guard("projection", client_key or None):
        records = ledger_service.scan_all(client=client_key or None)

    samples = collect_samples(records)
    cohort_means = {key: mean_days(durations) for key, durations in samples.items()}

    labels = {}
    for record in records:
        labels.setdefault(_cohort_key(record), _client_label(record))

    cohorts = [
        Cohort(client=labels.get(key, key[0]), reference=key[1], mean_days=cohort_means[key], samples=len(samples[key]))
        for key in sorted(samples)
    ]

    all_durations = [d for durations in samples.values() for d in durations]

    return ProjectionResult(
        forecast=build_forecast(records, cohort_means, default_days),
        cohorts=cohorts,
        total_samples=len(all_durations),
        overall_mean_days=mean_days(all_durations),
    )
