"""
Alert Evaluator

Checks a snapshot against a static table of space-weather thresholds and
produces severity-tagged alerts plus a per-metric status summary.

PRINCIPLES:
===========
1. Pure function of the snapshot - no I/O, no memory of earlier snapshots
2. Missing or non-numeric readings evaluate as NOMINAL
3. Alerts are ordered highest severity first
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
from enum import Enum
from types import MappingProxyType

from telemetry.contracts import Snapshot


class Severity(Enum):
    """Severity levels, ordered by `level`."""
    NOMINAL = (0, '✅', 'NOMINAL')
    INFO = (1, '🟢', 'INFO')
    WATCH = (2, '⚠️', 'WATCH')
    WARNING = (3, '🟠', 'WARNING')
    CRITICAL = (4, '🔴', 'CRITICAL')

    def __init__(self, level: int, emoji: str, label: str):
        self.level = level
        self.emoji = emoji
        self.label = label


@dataclass(frozen=True)
class Thresholds:
    """NOAA-derived alert thresholds."""
    bz_south: float = -5.0            # nT, southward IMF coupling
    wind_speed: float = 500.0         # km/s, fast solar wind
    kp_minor_storm: float = 5.0       # G1
    kp_severe_storm: float = 7.0      # G3+
    m_class_flare: float = 1e-5       # W/m^2, R1
    x_class_flare: float = 1e-4       # W/m^2, R3
    s1_radiation: float = 10.0        # pfu, >=10 MeV protons
    electron_alert: float = 1000.0    # pfu, >=2 MeV electrons
    high_drag: float = 150.0          # SFU
    aurora_active: float = 50.0       # GW


@dataclass(frozen=True)
class Alert:
    alert_id: str
    severity: Severity
    message: str
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.alert_id,
            'severity': self.severity.label,
            'emoji': self.severity.emoji,
            'message': self.message,
            'details': self.details,
        }


@dataclass(frozen=True)
class MetricStatus:
    """Status of one metric with the values and thresholds behind it."""
    name: str
    status: Severity
    values: Mapping[str, Any] = field(default_factory=dict)

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.values,
            'status': self.status.label,
            'status_emoji': self.status.emoji,
        }


@dataclass(frozen=True)
class Evaluation:
    """Result of evaluating one snapshot."""
    snapshot_id: str
    alerts: Tuple[Alert, ...]
    metrics: Mapping[str, MetricStatus]

    @property
    def has_alerts(self) -> bool:
        return len(self.alerts) > 0

    @property
    def highest_severity(self) -> Severity:
        return self.alerts[0].severity if self.alerts else Severity.NOMINAL

    def statuses(self) -> Dict[str, str]:
        """Metric name to status label."""
        return {name: m.status.label for name, m in self.metrics.items()}


# =============================================================================
# HELPERS
# =============================================================================

def classify_flare(flux: float) -> str:
    """Classify X-ray flux into the standard flare class (A, B, C, M, X)."""
    if flux >= 1e-4:
        return f"X{flux / 1e-4:.1f}"
    if flux >= 1e-5:
        return f"M{flux / 1e-5:.1f}"
    if flux >= 1e-6:
        return f"C{flux / 1e-6:.1f}"
    if flux >= 1e-7:
        return f"B{flux / 1e-7:.1f}"
    return f"A{flux / 1e-8:.1f}"


def geomagnetic_scale(kp: float) -> str:
    if kp >= 9:
        return 'G5 Extreme'
    if kp >= 8:
        return 'G4 Severe'
    if kp >= 7:
        return 'G3 Strong'
    if kp >= 6:
        return 'G2 Moderate'
    return 'G1 Minor'


def _num(value: Optional[float]) -> str:
    return 'N/A' if value is None else f"{value:g}"


# =============================================================================
# EVALUATOR
# =============================================================================

class AlertEvaluator:
    """Evaluates snapshots against a fixed Thresholds table."""

    def __init__(self, thresholds: Optional[Thresholds] = None):
        self._t = thresholds or Thresholds()

    @property
    def thresholds(self) -> Thresholds:
        return self._t

    def evaluate(self, snapshot: Snapshot) -> Evaluation:
        alerts: List[Alert] = []
        metrics: Dict[str, MetricStatus] = {}

        for check in (
            self._solar_wind,
            self._kp_index,
            self._xray_flux,
            self._proton_flux,
            self._electron_flux,
            self._f107_flux,
            self._aurora_power,
        ):
            metric, alert = check(snapshot)
            metrics[metric.name] = metric
            if alert is not None:
                alerts.append(alert)

        # Stable sort keeps check order within a severity
        alerts.sort(key=lambda a: a.severity.level, reverse=True)

        return Evaluation(
            snapshot_id=snapshot.snapshot_id,
            alerts=tuple(alerts),
            metrics=MappingProxyType(metrics)
        )

    # =========================================================================
    # CHECKS
    # =========================================================================

    def _solar_wind(self, snapshot: Snapshot):
        t = self._t
        bz = snapshot.value('solar_wind_mag', 'bz_gsm')
        speed = snapshot.value('solar_wind_plasma', 'speed')
        imminent = (
            bz is not None and bz <= t.bz_south
            and speed is not None and speed > t.wind_speed
        )
        severity = Severity.CRITICAL if imminent else Severity.NOMINAL

        metric = MetricStatus('solar_wind', severity, {
            'bz_gsm': bz,
            'speed': speed,
            'density': snapshot.value('solar_wind_plasma', 'density'),
            'bz_threshold': t.bz_south,
            'speed_threshold': t.wind_speed,
        })
        if not imminent:
            return metric, None

        return metric, Alert(
            'GEOMAG_STORM_IMMINENT',
            severity,
            f"Geomagnetic storm IMMINENT: Bz={_num(bz)} nT (southward), Speed={_num(speed)} km/s",
            f"IMF Bz is strongly southward (≤{_num(t.bz_south)} nT) AND solar wind speed exceeds "
            f"{_num(t.wind_speed)} km/s. Earth's magnetic shield is being breached."
        )

    def _kp_index(self, snapshot: Snapshot):
        t = self._t
        kp = snapshot.value('kp_index_1m', 'kp_index')
        severity = Severity.NOMINAL
        if kp is not None:
            if kp >= t.kp_severe_storm:
                severity = Severity.CRITICAL
            elif kp >= t.kp_minor_storm:
                severity = Severity.WARNING

        metric = MetricStatus('kp_index', severity, {
            'kp_index': kp,
            'estimated_kp': snapshot.value('kp_index_1m', 'estimated_kp'),
            'official_kp': snapshot.value('kp_index_official', 'kp'),
            'threshold_minor': t.kp_minor_storm,
            'threshold_severe': t.kp_severe_storm,
        })
        if severity is Severity.NOMINAL:
            return metric, None

        return metric, Alert(
            'GEOMAG_STORM_ACTIVE',
            severity,
            f"Geomagnetic storm ACTIVE: Kp={_num(kp)} ({geomagnetic_scale(kp)})",
            f"Kp index ≥{_num(t.kp_minor_storm)}. Expect satellite drag increases, GPS degradation, "
            f"and possible aurora at lower latitudes."
        )

    def _xray_flux(self, snapshot: Snapshot):
        t = self._t
        flux = snapshot.value('xray_flux', 'flux')
        severity = Severity.NOMINAL
        if flux is not None:
            if flux >= t.x_class_flare:
                severity = Severity.CRITICAL
            elif flux >= t.m_class_flare:
                severity = Severity.WARNING

        flare_class = classify_flare(flux) if flux else 'N/A'
        metric = MetricStatus('xray_flux', severity, {
            'flux': flux,
            'flare_class': flare_class,
            'threshold_m': t.m_class_flare,
            'threshold_x': t.x_class_flare,
        })
        if severity is Severity.NOMINAL:
            return metric, None

        r_scale = 'R3+ Radio Blackout' if flux >= t.x_class_flare else 'R1 Radio Blackout'
        return metric, Alert(
            'RADIO_BLACKOUT',
            severity,
            f"Solar flare detected: {flare_class} ({r_scale})",
            f"X-ray flux = {flux:.2e} W/m². HF radio communications on the sunlit side of Earth "
            f"may be degraded or blacked out."
        )

    def _proton_flux(self, snapshot: Snapshot):
        t = self._t
        flux = snapshot.value('proton_flux', 'flux')
        storm = flux is not None and flux >= t.s1_radiation
        severity = Severity.WARNING if storm else Severity.NOMINAL

        metric = MetricStatus('proton_flux', severity, {
            'flux': flux,
            'energy': '>=10 MeV',
            'threshold': t.s1_radiation,
        })
        if not storm:
            return metric, None

        return metric, Alert(
            'RADIATION_STORM',
            severity,
            f"Radiation storm (S1+): Proton flux = {flux:.1f} pfu (>=10 MeV)",
            f"High-energy protons exceeding {_num(t.s1_radiation)} pfu. Risk of satellite memory "
            f"bit-flips (SEUs), solar panel degradation, and radiation hazard."
        )

    def _electron_flux(self, snapshot: Snapshot):
        t = self._t
        flux = snapshot.value('electron_flux', 'flux')
        charging = flux is not None and flux >= t.electron_alert
        severity = Severity.WARNING if charging else Severity.NOMINAL

        metric = MetricStatus('electron_flux', severity, {
            'flux': flux,
            'energy': '>=2 MeV',
            'threshold': t.electron_alert,
        })
        if not charging:
            return metric, None

        return metric, Alert(
            'DIELECTRIC_CHARGING',
            severity,
            f"Deep dielectric charging risk: Electron flux = {flux:.0f} pfu (>=2 MeV)",
            f"High-energy electrons exceeding {_num(t.electron_alert)} pfu. Spacecraft internal "
            f"charging may cause arcing and short circuits."
        )

    def _f107_flux(self, snapshot: Snapshot):
        t = self._t
        flux = snapshot.value('f107_flux', 'flux')
        high = flux is not None and flux >= t.high_drag
        severity = Severity.WATCH if high else Severity.NOMINAL

        metric = MetricStatus('f107_flux', severity, {
            'flux': flux,
            'unit': 'SFU',
            'threshold': t.high_drag,
        })
        if not high:
            return metric, None

        return metric, Alert(
            'HIGH_ATMOSPHERIC_DRAG',
            severity,
            f"Elevated atmospheric drag: F10.7 = {_num(flux)} SFU",
            f"F10.7 cm flux ≥{_num(t.high_drag)} SFU. Upper atmosphere is expanding; LEO satellites "
            f"may experience increased orbital decay."
        )

    def _aurora_power(self, snapshot: Snapshot):
        t = self._t
        power = snapshot.value('aurora_power', 'hemispheric_power_gw')
        active = power is not None and power >= t.aurora_active
        severity = Severity.INFO if active else Severity.NOMINAL

        metric = MetricStatus('aurora_power', severity, {
            'hemispheric_power_gw': power,
            'threshold': t.aurora_active,
        })
        if not active:
            return metric, None

        return metric, Alert(
            'AURORA_ACTIVE',
            severity,
            f"Aurora active: Hemispheric power = {_num(power)} GW",
            f"Hemispheric power ≥{_num(t.aurora_active)} GW. Significant aurora is occurring in "
            f"the polar regions."
        )
