"""Console status report."""

from __future__ import annotations
from typing import List, Optional

from telemetry.contracts import Snapshot

from .alerts import Evaluation, MetricStatus

WIDTH = 72


def fmt(value) -> str:
    if value is None:
        return 'N/A'
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _heading(metric: MetricStatus, title: str) -> str:
    return f"\n  {metric.status.emoji} {title}"


def format_report(
    snapshot: Snapshot,
    evaluation: Evaluation,
    saved_to: Optional[str] = None
) -> str:
    """Render alerts, the per-metric summary and feed errors as text."""
    m = evaluation.metrics
    lines: List[str] = []
    add = lines.append

    add('═' * WIDTH)
    add('  🛰️  NOAA SPACE WEATHER STATUS REPORT')
    add(f"  📅  {snapshot.extraction_time.isoformat()}")
    add('═' * WIDTH)

    if evaluation.alerts:
        add('\n  ⚡ ACTIVE ALERTS:')
        for alert in evaluation.alerts:
            add(f"    {alert.severity.emoji} [{alert.severity.label}] {alert.message}")
    else:
        add('\n  ✅ No active alerts, all systems nominal.')

    add('\n' + '─' * WIDTH)
    add('  📊 METRIC SUMMARY')
    add('─' * WIDTH)

    sw = m['solar_wind']
    add(_heading(sw, 'Solar Wind (DSCOVR)'))
    add(f"     Bz GSM:  {fmt(sw.get('bz_gsm'))} nT  (alert ≤ {fmt(sw.get('bz_threshold'))})")
    add(f"     Speed:   {fmt(sw.get('speed'))} km/s (alert > {fmt(sw.get('speed_threshold'))})")
    add(f"     Density: {fmt(sw.get('density'))} p/cm³")
    mag = snapshot.reading('solar_wind_mag')
    if mag is not None and mag.time_tag:
        add(f"     Data at: {mag.time_tag}")

    kp = m['kp_index']
    add(_heading(kp, 'Kp Index'))
    add(f"     Kp:      {fmt(kp.get('kp_index'))}  "
        f"(storm ≥ {fmt(kp.get('threshold_minor'))}, severe ≥ {fmt(kp.get('threshold_severe'))})")
    add(f"     Est Kp:  {fmt(kp.get('estimated_kp'))}")
    if kp.get('official_kp') is not None:
        add(f"     Official: Kp = {fmt(kp.get('official_kp'))} (3-hour)")

    xr = m['xray_flux']
    flux = xr.get('flux')
    add(_heading(xr, 'X-Ray Flux (Solar Flares)'))
    add(f"     Flux:    {f'{flux:.2e}' if flux else 'N/A'} W/m²")
    add(f"     Class:   {xr.get('flare_class')}")
    add(f"     M-class: ≥{fmt(xr.get('threshold_m'))}  |  X-class: ≥{fmt(xr.get('threshold_x'))}")

    pr = m['proton_flux']
    add(_heading(pr, 'Proton Flux (≥10 MeV)'))
    add(f"     Flux:    {fmt(pr.get('flux'))} pfu  (S1 storm ≥ {fmt(pr.get('threshold'))})")

    el = m['electron_flux']
    add(_heading(el, 'Electron Flux (≥2 MeV)'))
    add(f"     Flux:    {fmt(el.get('flux'))} pfu  (charging alert ≥ {fmt(el.get('threshold'))})")

    f107 = m['f107_flux']
    add(_heading(f107, 'F10.7 cm Radio Flux'))
    add(f"     Flux:    {fmt(f107.get('flux'))} SFU  (high drag ≥ {fmt(f107.get('threshold'))})")

    aurora = m['aurora_power']
    add(_heading(aurora, 'Aurora Hemispheric Power'))
    add(f"     Power:   {fmt(aurora.get('hemispheric_power_gw'))} GW  (active ≥ {fmt(aurora.get('threshold'))})")

    if snapshot.failures:
        add('\n' + '─' * WIDTH)
        add('  ❌ FEED ERRORS:')
        for failure in snapshot.failures:
            add(f"     • {failure.feed_name}: {failure.error}")

    add('\n' + '═' * WIDTH)
    if saved_to:
        add(f"  💾 Data saved to: {saved_to}")
        add('═' * WIDTH)

    return '\n'.join(lines) + '\n'
