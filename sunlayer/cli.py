"""
Command-line interface for the overlay computations.

Attribution: "Eclipse Predictions by Fred Espenak, NASA's GSFC"
"""

from __future__ import annotations

import argparse
import logging
import math

from astropy.time import Time

from .catalog import load_datasets, select_dataset
from .compute import elements_at, obscuration, solar_altitude, solar_situation
from .config import LayerSettings
from .models import GeoSample, InterpolatedElements


def print_elements(e: InterpolatedElements) -> None:
    if not e.eclipse_active:
        print("Eclipse geometry: none in effect")
        return
    print(f"Eclipse geometry (t0={Time(e.t0, format='unix').iso} UTC):")
    print(f"  x={e.x:.6f}  y={e.y:.6f}  d={e.d:.6f} deg  mu={e.mu:.6f} deg")
    print(f"  l1={e.l1:.6f}  l2={e.l2:.6f}  deltat={e.deltat:.1f} s")


def main() -> None:
    ap = argparse.ArgumentParser(
        description="Evaluate the day/night and eclipse overlay at a location."
    )
    ap.add_argument(
        "--csv",
        default=None,
        help="Path to eclipse dataset CSV (default: bundled table)",
    )
    ap.add_argument(
        "--lat", required=True, type=float, help="Latitude in degrees (north positive)"
    )
    ap.add_argument(
        "--lon",
        required=True,
        type=float,
        help="Longitude in degrees east (east positive; west is negative)",
    )
    ap.add_argument(
        "--ref-utc",
        default=None,
        help="Reference time in ISO8601 (e.g. 2017-08-21T18:25:00). Default: now.",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = LayerSettings.from_env()

    if args.ref_utc is None:
        ref_time = Time.now()
        print(f"ref-utc not provided; using now: {ref_time.iso}")
    else:
        ref_time = Time(args.ref_utc, scale="utc")
    now = ref_time.unix

    datasets = load_datasets(args.csv)
    ds = select_dataset(datasets, now, window_hours=settings.window_hours)
    if ds is not None:
        print(f"Next dataset: t0={Time(ds.t0, format='unix').iso} UTC")

    elements = elements_at(datasets, now, window_hours=settings.window_hours)
    situation = solar_situation(now)
    sample = GeoSample(latitude_deg=args.lat, longitude_deg=args.lon)
    altitude = solar_altitude(situation, args.lat, args.lon)
    result = obscuration(
        elements,
        situation,
        sample,
        obscure_factor=settings.obscure_factor,
    )

    print(f"Location: lat={args.lat:.6f}, lon_east={args.lon:.6f}")
    print(f"Reference: {ref_time.iso} UTC")
    print_elements(elements)
    print(
        f"Sun: declination={math.degrees(situation.declination):.3f} deg  "
        f"equation of time={situation.equation * 60:.2f} min  "
        f"altitude={math.degrees(altitude):.3f} deg"
    )
    print(f"Overlay opacity: {result.opacity:.3f}")


if __name__ == "__main__":
    main()
