"""
Eclipse dataset table loading and selection.

Attribution: "Eclipse Predictions by Fred Espenak, NASA's GSFC"
Data source: https://eclipse.gsfc.nasa.gov/eclipse_besselian_from_mysqldump2.csv
"""

from __future__ import annotations

import csv
import logging
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Optional, Sequence

from .models import EclipseDataset

logger = logging.getLogger(__name__)

WINDOW_HOURS = 4.0

POLY_FIELDS = ("x", "y", "d", "l1", "l2", "mu")
SCALAR_FIELDS = ("t0", "deltat", "tanf1", "tanf2")


def load_datasets(csv_path: Optional[str] = None) -> list[EclipseDataset]:
    """Load the eclipse dataset table from CSV.

    Args:
        csv_path: Path to CSV file. If None, uses the bundled table.

    Returns:
        Datasets in strictly increasing ``t0`` order.
    """
    if csv_path is None:
        return _load_bundled_datasets()

    p = Path(csv_path)
    if not p.exists():
        raise FileNotFoundError(p)

    with p.open("r", encoding="utf-8", newline="") as f:
        return _parse_datasets(f)


@lru_cache(maxsize=1)
def _load_bundled_datasets() -> list[EclipseDataset]:
    try:
        files = resources.files("sunlayer.data")
        csv_file = files.joinpath("besselian.csv")
        with resources.as_file(csv_file) as path:
            with path.open("r", encoding="utf-8", newline="") as f:
                return _parse_datasets(f)
    except (FileNotFoundError, TypeError):
        raise FileNotFoundError(
            "Bundled dataset table not found. Please provide a csv_path argument."
        )


def _parse_datasets(f) -> list[EclipseDataset]:
    reader = csv.DictReader(f)

    required = set(SCALAR_FIELDS)
    for name in POLY_FIELDS:
        required.update(f"{name}{i}" for i in range(4))
    header = set(reader.fieldnames or [])
    missing = required - header
    if missing:
        raise ValueError(f"CSV missing required columns: {sorted(missing)}")

    datasets: list[EclipseDataset] = []
    for row in reader:
        values = {k: float(row[k]) for k in required}
        polys = {
            name: tuple(values[f"{name}{i}"] for i in range(4)) for name in POLY_FIELDS
        }
        ds = EclipseDataset(
            t0=values["t0"],
            deltat=values["deltat"],
            tanf1=values["tanf1"],
            tanf2=values["tanf2"],
            **polys,
        )
        if datasets and ds.t0 <= datasets[-1].t0:
            raise ValueError(
                f"Dataset t0 values must be strictly increasing: "
                f"{ds.t0} follows {datasets[-1].t0}"
            )
        datasets.append(ds)

    logger.debug("Loaded %d eclipse datasets", len(datasets))
    return datasets


def select_dataset(
    datasets: Sequence[EclipseDataset],
    now: float,
    *,
    window_hours: float = WINDOW_HOURS,
) -> Optional[EclipseDataset]:
    """Return the first dataset whose window has not yet closed at ``now``.

    The returned dataset may still lie in the future; callers must check the
    window before using its geometry (``evaluate_elements`` does this).
    """
    for ds in datasets:
        if ds.t0 + window_hours * 3600.0 > now:
            return ds
    return None
