from __future__ import annotations

import math
from typing import Final

import astronomy
import pytest
from hypothesis import given, settings, strategies as st

from sunlayer import load_datasets, select_dataset
from sunlayer.compute import (
    eclipse_obscuration,
    elements_at,
    evaluate_elements,
    obscuration,
    solar_altitude,
    solar_situation,
    twilight_blend,
)
from sunlayer.models import (
    EclipseDataset,
    GeoSample,
    InterpolatedElements,
    SolarSituation,
)

J2000_UNIX: Final[float] = 946_728_000.0  # 2000-01-01T12:00:00Z
HOUR: Final[float] = 3600.0

# 2017-08-21, greatest eclipse 18:25:32 UT near 36.97N 87.67W.
T0_2017: Final[float] = 1503338331.2
GREATEST_2017: Final[float] = 1503339932.0

DATASETS = load_datasets()

instants = st.floats(min_value=1_483_228_800.0, max_value=2_145_830_400.0)


def ae_time(unix: float) -> astronomy.Time:
    # Astronomy Engine: ut is days since noon UTC on 2000-01-01.
    return astronomy.Time((unix - J2000_UNIX) / 86400.0)


def wrap_hours(h: float) -> float:
    return ((h + 12.0) % 24.0) - 12.0


def make_dataset(t0: float, **overrides) -> EclipseDataset:
    base = dict(
        t0=t0,
        deltat=70.0,
        tanf1=0.0046,
        tanf2=0.0046,
        x=(0.1, 0.5, -1e-5, -1e-6),
        y=(0.4, -0.1, -1e-5, 2e-6),
        d=(10.0, -0.01, -2e-6, 0.0),
        l1=(0.54, 1e-4, -1e-5, 0.0),
        l2=(-0.004, 1e-4, -1e-5, 0.0),
        mu=(90.0, 15.0, 0.0, 0.0),
    )
    base.update(overrides)
    return EclipseDataset(**base)


def dataset_2017() -> EclipseDataset:
    ds = select_dataset(DATASETS, T0_2017)
    assert ds is not None
    return ds


# Interpolation and selection


def test_bundled_table_is_strictly_ordered() -> None:
    assert len(DATASETS) == 47
    t0s = [ds.t0 for ds in DATASETS]
    assert all(a < b for a, b in zip(t0s, t0s[1:]))


def test_evaluate_at_t0_returns_constant_terms() -> None:
    ds = dataset_2017()
    e = evaluate_elements(ds, ds.t0)

    assert e.d == 11.8669596
    assert e.x == ds.x[0]
    assert e.y == ds.y[0]
    assert e.l1 == ds.l1[0]
    assert e.l2 == ds.l2[0]
    assert e.mu == ds.mu[0]
    assert e.deltat == 68.8
    assert e.tanf1 == ds.tanf1
    assert e.tanf2 == ds.tanf2


@given(st.sampled_from(DATASETS))
def test_every_dataset_evaluates_to_constants_at_t0(ds: EclipseDataset) -> None:
    e = evaluate_elements(ds, ds.t0)
    assert (e.x, e.y, e.d, e.l1, e.l2, e.mu) == (
        ds.x[0],
        ds.y[0],
        ds.d[0],
        ds.l1[0],
        ds.l2[0],
        ds.mu[0],
    )
    assert e.eclipse_active


def test_cubic_terms_are_applied() -> None:
    ds = make_dataset(0.0, x=(1.0, 2.0, 3.0, 4.0))
    e = evaluate_elements(ds, 2 * HOUR)
    assert e.x == pytest.approx(1.0 + 2.0 * 2 + 3.0 * 4 + 4.0 * 8)


@pytest.mark.parametrize("offset_hours", [5.0, -5.0, 4.01])
def test_outside_window_disables_eclipse(offset_hours: float) -> None:
    ds = dataset_2017()
    e = evaluate_elements(ds, ds.t0 + offset_hours * HOUR)
    assert e.deltat == -1
    assert not e.eclipse_active


def test_inside_window_keeps_deltat() -> None:
    ds = dataset_2017()
    assert evaluate_elements(ds, ds.t0 + 3.99 * HOUR).deltat == 68.8
    assert evaluate_elements(ds, ds.t0 - 3.99 * HOUR).deltat == 68.8


def test_select_returns_dataset_whose_window_contains_now() -> None:
    ds = dataset_2017()
    assert select_dataset(DATASETS, ds.t0 - 3 * HOUR) is ds
    assert select_dataset(DATASETS, ds.t0 + 3.9 * HOUR) is ds

    following = select_dataset(DATASETS, ds.t0 + 4.1 * HOUR)
    assert following is not None and following.t0 > ds.t0


def test_select_before_window_is_disabled_by_interpolator() -> None:
    ds = dataset_2017()
    now = ds.t0 - 10 * HOUR
    assert select_dataset(DATASETS, now) is ds
    assert elements_at(DATASETS, now).deltat == -1


def test_select_past_last_dataset_returns_none() -> None:
    now = DATASETS[-1].t0 + 5 * HOUR
    assert select_dataset(DATASETS, now) is None

    e = elements_at(DATASETS, now)
    assert e.deltat == -1
    assert not e.eclipse_active


def test_select_prefers_earliest_of_overlapping_windows() -> None:
    first = make_dataset(10 * HOUR)
    second = make_dataset(12 * HOUR)
    assert select_dataset([first, second], 11 * HOUR) is first
    assert select_dataset([first, second], 14.5 * HOUR) is second
    assert select_dataset([], 0.0) is None


# Solar position


def test_local_time_is_hours_of_utc_day() -> None:
    s = solar_situation(GREATEST_2017)
    assert s.local_time == pytest.approx(18 + 25 / 60 + 32 / 3600)


def test_local_time_is_non_negative_before_epoch() -> None:
    s = solar_situation(-1800.0)
    assert s.local_time == pytest.approx(23.5)


@given(instants)
@settings(max_examples=200, deadline=None)
def test_declination_matches_astronomy_engine(now: float) -> None:
    s = solar_situation(now)
    obs = astronomy.Observer(0.0, 0.0, 0.0)
    eq = astronomy.Equator(astronomy.Body.Sun, ae_time(now), obs, True, True)

    assert abs(math.degrees(s.declination) - eq.dec) < 1.0
    assert abs(s.declination) <= math.radians(89.9)


@given(instants)
@settings(max_examples=200, deadline=None)
def test_equation_of_time_matches_astronomy_engine(now: float) -> None:
    """Apparent solar time at Greenwich minus UT, compared in minutes."""
    s = solar_situation(now)
    obs = astronomy.Observer(0.0, 0.0, 0.0)
    hour_angle = astronomy.HourAngle(astronomy.Body.Sun, ae_time(now), obs)

    oracle = wrap_hours(hour_angle + 12.0 - s.local_time)
    assert abs(s.equation - oracle) * 60.0 < 2.0


@given(
    instants,
    st.floats(min_value=-80.0, max_value=80.0),
    st.floats(min_value=-180.0, max_value=180.0),
)
@settings(max_examples=200, deadline=None)
def test_altitude_matches_astronomy_engine(now: float, lat: float, lon: float) -> None:
    s = solar_situation(now)
    obs = astronomy.Observer(lat, lon, 0.0)
    t = ae_time(now)
    eq = astronomy.Equator(astronomy.Body.Sun, t, obs, True, True)
    hor = astronomy.Horizon(t, obs, eq.ra, eq.dec, astronomy.Refraction.Airless)

    assert abs(math.degrees(solar_altitude(s, lat, lon)) - hor.altitude) < 1.5


def test_altitude_clamps_rounding_overshoot() -> None:
    # Sun overhead: the asin argument lands on (or a hair past) 1.
    s = SolarSituation(local_time=12.0, declination=math.radians(23.4), equation=0.0)
    alt = solar_altitude(s, 23.4, 0.0)
    assert alt == pytest.approx(math.pi / 2, abs=1e-6)


# Obscuration

NOON = SolarSituation(local_time=12.0, declination=0.0, equation=0.0)
MIDNIGHT = SolarSituation(local_time=0.0, declination=0.0, equation=0.0)
EQUATOR = GeoSample(latitude_deg=0.0, longitude_deg=0.0)


def shadow_at_distance(dist: float) -> InterpolatedElements:
    """Elements whose shadow axis sits ``dist`` from (0, 0) on the fundamental plane."""
    X = math.sin(math.radians(1.002738 * 15.0 * 1.0 / 3600.0))
    return InterpolatedElements(
        t0=0.0,
        x=X + dist,
        y=0.0,
        d=0.0,
        l1=0.545,
        l2=-0.0035,
        mu=0.0,
        deltat=1.0,
        tanf1=0.0046,
        tanf2=0.0046,
    )


def test_twilight_midpoint_is_half() -> None:
    assert twilight_blend(0.0, 0.0) == pytest.approx(0.5)


@given(st.floats(min_value=0.0, max_value=1.0))
def test_twilight_blend_is_continuous_at_band_edges(obs: float) -> None:
    assert twilight_blend(obs, 0.018) == obs
    assert twilight_blend(obs, 0.018 - 1e-12) == pytest.approx(obs, abs=1e-9)
    assert twilight_blend(obs, -0.018) == pytest.approx(1.0)
    assert twilight_blend(obs, -0.018 - 1e-12) == 1.0


def test_daylight_without_eclipse_is_clear() -> None:
    e = InterpolatedElements.disabled()
    assert obscuration(e, NOON, EQUATOR).opacity == 0.0


def test_night_is_obscure_factor() -> None:
    e = InterpolatedElements.disabled()
    assert obscuration(e, MIDNIGHT, EQUATOR).opacity == pytest.approx(0.65)
    assert obscuration(
        e, MIDNIGHT, EQUATOR, obscure_factor=0.8
    ).opacity == pytest.approx(0.8)


def test_inside_umbra_is_fully_dark() -> None:
    r = obscuration(shadow_at_distance(0.0), NOON, EQUATOR)
    assert r.opacity == pytest.approx(1.0)


def test_outside_penumbra_is_clear() -> None:
    r = obscuration(shadow_at_distance(0.6), NOON, EQUATOR)
    assert r.opacity == 0.0


def test_eclipse_override_is_dropped_at_night() -> None:
    obs, override = eclipse_obscuration(shadow_at_distance(0.0), EQUATOR)
    assert override == pytest.approx(1.0)

    r = obscuration(shadow_at_distance(0.0), MIDNIGHT, EQUATOR)
    assert r.opacity == pytest.approx(0.65)


@given(
    st.floats(min_value=0.0, max_value=0.55),
    st.floats(min_value=0.0, max_value=0.55),
)
def test_opacity_does_not_increase_with_distance(a: float, b: float) -> None:
    near, far = sorted((a, b))
    o_near = obscuration(shadow_at_distance(near), NOON, EQUATOR).opacity
    o_far = obscuration(shadow_at_distance(far), NOON, EQUATOR).opacity
    assert o_near >= o_far - 1e-12


def shadow_with_obs(obs: float) -> InterpolatedElements:
    """Elements placing the equator/noon sample at penumbral fraction ``obs``."""
    Z = math.cos(math.radians(1.002738 * 15.0 * 1.0 / 3600.0))
    L1 = 0.545 - Z * 0.0046
    L2 = -0.0035 - Z * 0.0046
    return shadow_at_distance(L1 - obs * (L1 + L2))


@pytest.mark.parametrize("factor", [0.3, 0.65, 1.0])
def test_umbra_ramp_starts_at_penumbra_level(factor: float) -> None:
    below_obs, below = eclipse_obscuration(shadow_with_obs(0.95 - 1e-9), EQUATOR, factor)
    above_obs, above = eclipse_obscuration(shadow_with_obs(0.95 + 1e-9), EQUATOR, factor)

    assert below_obs < 0.95 < above_obs
    assert below == 0.0
    assert above == pytest.approx(0.95 * factor, abs=1e-6)

    _, full = eclipse_obscuration(shadow_with_obs(1.0), EQUATOR, factor)
    assert full == pytest.approx(1.0, abs=1e-6)
    _, umbra = eclipse_obscuration(shadow_at_distance(0.0), EQUATOR, factor)
    assert umbra == pytest.approx(1.0)


@pytest.mark.parametrize("factor", [0.3, 0.65, 1.0])
def test_opacity_has_no_seam_at_umbra_ramp(factor: float) -> None:
    def opacity(obs: float) -> float:
        return obscuration(
            shadow_with_obs(obs), NOON, EQUATOR, obscure_factor=factor
        ).opacity

    assert opacity(0.95 + 1e-9) == pytest.approx(opacity(0.95 - 1e-9), abs=1e-6)
    assert opacity(0.95 - 1e-9) == pytest.approx(0.95 * factor, abs=1e-6)
    # Halfway up the ramp, the override sits halfway between its ends.
    assert opacity(0.975) == pytest.approx((0.95 * factor + 1.0) / 2, abs=1e-6)


def test_greatest_eclipse_2017_is_nearly_dark() -> None:
    e = elements_at(DATASETS, GREATEST_2017)
    assert e.eclipse_active

    s = solar_situation(GREATEST_2017)
    r = obscuration(e, s, GeoSample(latitude_deg=36.97, longitude_deg=-87.67))
    assert r.opacity > 0.9


def test_eclipse_does_not_reach_far_side() -> None:
    e = elements_at(DATASETS, GREATEST_2017)
    s = solar_situation(GREATEST_2017)

    # Sydney is in darkness: plain night opacity, no eclipse override.
    sydney = obscuration(e, s, GeoSample(latitude_deg=-33.87, longitude_deg=151.21))
    assert sydney.opacity == pytest.approx(0.65)

    # Buenos Aires is in daylight and outside the penumbra.
    ba = obscuration(e, s, GeoSample(latitude_deg=-34.6, longitude_deg=-58.4))
    assert ba.opacity == 0.0


def test_city_lights_ramp_with_darkness() -> None:
    e = InterpolatedElements.disabled()
    lit = obscuration(e, MIDNIGHT, EQUATOR, True, (0.6, 0.6, 0.6))
    assert lit.luminance == pytest.approx(0.5)

    dark_pixel = obscuration(e, MIDNIGHT, EQUATOR, True, (0.05, 0.05, 0.05))
    assert dark_pixel.luminance == 0.0

    assert obscuration(e, MIDNIGHT, EQUATOR, False, (0.6, 0.6, 0.6)).luminance is None
    assert obscuration(e, NOON, EQUATOR, True, (0.6, 0.6, 0.6)).luminance is None
