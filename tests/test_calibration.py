import math

import pytest

from planimetry.calibration import CalibrationEngine
from planimetry.errors import CalibrationDegenerateError, InsufficientInputError, InvalidInputError
from planimetry.models import REFERENCE_OBJECTS, ReferenceSpec, get_reference


def engine(reference=None, width=640, height=480):
    return CalibrationEngine(width, height, reference=reference or get_reference('coin_1naira'))


def test_naira_coin_44px_gives_20_px_per_cm():
    cal = engine()
    cal.record_point(100, 100)
    cal.record_point(144, 100)

    scale = cal.compute_scale()

    assert scale.pixels_per_cm == pytest.approx(20.0)
    assert scale.pixel_distance == pytest.approx(44.0)
    assert cal.scale == scale


@pytest.mark.parametrize('reference', [r for r in REFERENCE_OBJECTS if not r.is_custom])
@pytest.mark.parametrize('p1,p2', [((0, 0), (3, 4)), ((10.5, 20.25), (300, 7)), ((5, 5), (5, 6))])
def test_scale_is_distance_over_length(reference, p1, p2):
    cal = engine(reference)
    cal.record_point(*p1)
    cal.record_point(*p2)

    scale = cal.compute_scale()

    expected = math.dist(p1, p2) / reference.physical_length_cm
    assert scale.pixels_per_cm == pytest.approx(expected)
    assert scale.pixels_per_cm > 0


def test_coincident_points_are_degenerate():
    cal = engine()
    cal.record_point(50, 60)
    cal.record_point(50, 60)

    with pytest.raises(CalibrationDegenerateError):
        cal.compute_scale()
    assert cal.scale is None


def test_custom_reference_of_zero_is_invalid_before_distance_check():
    cal = engine(ReferenceSpec.custom(0))
    # Coincident points would be degenerate, but the length is checked first
    cal.record_point(10, 10)
    cal.record_point(10, 10)

    with pytest.raises(InvalidInputError):
        cal.compute_scale()


@pytest.mark.parametrize('length', [None, -2.0, 0.0])
def test_custom_reference_requires_positive_length(length):
    cal = engine(ReferenceSpec.custom(length))
    cal.record_point(0, 0)
    cal.record_point(30, 40)

    with pytest.raises(InvalidInputError):
        cal.compute_scale()


def test_scale_ignores_reference_label():
    named = engine(get_reference('coin_1naira'))
    custom = engine(ReferenceSpec.custom(2.2))
    for cal in (named, custom):
        cal.record_point(0, 0)
        cal.record_point(66, 0)

    assert named.compute_scale().pixels_per_cm == custom.compute_scale().pixels_per_cm


def test_requires_two_points():
    cal = engine()
    cal.record_point(1, 1)

    with pytest.raises(InsufficientInputError):
        cal.compute_scale()


def test_third_click_is_ignored_until_reset():
    cal = engine()
    assert cal.record_point(0, 0)
    assert cal.record_point(22, 0)
    assert not cal.record_point(500, 500)

    assert [p.as_tuple() for p in cal.points] == [(0.0, 0.0), (22.0, 0.0)]
    assert cal.is_complete

    cal.reset()
    assert cal.points == []
    assert cal.record_point(5, 5)


def test_out_of_bounds_clicks_are_clamped():
    cal = engine(width=200, height=100)
    cal.record_point(-15, 40)
    cal.record_point(250, 130)

    assert [p.as_tuple() for p in cal.points] == [(0.0, 40.0), (200.0, 100.0)]


def test_reset_then_same_clicks_reproduce_scale():
    cal = engine()
    cal.record_point(12.5, 40)
    cal.record_point(90, 77.25)
    first = cal.compute_scale()

    cal.reset()
    assert cal.scale is None
    cal.record_point(12.5, 40)
    cal.record_point(90, 77.25)

    assert cal.compute_scale().pixels_per_cm == first.pixels_per_cm


def test_selecting_reference_drops_cached_scale():
    cal = engine()
    cal.record_point(0, 0)
    cal.record_point(44, 0)
    cal.compute_scale()

    cal.select_reference(get_reference('credit_card'))

    assert cal.scale is None
    assert cal.compute_scale().pixels_per_cm == pytest.approx(44 / 5.4)


def test_unknown_reference_id():
    with pytest.raises(InvalidInputError):
        get_reference('coin_2naira')


@pytest.mark.parametrize('length', [math.nan, math.inf, -math.inf])
def test_non_finite_reference_length_is_invalid(length):
    cal = engine(ReferenceSpec.custom(length))
    cal.record_point(0, 0)
    cal.record_point(40, 0)

    with pytest.raises(InvalidInputError):
        cal.compute_scale()


@pytest.mark.parametrize('x,y', [(math.nan, 0), (0, math.inf), (-math.inf, 10)])
def test_non_finite_click_is_rejected(x, y):
    cal = engine()

    with pytest.raises(InvalidInputError):
        cal.record_point(x, y)

    assert cal.points == []
