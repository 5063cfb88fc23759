import itertools

import pytest

from pylandice.errors import (
    ConfigError,
    ErrorKind,
    LandIceError,
    MeshError,
    StepFailedError,
    combine,
    describe,
    fired,
)

KINDS = [k for k in ErrorKind if k is not ErrorKind.NONE]


def test_combine_empty_and_none():
    assert combine() == ErrorKind.NONE
    assert combine(ErrorKind.NONE, ErrorKind.NONE) == ErrorKind.NONE
    assert not combine(ErrorKind.NONE)


def test_combine_is_set_union():
    err = combine(ErrorKind.CFL, ErrorKind.PROGNOSTIC, ErrorKind.CFL)
    assert ErrorKind.CFL in err
    assert ErrorKind.PROGNOSTIC in err
    assert ErrorKind.TENDENCY not in err
    assert fired(err) == [ErrorKind.CFL, ErrorKind.PROGNOSTIC]


def test_combine_ignores_order_and_grouping():
    sample = [ErrorKind.TENDENCY, ErrorKind.NONE, ErrorKind.VELOCITY, ErrorKind.INTERVAL]
    expected = combine(*sample)
    for perm in itertools.permutations(sample):
        assert combine(*perm) == expected
        assert combine(combine(*perm[:2]), combine(*perm[2:])) == expected


def test_every_kind_has_a_stage():
    text = describe(combine(*KINDS))
    for k in KINDS:
        assert k.name in text
    assert describe(ErrorKind.NONE) == "none"


def test_step_failed_error_carries_kind():
    exc = StepFailedError(ErrorKind.CFL, step=3)
    assert exc.err == ErrorKind.CFL
    assert exc.step == 3
    assert "step 3" in str(exc)
    assert isinstance(exc, LandIceError)


@pytest.mark.parametrize("cls", [MeshError, ConfigError])
def test_fatal_errors_are_value_errors(cls):
    with pytest.raises(ValueError):
        raise cls("bad")
