"""
Tests for the library config module

NOTE: Python makes it hard to change env vars in a way that will effect import
    time, so we're relying on the fact that aconfig is well tested and not
    actually validating the env-var override behavior!
"""

# Third Party
import pytest

# First Party
import aconfig

# Local
from grafana_reconciler import config


def test_config_defaults():
    """Make sure the documented defaults are loaded"""
    assert config.requeue_delay_seconds == 10
    assert config.default_client_timeout_seconds == 5
    assert config.default_grafana_port == 3000
    assert config.grafana_kind == "Grafana"
    assert config.openshift is False


def test_config_unknown_key():
    """Make sure an unknown key is an AttributeError"""
    with pytest.raises(AttributeError):
        config.not_a_real_key  # pylint: disable=pointless-statement


def test_loaded_config_is_valid():
    """Make sure the shipped config passes the shipped validation"""
    assert not config.validation.get_invalid_params(
        config.config.library_config, config.config.validation_config
    )


########################
## get_invalid_params ##
########################


def test_get_invalid_params_all_valid_params():
    """Test that get_invalid_params returns no invalid params when all are set
    to valid values
    """
    assert not config.validation.get_invalid_params(
        config=aconfig.Config({"key": 1}),
        validation_config=aconfig.Config({"key": {"type": "int", "min": 0, "max": 1}}),
    )


def test_get_invalid_params_some_invalid_params():
    """Test that get_invalid_params returns only the invalid parameters when
    some are invalid and some are valid
    """
    assert config.validation.get_invalid_params(
        config=aconfig.Config({"key": 3, "str": "foo"}),
        validation_config=aconfig.Config(
            {
                "key": {"type": "int", "min": 0, "max": 1},
                "str": {"type": "str", "min_len": 1},
            },
        ),
    ) == ["key"]


def test_get_invalid_params_nested():
    """Test that nested keys are validated with dotted names"""
    assert config.validation.get_invalid_params(
        config=aconfig.Config({"outer": {"inner": "x"}}),
        validation_config=aconfig.Config(
            {"outer": {"inner": {"type": "bool"}}},
        ),
    ) == ["outer.inner"]


def test_get_invalid_params_missing_optional():
    """Test that a missing optional value is valid and a missing required one
    is not
    """
    assert config.validation.get_invalid_params(
        config=aconfig.Config({}),
        validation_config=aconfig.Config(
            {
                "opt": {"type": "str", "optional": True},
                "req": {"type": "str"},
            }
        ),
    ) == ["req"]


#####################
## parameter types ##
#####################


def test_number_parameter():
    """Test all validation cases for _NumberParameter"""
    ParamType = config.validation._NumberParameter

    # Valid Cases
    assert ParamType().validate(1)
    assert ParamType().validate(1.2)
    assert ParamType(min=0).validate(1)
    assert ParamType(max=1).validate(0.5)

    # Invalid Cases
    assert not ParamType().validate("1")
    assert not ParamType().validate(True)
    assert not ParamType(min=2).validate(1)
    assert not ParamType(max=1).validate(1.5)


def test_int_float_parameters():
    """Test that the int and float parameters only accept their own type"""
    assert config.validation._IntParameter().validate(1)
    assert not config.validation._IntParameter().validate(1.0)
    assert config.validation._FloatParameter().validate(1.0)
    assert not config.validation._FloatParameter().validate(1)


def test_str_parameter():
    """Test all validation cases for _StrParameter"""
    ParamType = config.validation._StrParameter
    assert ParamType().validate("")
    assert ParamType(min_len=1, max_len=3).validate("abc")
    assert not ParamType(min_len=1).validate("")
    assert not ParamType(max_len=2).validate("abc")
    assert not ParamType().validate(1)


def test_bool_parameter():
    """Test all validation cases for _BoolParameter"""
    ParamType = config.validation._BoolParameter
    assert ParamType().validate(True)
    assert ParamType().validate(False)
    assert not ParamType().validate("true")


def test_enum_parameter():
    """Test all validation cases for _EnumParameter"""
    ParamType = config.validation._EnumParameter
    assert ParamType(values=["a", "b"]).validate("a")
    assert not ParamType(values=["a", "b"]).validate("c")
    with pytest.raises(AssertionError):
        ParamType(values=[])


def test_list_parameter():
    """Test all validation cases for _ListParameter"""
    ParamType = config.validation._ListParameter
    assert ParamType().validate([])
    assert ParamType(item_type="str").validate(["a", "b"])
    assert not ParamType(item_type="str").validate(["a", 1])
    assert not ParamType(min_len=1).validate([])
    assert not ParamType(max_len=1).validate([1, 2])
    assert not ParamType().validate("not a list")
