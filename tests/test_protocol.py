# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import datetime

import pytest

from tplink_smarthome.exceptions import DeviceResponseError, SchemaError, ValidationError, ProtocolError
from tplink_smarthome.protocol import (
    SmartResponse,
    SysInfoResponse,
    get_sysinfo_command,
    set_relay_state_command,
    set_dev_alias_command,
    reboot_command,
    get_realtime_command,
    get_time_command,
    dimmer_set_brightness_command,
    get_light_state_command,
    transition_light_state_command,
    merge_commands,
    BULB_EMETER_MODULE,
)

from conftest import HS100_SYSINFO

def test_command_shapes():
    assert get_sysinfo_command.to_json() == {"system": {"get_sysinfo": {}}}
    assert set_relay_state_command(True).to_json() == {"system": {"set_relay_state": {"state": 1}}}
    assert set_relay_state_command(False).to_json() == {"system": {"set_relay_state": {"state": 0}}}
    assert set_dev_alias_command("Lamp").to_json() == {"system": {"set_dev_alias": {"alias": "Lamp"}}}
    assert reboot_command(5).to_json() == {"system": {"reboot": {"delay": 5}}}
    assert get_realtime_command().to_json() == {"emeter": {"get_realtime": {}}}
    assert get_realtime_command(BULB_EMETER_MODULE).to_json() == {"smartlife.iot.common.emeter": {"get_realtime": {}}}
    assert get_time_command().to_json() == {"time": {"get_time": {}}}
    assert dimmer_set_brightness_command(70).to_json() == {"smartlife.iot.dimmer": {"set_brightness": {"brightness": 70}}}
    assert get_light_state_command.to_json() == {"smartlife.iot.smartbulb.lightingservice": {"get_light_state": {}}}

def test_transition_light_state_only_sends_given_fields():
    assert transition_light_state_command(on_off=False).to_json() == {
        "smartlife.iot.smartbulb.lightingservice": {
            "transition_light_state": {"ignore_default": 1, "transition_period": 0, "on_off": 0},
        },
    }
    params = transition_light_state_command(brightness=40, transition_period_ms=500).params
    assert params == {"ignore_default": 1, "transition_period": 500, "brightness": 40}

def test_to_json_returns_a_copy():
    command = set_relay_state_command(True)
    command.to_json()["system"]["set_relay_state"]["state"] = 0
    assert command.to_json() == {"system": {"set_relay_state": {"state": 1}}}

def test_extract_result():
    payload = {"system": {"set_relay_state": {"err_code": 0}}}
    assert SmartResponse.extract_result(payload, "system", "set_relay_state") == {"err_code": 0}

def test_extract_result_ignores_extra_fields():
    payload = {
        "system": {"get_sysinfo": {"model": "HS100(UK)", "err_code": 0, "future_field": [1, 2]}, "other": {}},
        "unrelated": {},
    }
    result = SmartResponse.extract_result(payload, "system", "get_sysinfo")
    assert result["future_field"] == [1, 2]

def test_method_err_code_raises_device_response_error():
    payload = {"system": {"set_dev_alias": {"err_code": -3, "err_msg": "invalid argument"}}}
    with pytest.raises(DeviceResponseError) as exc_info:
        SmartResponse.extract_result(payload, "system", "set_dev_alias")
    assert exc_info.value.err_code == -3
    assert exc_info.value.err_msg == "invalid argument"
    assert "system.set_dev_alias" in str(exc_info.value)
    assert isinstance(exc_info.value, ProtocolError)

def test_module_err_code_raises_device_response_error():
    payload = {"smartlife.iot.dimmer": {"err_code": -1, "err_msg": "module not support"}}
    with pytest.raises(DeviceResponseError) as exc_info:
        SmartResponse.extract_result(payload, "smartlife.iot.dimmer", "set_brightness")
    assert exc_info.value.err_code == -1
    assert exc_info.value.err_msg == "module not support"

@pytest.mark.parametrize("payload", [
    {},
    {"system": {}},
    {"system": "oops"},
    {"system": {"get_sysinfo": None}},
    {"system": {"get_sysinfo": {"err_code": "zero"}}},
])
def test_malformed_responses_raise_schema_error(payload):
    with pytest.raises(SchemaError):
        SmartResponse.extract_result(payload, "system", "get_sysinfo")

def test_sysinfo_response():
    response = get_sysinfo_command.create_response({"system": {"get_sysinfo": HS100_SYSINFO}})
    assert isinstance(response, SysInfoResponse)
    assert response.sysinfo.alias == "Lamp"
    assert response.name == "Get System Info"

def test_sysinfo_response_requires_model():
    with pytest.raises(SchemaError):
        get_sysinfo_command.create_response({"system": {"get_sysinfo": {"alias": "Lamp", "err_code": 0}}})

def test_time_response():
    payload = {"time": {"get_time": {"year": 2024, "month": 3, "mday": 9, "hour": 14, "min": 5, "sec": 30, "err_code": 0}}}
    response = get_time_command().create_response(payload)
    assert response.time == datetime.datetime(2024, 3, 9, 14, 5, 30)

def test_merge_commands():
    merged = merge_commands(
        get_sysinfo_command.to_json(),
        set_relay_state_command(True).to_json(),
        get_realtime_command().to_json(),
    )
    assert merged == {
        "system": {"get_sysinfo": {}, "set_relay_state": {"state": 1}},
        "emeter": {"get_realtime": {}},
    }

def test_merge_commands_rejects_duplicates():
    with pytest.raises(ValidationError):
        merge_commands(set_relay_state_command(True).to_json(), set_relay_state_command(False).to_json())

def test_merge_commands_rejects_module_without_methods():
    with pytest.raises(ValidationError):
        merge_commands(get_sysinfo_command.to_json(), {"emeter": "get_realtime"})

def test_each_merged_command_extracts_its_own_result():
    payload = {
        "system": {"get_sysinfo": HS100_SYSINFO, "set_relay_state": {"err_code": 0}},
        "emeter": {"get_realtime": {"power": 3.5, "err_code": 0}},
    }
    assert get_sysinfo_command.create_response(payload).sysinfo.model == "HS100(UK)"
    assert get_realtime_command().create_response(payload).realtime.power == 3.5
