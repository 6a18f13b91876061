import pytest

from otnode.device_name import (
    DOMAIN,
    DeviceIdentity,
    DeviceNameError,
    DeviceNameTooLong,
    DeviceNameTooShort,
    DeviceType,
    add_domain,
    device_type_of,
    eui_is_same,
    eui_of,
    host_name_to_device_name_full,
    make_device_name_full,
)

EUI = bytes(range(8))
OTHER_EUI = bytes([0xFF] * 8)


@pytest.fixture
def identity():
    ident = DeviceIdentity(EUI)
    ident.set_name("lamp", DeviceType.CONTROL_PANEL)
    return ident


def test_make_name_format():
    assert make_device_name_full("lamp", 1, EUI) == "lamp_1_0001020304050607"


def test_make_name_rejects_no_type():
    with pytest.raises(DeviceNameError):
        make_device_name_full("lamp", DeviceType.NO_DEVICE, EUI)


def test_make_name_rejects_type_out_of_range():
    with pytest.raises(DeviceNameError):
        make_device_name_full("lamp", len(DeviceType), EUI)


def test_make_name_too_long():
    with pytest.raises(DeviceNameTooLong):
        make_device_name_full("a" * 20, 1, EUI)


def test_make_name_bad_eui():
    with pytest.raises(DeviceNameError):
        make_device_name_full("lamp", 1, b"\x01\x02")


@pytest.mark.parametrize("dtype", [t for t in DeviceType if t != DeviceType.NO_DEVICE])
def test_device_type_round_trip(dtype):
    assert device_type_of(make_device_name_full("lamp", dtype, EUI)) == dtype


@pytest.mark.parametrize("name", ["lamp_0_0001020304050607", "lamp_x_0001020304050607", "lamp"])
def test_device_type_invalid(name):
    with pytest.raises(DeviceNameError):
        device_type_of(name)


def test_device_type_too_long():
    with pytest.raises(DeviceNameTooLong):
        device_type_of("device1_1_588c81fffe301ea4000000")


def test_eui_round_trip():
    assert eui_of(make_device_name_full("lamp", 2, EUI)) == EUI.hex()


@pytest.mark.parametrize("name", ["", "lamp", "lamp_1_abc", "x" * 40])
def test_eui_of_invalid(name):
    with pytest.raises(DeviceNameError):
        eui_of(name)


def test_eui_is_same():
    name = make_device_name_full("lamp", 1, EUI)
    assert eui_is_same(name, EUI.hex()) is True
    assert eui_is_same(name, OTHER_EUI.hex()) is False


def test_add_domain_and_back():
    name = make_device_name_full("lamp", 1, EUI)
    host = add_domain(name)
    assert host == name + DOMAIN
    assert host_name_to_device_name_full(host) == name


def test_add_domain_too_short():
    with pytest.raises(DeviceNameTooShort):
        add_domain("lamp_1_abc")


def test_add_domain_too_long():
    with pytest.raises(DeviceNameTooLong):
        add_domain("device1_1_588c81fffe301ea4000000")


def test_host_name_without_dot():
    with pytest.raises(DeviceNameError):
        host_name_to_device_name_full("lamp_1_0001020304050607")


def test_identity_unset_and_delete(identity):
    assert identity.full_name == make_device_name_full("lamp", 1, EUI)
    identity.delete()
    assert identity.full_name is None
    assert DeviceIdentity(EUI).full_name is None


def test_full_is_same(identity):
    assert identity.full_is_same(make_device_name_full("lamp", 1, EUI)) is True
    assert identity.full_is_same(make_device_name_full("lamp", 1, OTHER_EUI)) is False


def test_full_is_same_too_long(identity):
    with pytest.raises(DeviceNameTooLong):
        identity.full_is_same("device1_1_588c81fffe301ea4000000")


def test_base_is_same(identity):
    assert identity.base_is_same(make_device_name_full("lamp", 3, OTHER_EUI)) is True
    assert identity.base_is_same(make_device_name_full("desk", 1, EUI)) is False


def test_base_is_same_too_short(identity):
    with pytest.raises(DeviceNameTooShort):
        identity.base_is_same("lamp_1_abc")


def test_base_is_same_unset():
    with pytest.raises(DeviceNameError):
        DeviceIdentity(EUI).base_is_same(make_device_name_full("lamp", 1, EUI))


def test_is_matching(identity):
    assert identity.is_matching(make_device_name_full("lamp", 1, EUI)) is False
    assert identity.is_matching(make_device_name_full("lamp", 1, OTHER_EUI)) is True
    assert identity.is_matching(make_device_name_full("desk", 1, OTHER_EUI)) is False
    assert identity.is_matching("lamp_1_abc") is False
    assert identity.is_matching("device1_1_588c81fffe301ea4000000") is False