import pytest

from otnode.nvs import NvsError, NvsKeyNotFound, NvsNoSpace, StringStore, key_id_shift

SAMPLES = ["otapp_0 TEST_0", "otapp_1 TEST_1", "otapp_2 TEST_2"]


def test_key_id_shift_values():
    assert key_id_shift(0) == 0x100
    assert key_id_shift(255) == 0


def test_key_id_shift_distinct_below_255():
    keys = {key_id_shift(k) for k in range(255)}
    assert len(keys) == 255
    assert all(key & 0xFF == 0 for key in keys)


@pytest.mark.parametrize("key_id", range(3))
def test_save_clear_delete_cycle(key_id):
    store = StringStore()
    store.save_string(SAMPLES[key_id], key_id)
    assert store.read_string(key_id, 128) == SAMPLES[key_id]
    store.save_string("", key_id)
    assert store.read_string(key_id, 128) == ""
    store.delete_string(key_id)
    with pytest.raises(NvsKeyNotFound):
        store.read_string(key_id, 128)


def test_read_missing_key():
    with pytest.raises(NvsKeyNotFound):
        StringStore().read_string(5)


def test_delete_missing_key():
    with pytest.raises(NvsKeyNotFound):
        StringStore().delete_string(5)


def test_read_too_small_buffer():
    store = StringStore()
    store.save_string("abcd", 1)
    with pytest.raises(NvsError):
        store.read_string(1, 4)
    assert store.read_string(1, 5) == "abcd"


def test_no_space():
    store = StringStore(capacity=8)
    store.save_string("abcd", 0)
    with pytest.raises(NvsNoSpace):
        store.save_string("efghi", 1)


def test_overwrite_does_not_count_old_value():
    store = StringStore(capacity=8)
    store.save_string("abcdefgh", 0)
    store.save_string("12345678", 0)
    assert store.read_string(0) == "12345678"


def test_invalid_arguments():
    store = StringStore()
    with pytest.raises(NvsError):
        store.save_string(None, 0)
    with pytest.raises(NvsError):
        store.save_string("x", 256)
    with pytest.raises(NvsError):
        store.read_string(-1)


def test_persistence(tmp_path):
    path = tmp_path / "store.json"
    store = StringStore(path)
    store.save_string(SAMPLES[0], 0)
    store.save_string(SAMPLES[1], 7)
    store.delete_string(7)
    reopened = StringStore(path)
    assert reopened.read_string(0) == SAMPLES[0]
    with pytest.raises(NvsKeyNotFound):
        reopened.read_string(7)


def test_corrupt_file(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("not json", encoding="utf-8")
    with pytest.raises(NvsError):
        StringStore(path)