import pytest

from fwupkit.resources import ResourceEntry, find_by_name, get_all, get_from_task
from fwupkit.util import FwupError


def _config():
    return {
        "file-resource": {
            "rootfs.img": {"length": [100]},
            "zImage": {"length": [20]},
            "boot.scr": {"length": [5]},
        }
    }


def test_get_all_lists_every_resource_in_reverse_order():
    entries = get_all(_config())
    assert [e.name for e in entries] == ["boot.scr", "zImage", "rootfs.img"]


def test_get_all_entries_start_unprocessed_and_hold_section():
    config = _config()
    entries = get_all(config)
    assert all(e.processed is False for e in entries)
    assert entries[0].resource is config["file-resource"]["boot.scr"]


def test_get_all_empty_config():
    assert get_all({}) == []


def test_get_from_task_uses_only_task_resources():
    config = _config()
    task = {"on-resource": {"zImage": {}, "rootfs.img": {}}}
    entries = get_from_task(config, task)
    assert [e.name for e in entries] == ["rootfs.img", "zImage"]
    assert entries[1].resource is config["file-resource"]["zImage"]


def test_get_from_task_without_resources():
    assert get_from_task(_config(), {}) == []


def test_get_from_task_missing_metadata_raises():
    task = {"on-resource": {"zImage": {}, "missing.bin": {}}}
    with pytest.raises(FwupError) as excinfo:
        get_from_task(_config(), task)
    assert str(excinfo.value) == (
        "Resource 'missing.bin' used, but metadata is missing. Archive is corrupt."
    )


def test_find_by_name_returns_matching_entry():
    entries = get_all(_config())
    found = find_by_name(entries, "zImage")
    assert found is entries[1]
    assert found.resource == {"length": [20]}


def test_find_by_name_returns_none_when_absent():
    assert find_by_name(get_all(_config()), "nothing") is None


def test_find_by_name_sees_processed_flag_changes():
    entries = [ResourceEntry("a", {}), ResourceEntry("b", {})]
    find_by_name(entries, "b").processed = True
    assert [e.processed for e in entries] == [False, True]