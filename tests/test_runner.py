"""End-to-end tests for the platform merge runner."""
import asyncio
from dataclasses import replace

import pytest

from conftest import read_json, sequential_ids, write_json
from listing_merge.jobs.runner import MergeRunner

NOW = "2025-04-15T00:00:00.000Z"


def _merge(settings, platform="olx", now=NOW, ids=None) -> dict:
    runner = MergeRunner(settings, now=now, id_factory=ids or sequential_ids())
    return asyncio.run(runner.merge_platform(platform))


def _by_id(settings, platform="olx") -> dict:
    return {item["id"]: item for item in read_json(settings.old_file(platform))}


def test_matched_listing_keeps_identity(settings):
    """Test that a re-scraped listing keeps id, firstSeenAt and scrapedAt."""
    write_json(settings.old_file("olx"), [{
        "id": "prop_123_original",
        "link": "http://olx.com/1",
        "price": "250000",
        "firstSeenAt": "2023-01-01",
        "description": "Descrição original",
        "imagens": ["img1.jpg"],
        "scrapedAt": "2023-01-01T12:00:00.000Z",
    }])
    write_json(settings.new_file("olx"), [{
        "id": "prop_456_novo",
        "link": "http://olx.com/1",
        "price": "300000",
        "description": "Nova descrição",
        "scrapedAt": "2025-04-14T04:49:42.883Z",
    }])

    _merge(settings)
    written = read_json(settings.old_file("olx"))

    assert len(written) == 1
    item = written[0]
    assert item["id"] == "prop_123_original"
    assert item["firstSeenAt"] == "2023-01-01"
    assert item["scrapedAt"] == "2023-01-01T12:00:00.000Z"
    assert item["lastSeenAt"] == NOW
    assert item["price"] == "300000"
    assert item["description"] == "Nova descrição"
    assert item["imagens"] == ["img1.jpg"]
    assert item["status"] == "updated"
    assert item["platform"] == "olx"


def test_missing_listing_counts_a_miss_and_unkeyed_is_preserved(settings):
    """Test misses on keyed listings and passthrough of unkeyed ones."""
    write_json(settings.old_file("olx"), [
        {"id": "prop_123", "link": "http://olx.com/1", "price": "250000", "status": "updated", "consecutiveMisses": 0},
        {"id": "prop_456", "link": "http://olx.com/2", "price": "350000", "status": "updated",
         "consecutiveMisses": 0, "lastSeenAt": "2025-04-10T00:00:00.000Z"},
        {"id": "prop_789", "price": "450000", "firstSeenAt": "2023-03-01"},
    ])
    write_json(settings.new_file("olx"), [{"link": "http://olx.com/1", "price": "300000"}])

    summary = _merge(settings)
    items = _by_id(settings)

    assert items["prop_456"]["consecutiveMisses"] == 1
    assert items["prop_456"]["status"] == "updated"
    assert items["prop_456"]["lastSeenAt"] == "2025-04-10T00:00:00.000Z"
    assert items["prop_123"]["price"] == "300000"
    assert items["prop_123"]["consecutiveMisses"] == 0
    assert items["prop_789"]["price"] == "450000"
    assert items["prop_789"]["firstSeenAt"] == "2023-03-01"
    assert summary["still_missing"] == 1
    assert summary["preserved_unkeyed"] == 1


def test_new_listing_is_added(settings):
    """Test that an unseen key becomes an added listing."""
    write_json(settings.old_file("olx"), [
        {"id": "prop_123", "link": "http://olx.com/1", "price": "250000", "firstSeenAt": "2023-01-01"},
    ])
    write_json(settings.new_file("olx"), [
        {"link": "http://olx.com/1", "price": "300000"},
        {"link": "http://olx.com/2", "price": "350000", "description": "Novo imóvel"},
    ])

    summary = _merge(settings)
    written = read_json(settings.old_file("olx"))
    by_link = {item["link"]: item for item in written}

    assert len(written) == 2
    added = by_link["http://olx.com/2"]
    assert added["id"] == "new_1"
    assert added["firstSeenAt"] == NOW
    assert added["lastSeenAt"] == NOW
    assert added["scrapedAt"] == NOW
    assert added["status"] == "added"
    assert added["consecutiveMisses"] == 0
    assert added["images"] == []
    assert by_link["http://olx.com/1"]["firstSeenAt"] == "2023-01-01"
    assert summary["added"] == 1
    assert summary["updated"] == 1


def test_third_consecutive_miss_removes(settings):
    """Test removal after the miss threshold."""
    write_json(settings.old_file("olx"), [
        {"id": "prop_123", "link": "http://olx.com/1", "price": "250000", "status": "updated", "consecutiveMisses": 0},
        {"id": "prop_456", "link": "http://olx.com/2", "price": "350000", "status": "updated", "consecutiveMisses": 2},
    ])
    write_json(settings.new_file("olx"), [{"link": "http://olx.com/1", "price": "300000"}])

    summary = _merge(settings)
    items = _by_id(settings)

    assert items["prop_456"]["consecutiveMisses"] == 3
    assert items["prop_456"]["status"] == "removed"
    assert items["prop_123"]["status"] == "updated"
    assert summary["removed"] == 1


def test_long_removed_listings_are_purged(settings):
    """Test retention purge inside a merge run."""
    now = "2025-05-30T00:00:00.000Z"
    write_json(settings.old_file("olx"), [
        {"id": "prop_normal", "link": "http://olx.com/normal", "price": "250000",
         "status": "updated", "lastSeenAt": now, "consecutiveMisses": 0},
        {"id": "prop_removed_recent", "link": "http://olx.com/removed-recent", "price": "350000",
         "status": "removed", "lastSeenAt": "2025-05-26T00:00:00.000Z", "consecutiveMisses": 3},
        {"id": "prop_removed_old", "link": "http://olx.com/removed-old", "price": "450000",
         "status": "removed", "lastSeenAt": "2025-05-24T00:00:00.000Z", "consecutiveMisses": 3},
    ])
    write_json(settings.new_file("olx"), [{"link": "http://olx.com/normal", "price": "280000"}])

    summary = _merge(settings, now=now)
    items = _by_id(settings)

    assert set(items) == {"prop_normal", "prop_removed_recent"}
    assert items["prop_normal"]["price"] == "280000"
    assert items["prop_removed_recent"]["status"] == "removed"
    assert summary["purged"] == 1
    assert summary["total"] == 2


def test_removed_listing_reactivates(settings):
    """Test that a removed listing whose key reappears becomes updated again."""
    write_json(settings.old_file("olx"), [
        {"id": "p1", "link": "L1", "status": "removed", "consecutiveMisses": 4, "lastSeenAt": "2025-04-13T00:00:00.000Z"},
    ])
    write_json(settings.new_file("olx"), [{"link": "L1", "price": "1"}])

    summary = _merge(settings)
    item = _by_id(settings)["p1"]

    assert item["status"] == "updated"
    assert item["consecutiveMisses"] == 0
    assert item["lastSeenAt"] == NOW
    assert summary["reactivated"] == 1


def test_unkeyed_scrape_is_always_new(settings):
    """Test that unkeyed listings never match and pile up as new identities."""
    write_json(settings.new_file("olx"), [{"price": "100", "address": "Rua X"}])

    _merge(settings, ids=sequential_ids("a"))
    _merge(settings, ids=sequential_ids("b"))

    items = _by_id(settings)
    assert set(items) == {"a_1", "b_1"}


def test_empty_new_snapshot_turns_everything_into_misses(settings):
    """Test that an empty scrape does not wipe the store."""
    write_json(settings.old_file("olx"), [
        {"id": "p1", "link": "L1", "status": "updated"},
        {"id": "p2", "link": "L2", "status": "updated", "consecutiveMisses": 2},
    ])
    settings.new_file("olx").parent.mkdir(parents=True, exist_ok=True)
    settings.new_file("olx").write_text("", encoding="utf-8")

    _merge(settings)
    items = _by_id(settings)

    assert items["p1"]["consecutiveMisses"] == 1
    assert items["p2"]["status"] == "removed"


def test_missing_old_snapshot_adds_everything(settings):
    """Test a first run with no persisted store."""
    write_json(settings.new_file("olx"), [{"link": "L1"}, {"link": "L2"}])

    summary = _merge(settings)

    assert summary["added"] == 2
    assert {item["status"] for item in read_json(settings.old_file("olx"))} == {"added"}


def test_bad_records_are_skipped(settings):
    """Test that malformed entries are logged and skipped without aborting."""
    write_json(settings.old_file("olx"), [{"id": "p1", "link": "L1"}])
    write_json(settings.new_file("olx"), [
        "garbage",
        {"link": "L2", "images": [1, 2]},
        {"link": "L1", "price": "5"},
    ])

    summary = _merge(settings)

    assert summary["skipped"] == 2
    assert summary["updated"] == 1
    assert [item["id"] for item in read_json(settings.old_file("olx"))] == ["p1"]


def test_unreadable_persisted_entries_survive(settings):
    """Test that persisted entries the model rejects are written back untouched."""
    broken_images = {"id": "p1", "link": "L1", "images": ["http://a", None]}
    unknown_status = {"id": "p2", "link": "L2", "status": "active"}
    write_json(settings.old_file("olx"), [broken_images, unknown_status, "garbage", {"id": "p3", "link": "L3"}])
    write_json(settings.new_file("olx"), [{"link": "L3"}])

    summary = _merge(settings)
    written = read_json(settings.old_file("olx"))

    assert broken_images in written
    assert unknown_status in written
    assert "garbage" in written
    assert next(i for i in written if isinstance(i, dict) and i["id"] == "p3")["status"] == "updated"
    assert summary["preserved_invalid"] == 3
    assert summary["skipped"] == 0
    assert summary["total"] == 4


def test_missing_legacy_record_gets_a_status(settings):
    """Test that stored records without a status are written with one."""
    write_json(settings.old_file("olx"), [{"id": "p1", "link": "L1"}, {"id": "p2", "price": "1"}])
    write_json(settings.new_file("olx"), [])

    _merge(settings)
    items = _by_id(settings)

    assert items["p1"]["status"] == "updated"
    assert items["p1"]["consecutiveMisses"] == 1
    assert items["p2"]["status"] == "updated"


def test_repeated_scrape_key_is_flagged(settings):
    """Test that a listing scraped twice in one run is stored with hasDuplicates."""
    write_json(settings.old_file("olx"), [])
    write_json(settings.new_file("olx"), [{"link": "L1", "price": "1"}, {"link": "L1", "price": "2"}])

    summary = _merge(settings)
    written = read_json(settings.old_file("olx"))

    assert len(written) == 1
    assert written[0]["price"] == "2"
    assert written[0]["hasDuplicates"] is True
    assert summary["duplicate_keys"] == 1


def test_null_in_scrape_clears_stored_field(settings):
    """Test that an explicit null from the scraper clears the stored value."""
    write_json(settings.old_file("olx"), [{"id": "p1", "link": "L1", "price": "250000", "status": "updated"}])
    write_json(settings.new_file("olx"), [{"link": "L1", "price": None}])

    _merge(settings)

    assert _by_id(settings)["p1"].get("price") is None


def test_retry_with_same_inputs_is_idempotent(settings):
    """Test that re-running a merge on the same old/new pair gives the same store."""
    old = [
        {"id": "p1", "link": "L1", "price": "1", "status": "updated", "firstSeenAt": "2025-01-01"},
        {"id": "p2", "link": "L2", "status": "updated", "consecutiveMisses": 1},
        {"id": "p3", "price": "x"},
    ]
    new = [{"link": "L1", "price": "2"}, {"link": "L3"}]
    write_json(settings.new_file("olx"), new)

    write_json(settings.old_file("olx"), old)
    _merge(settings, ids=sequential_ids())
    first = read_json(settings.old_file("olx"))

    write_json(settings.old_file("olx"), old)
    _merge(settings, ids=sequential_ids())
    second = read_json(settings.old_file("olx"))

    assert first == second


def test_reapplying_scrape_only_advances_last_seen(settings):
    """Test applying the same scrape twice in succession for known listings."""
    write_json(settings.old_file("olx"), [
        {"id": "p1", "link": "L1", "price": "1", "status": "updated", "firstSeenAt": "2025-01-01", "scrapedAt": "T0"},
    ])
    write_json(settings.new_file("olx"), [{"link": "L1", "price": "2"}])

    _merge(settings, now="2025-04-15T00:00:00.000Z")
    first = read_json(settings.old_file("olx"))
    _merge(settings, now="2025-04-16T00:00:00.000Z")
    second = read_json(settings.old_file("olx"))

    assert second[0]["lastSeenAt"] == "2025-04-16T00:00:00.000Z"
    for item in (first[0], second[0]):
        item.pop("lastSeenAt")
    assert first == second


def test_legacy_status_and_missing_ids_are_normalized(settings):
    """Test stores written by older tooling."""
    write_json(settings.old_file("olx"), [
        {"id": "p1", "link": "L1", "__status": "removed", "consecutiveMisses": 3},
        {"price": "no id, no key"},
    ])
    write_json(settings.new_file("olx"), [])

    _merge(settings, ids=sequential_ids("legacy"))
    written = read_json(settings.old_file("olx"))

    assert all("__status" not in item for item in written)
    assert {item["id"] for item in written} == {"p1", "legacy_1"}
    assert next(i for i in written if i["id"] == "p1")["status"] == "removed"


def test_ci_counters_are_appended(settings, tmp_path):
    """Test export of counters to the CI env file."""
    env_file = tmp_path / "github_env"
    env_file.write_text("EXISTING=1\n", encoding="utf-8")
    settings = replace(settings, ci_env_file=env_file)
    write_json(settings.old_file("olx"), [
        {"id": "p1", "link": "L1"},
        {"id": "p2", "link": "L2", "status": "updated", "consecutiveMisses": 2},
    ])
    write_json(settings.new_file("olx"), [{"link": "L1"}, {"link": "L3"}])

    _merge(settings)

    assert env_file.read_text(encoding="utf-8").splitlines() == [
        "EXISTING=1",
        "OLX_ADDED=1",
        "OLX_UPDATED=1",
        "OLX_REMOVED=1",
        "OLX_TOTAL=3",
    ]


def test_run_processes_platforms_independently(settings):
    """Test a multi-platform run."""
    settings = replace(settings, platforms=("olx", "zap"))
    write_json(settings.new_file("olx"), [{"link": "https://olx.com.br/1"}])
    write_json(settings.new_file("zap"), [{"link": "https://zap.com.br/1"}, {"link": "https://zap.com.br/2"}])

    runner = MergeRunner(settings, now=NOW, id_factory=sequential_ids())
    summaries = asyncio.run(runner.run())

    assert summaries["olx"]["total"] == 1
    assert summaries["zap"]["total"] == 2
    assert read_json(settings.old_file("zap"))[0]["platform"] == "zap"


def test_write_failure_propagates(settings, tmp_path):
    """Test that a failed write aborts the run."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    settings = replace(settings, old_dir=blocker / "results")
    write_json(settings.new_file("olx"), [{"link": "L1"}])

    with pytest.raises(OSError):
        _merge(settings)
