from soundmap.cache import OfflineCache


def test_in_memory_by_default():
    cache = OfflineCache()
    cache.store_clips([{"id": "a"}])
    cache.store_position(52.52, 13.405)
    assert cache.get_clips() == [{"id": "a"}]
    assert cache.get_position() == {"lat": 52.52, "lng": 13.405}
    assert cache.path is None


def test_persists_to_file(tmp_path):
    path = tmp_path / "offline" / "cache.json"
    cache = OfflineCache(str(path))
    cache.store_clips([{"id": "a", "title": "Tram Bell Symphony"}])
    cache.store_preferences("user-1", ["a"], ["b"])

    reloaded = OfflineCache(str(path))
    assert reloaded.get_clips()[0]["title"] == "Tram Bell Symphony"
    assert reloaded.get_preferences("user-1") == {"likes": ["a"], "dislikes": ["b"]}


def test_unknown_profile_has_empty_preferences():
    assert OfflineCache().get_preferences("nobody") == {"likes": [], "dislikes": []}


def test_corrupt_file_is_ignored(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json")
    cache = OfflineCache(str(path))
    assert cache.get_clips() == []
    assert cache.get_position() is None


def test_clear(tmp_path):
    path = tmp_path / "cache.json"
    cache = OfflineCache(str(path))
    cache.store_clips([{"id": "a"}])
    cache.clear()
    assert OfflineCache(str(path)).get_clips() == []


def test_non_object_file_is_ignored(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("[]")
    cache = OfflineCache(str(path))
    assert cache.get_clips() == []
    assert cache.get_preferences("user-1") == {"likes": [], "dislikes": []}

    cache.store_position(52.52, 13.405)
    assert OfflineCache(str(path)).get_position() == {"lat": 52.52, "lng": 13.405}


def test_collections_persist(tmp_path):
    path = tmp_path / "cache.json"
    OfflineCache(str(path)).store_collection("liked:user-1", [{"id": "a"}])

    reloaded = OfflineCache(str(path))
    assert reloaded.get_collection("liked:user-1") == [{"id": "a"}]
    assert reloaded.get_collection("archived:user-1") == []
