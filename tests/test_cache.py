import threading

import pytest

from conference_room_cal.service.cache import DocumentCache


def test_initially_empty() -> None:
    cache = DocumentCache()
    assert cache.lookup("Alle") is None
    assert cache.rooms() == []
    assert cache.snapshot().generation == 0
    assert cache.snapshot().published_at is None


def test_publish_replaces_everything() -> None:
    cache = DocumentCache()
    cache.publish({"Alle": b"all-1", "Saal1": b"s1-1", "Saal3": b"s3-1"}, "Alle")
    old = cache.snapshot()

    cache.publish({"Alle": b"all-2", "Saal1": b"s1-2", "Saal2": b"s2-2"}, "Alle")

    assert cache.lookup("Saal3") is None
    assert cache.lookup("Saal1") == b"s1-2"
    assert cache.rooms() == ["Alle", "Saal1", "Saal2"]
    assert cache.snapshot().generation == 2
    # A snapshot taken earlier keeps its own documents.
    assert old.documents["Saal3"] == b"s3-1"
    assert old.generation == 1


def test_snapshot_is_read_only_copy() -> None:
    cache = DocumentCache()
    documents = {"Alle": b"all"}
    snapshot = cache.publish(documents, "Alle")

    documents["Saal1"] = b"late"
    assert cache.lookup("Saal1") is None
    with pytest.raises(TypeError):
        snapshot.documents["Saal1"] = b"x"  # type: ignore[index]


def test_rooms_list_all_key_first() -> None:
    cache = DocumentCache()
    cache.publish({"Zelt": b"", "Alle": b"", "Aula": b""}, "Alle")
    assert cache.rooms() == ["Alle", "Aula", "Zelt"]


def test_readers_never_see_mixed_snapshots() -> None:
    cache = DocumentCache()
    rooms = [f"Saal{i}" for i in range(20)]
    stop = threading.Event()
    mixed: list[set[bytes]] = []

    def reader() -> None:
        while not stop.is_set():
            values = set(cache.snapshot().documents.values())
            if len(values) > 1:
                mixed.append(values)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for generation in range(200):
        tag = f"gen-{generation}".encode()
        cache.publish({room: tag for room in rooms}, None)
    stop.set()
    for thread in threads:
        thread.join()

    assert mixed == []
    assert cache.snapshot().generation == 200
