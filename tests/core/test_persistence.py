from chatcore.sessions import JsonFileStorage, Message, QuotaLimits, SessionStore


def test_json_file_storage_roundtrip(tmp_path):
    storage = JsonFileStorage(tmp_path / "store")
    assert storage.get("chat-store") is None
    storage.set("chat-store", '{"a":1}')
    assert storage.get("chat-store") == '{"a":1}'
    assert (tmp_path / "store" / "chat-store.json").exists()
    storage.remove("chat-store")
    assert storage.get("chat-store") is None


def test_key_is_sanitized(tmp_path):
    storage = JsonFileStorage(tmp_path)
    storage.set("../escape/key", "x")
    assert list(p.name for p in tmp_path.iterdir()) == [".._escape_key.json"]


def test_store_writes_through_to_file(tmp_path):
    storage = JsonFileStorage(tmp_path)
    store = SessionStore(QuotaLimits(), storage=storage)
    s = store.create_session()
    store.append_message(s.id, Message.create("user", "persist"))
    reloaded = SessionStore(QuotaLimits(), storage=JsonFileStorage(tmp_path))
    reloaded.load()
    assert reloaded.get_session(s.id).messages[0].content == "persist"
    assert reloaded.current_session_id == s.id


def test_storage_failure_does_not_break_store(tmp_path):
    class Broken:
        def get(self, key):
            return None

        def set(self, key, value):
            raise OSError("disk full")

        def remove(self, key):
            pass

    store = SessionStore(QuotaLimits(), storage=Broken())
    s = store.create_session()
    store.append_message(s.id, Message.create("user", "still here"))
    assert store.get_session(s.id).messages[0].content == "still here"


def test_undecodable_file_loads_as_empty_store(tmp_path):
    (tmp_path / "chat-store.json").write_bytes(b"\xff\xfe{")
    store = SessionStore(QuotaLimits(), storage=JsonFileStorage(tmp_path))
    store.load()
    assert len(store) == 0
