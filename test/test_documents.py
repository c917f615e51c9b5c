from repair_admin.documents import DELETE_FIELD, split_update
from repair_admin.redis_client import RedisDocumentStore, decode_hash, encode_fields


def test_delete_marker_is_a_singleton():
    assert type(DELETE_FIELD)() is DELETE_FIELD
    assert repr(DELETE_FIELD) == "DELETE_FIELD"


def test_split_update():
    to_set, to_delete = split_update({"status": "booked", "serviceReason": DELETE_FIELD, "serviceAmount": DELETE_FIELD})
    assert to_set == {"status": "booked"}
    assert to_delete == ["serviceReason", "serviceAmount"]


def test_redis_field_encoding():
    raw = encode_fields({"status": "repair", "serviceAmount": 450, "address": {"fullName": "Asha"}})
    assert raw["status"] == '"repair"'
    assert decode_hash(raw) == {"status": "repair", "serviceAmount": 450, "address": {"fullName": "Asha"}}
    # Values written without JSON encoding come back as plain strings
    assert decode_hash({"status": "booked"}) == {"status": "booked"}


def test_redis_key_layout():
    store = RedisDocumentStore(r=None, prefix="docs")
    assert store._doc_key("bookings", "doc-1") == "docs:bookings:doc-1"
    assert store._ids_key("bookings") == "docs:bookings:ids"
