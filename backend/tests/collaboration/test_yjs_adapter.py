from pycrdt import XmlText

from collaboration.infrastructure.yjs_adapter import (
    EMPTY_UPDATE,
    apply_update,
    create_doc,
    encode_state_as_update,
    encode_state_vector,
    get_content,
    get_text,
    is_empty_update,
    merge_updates,
)


def write(doc, text):
    get_content(doc).children.append(XmlText(text))


def test_create_doc():
    doc = create_doc()
    assert get_text(doc) == ""
    assert is_empty_update(encode_state_as_update(doc))


def test_apply_and_get_text():
    doc = create_doc()
    write(doc, "Hello, world!")
    assert get_text(doc) == "Hello, world!"


def test_encode_and_restore():
    doc1 = create_doc()
    write(doc1, "Some text")

    update = encode_state_as_update(doc1)
    assert isinstance(update, bytes)
    assert not is_empty_update(update)

    doc2 = create_doc()
    apply_update(doc2, update)
    assert get_text(doc2) == "Some text"


def test_state_vector():
    doc = create_doc()
    write(doc, "test")
    sv = encode_state_vector(doc)
    assert isinstance(sv, bytes)
    assert len(sv) > 0


def test_is_empty_update():
    assert is_empty_update(b"")
    assert is_empty_update(EMPTY_UPDATE)


def test_merge_updates():
    doc1 = create_doc()
    write(doc1, "Hello")
    update1 = encode_state_as_update(doc1)

    write(doc1, " World")
    update2 = encode_state_as_update(doc1)

    merged = merge_updates([update1, update2])
    doc_restored = create_doc()
    apply_update(doc_restored, merged)
    assert get_text(doc_restored) == "Hello World"


def test_merge_single_update_is_unchanged():
    doc = create_doc()
    write(doc, "only")
    update = encode_state_as_update(doc)
    assert merge_updates([update]) == update


def test_concurrent_edits_merge():
    """Two independent docs editing concurrently merge without conflict."""
    doc_a = create_doc()
    doc_b = create_doc()

    write(doc_a, "A")
    update_a = encode_state_as_update(doc_a)

    write(doc_b, "B")
    update_b = encode_state_as_update(doc_b)

    apply_update(doc_a, update_b)
    apply_update(doc_b, update_a)

    text_a = get_text(doc_a)
    text_b = get_text(doc_b)
    assert text_a == text_b
    assert "A" in text_a
    assert "B" in text_a


def test_applying_same_update_twice_is_idempotent():
    source = create_doc()
    write(source, "once")
    update = encode_state_as_update(source)

    doc = create_doc()
    apply_update(doc, update)
    apply_update(doc, update)
    assert get_text(doc) == "once"
