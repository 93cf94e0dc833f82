from pycrdt import Doc, XmlFragment
from pycrdt import merge_updates as merge_binary_updates

CONTENT_KEY = "content"

# Encoding of an update that carries no structs and no deletions.
EMPTY_UPDATE = b"\x00\x00"


def create_doc() -> Doc:
    doc = Doc()
    doc[CONTENT_KEY] = XmlFragment()
    return doc


def get_content(doc: Doc) -> XmlFragment:
    return doc.get(CONTENT_KEY, type=XmlFragment)


def apply_update(doc: Doc, update: bytes) -> None:
    doc.apply_update(update)


def encode_state_as_update(doc: Doc) -> bytes:
    return doc.get_update()


def encode_state_vector(doc: Doc) -> bytes:
    return doc.get_state()


def get_text(doc: Doc) -> str:
    return str(get_content(doc))


def is_empty_update(update: bytes) -> bool:
    return not update or update == EMPTY_UPDATE


def merge_updates(updates: list[bytes]) -> bytes:
    """Merge updates into one without needing the document they came from."""
    if len(updates) == 1:
        return updates[0]
    return merge_binary_updates(*updates)
