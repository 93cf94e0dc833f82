"""Seed script: creates demo folders and notes via the REST API.

Tokens are signed locally with JWT_SECRET, so the script and the service
must share the same settings.

Usage:
    python scripts/seed.py              # uses http://localhost:8000
    python scripts/seed.py http://host  # custom base URL
"""

import sys
from uuid import NAMESPACE_URL, UUID, uuid5

import httpx

from shared.security import create_access_token

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

USERS = {
    "alice": UUID("00000000-0000-4000-8000-00000000a11c"),
    "bob": UUID("00000000-0000-4000-8000-000000000b0b"),
}

FOLDERS = [
    {"name": "Work", "color": "#2196F3", "owner": "alice"},
    {"name": "Personal", "color": "#4CAF50", "owner": "alice"},
    {"name": "Reading List", "color": "#FF9800", "owner": "bob"},
]

NOTES = [
    {"title": "Getting Started", "folder": "Work", "owner": "alice"},
    {"title": "Meeting Notes", "folder": "Work", "owner": "alice", "editors": ["bob"]},
    {"title": "Groceries", "folder": "Personal", "owner": "alice"},
    {"title": "Books for 2025", "folder": "Reading List", "owner": "bob"},
]


def seeded_id(kind: str, owner: str, name: str) -> UUID:
    # Stable ids make re-running the script a no-op.
    return uuid5(NAMESPACE_URL, f"seed:{kind}:{owner}:{name}")


def create(client: httpx.Client, token: str, collection: str, row: dict, label: str) -> None:
    resp = client.post(
        f"{BASE_URL}/api/{collection}",
        json=row,
        headers={"Authorization": f"Bearer {token}"},
    )
    if resp.status_code == 201:
        print(f"  Created {label} ({row['id']})")
    elif resp.status_code == 409:
        print(f"  {label} already exists, skipping")
    else:
        resp.raise_for_status()


def share(client: httpx.Client, token: str, note_id: str, user_id: UUID, label: str) -> None:
    resp = client.put(
        f"{BASE_URL}/api/notes/{note_id}/collaborators",
        json={"user_id": str(user_id), "role": "editor"},
        headers={"Authorization": f"Bearer {token}"},
    )
    resp.raise_for_status()
    print(f"  Shared with {label} as editor")


def main() -> None:
    print(f"Seeding against {BASE_URL}\n")
    tokens = {name: create_access_token(user_id) for name, user_id in USERS.items()}

    with httpx.Client(timeout=10) as client:
        print("Folders:")
        for folder in FOLDERS:
            row = {
                "id": str(seeded_id("folder", folder["owner"], folder["name"])),
                "name": folder["name"],
                "color": folder["color"],
            }
            create(client, tokens[folder["owner"]], "folders", row, f"folder '{folder['name']}'")

        print("\nNotes:")
        for note in NOTES:
            row = {
                "id": str(seeded_id("note", note["owner"], note["title"])),
                "title": note["title"],
                "folder_id": str(seeded_id("folder", note["owner"], note["folder"])),
            }
            create(client, tokens[note["owner"]], "notes", row, f"note '{note['title']}'")
            for editor in note.get("editors", []):
                label = f"{editor} on '{note['title']}'"
                share(client, tokens[note["owner"]], row["id"], USERS[editor], label)

    print("\nDone!")


if __name__ == "__main__":
    main()
