import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

ARTIFACT_KINDS = ("design", "mockup")


@dataclass(frozen=True)
class Favorite:
    id: str
    artifact_url: str
    artifact_kind: str
    created_at: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "artifactUrl": self.artifact_url,
            "artifactKind": self.artifact_kind,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, entry: Dict[str, str]) -> "Favorite":
        return cls(
            id=entry["id"],
            artifact_url=entry["artifactUrl"],
            artifact_kind=entry["artifactKind"],
            created_at=entry["createdAt"],
        )


class FavoritesStore:
    """
    Saved artifacts per user, persisted to a single JSON file:

        {"<user id>": [{"id": ..., "artifactUrl": ..., "artifactKind": ..., "createdAt": ...}]}
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def add(self, user_id: str, artifact_url: str, artifact_kind: str) -> Favorite:
        if artifact_kind not in ARTIFACT_KINDS:
            raise ValueError(f"artifact_kind must be one of {ARTIFACT_KINDS}, got {artifact_kind!r}")

        favorite = Favorite(
            id=str(uuid.uuid4()),
            artifact_url=artifact_url,
            artifact_kind=artifact_kind,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        data = self._load()
        data.setdefault(user_id, []).append(favorite.to_dict())
        self._save(data)
        return favorite

    def list(self, user_id: str) -> List[Favorite]:
        """Favorites of `user_id`, newest first."""
        entries = [Favorite.from_dict(entry) for entry in self._load().get(user_id, [])]
        # Stable sort keeps insertion order reversed for identical timestamps.
        return sorted(reversed(entries), key=lambda fav: fav.created_at, reverse=True)

    def remove(self, user_id: str, favorite_id: str) -> bool:
        data = self._load()
        entries = data.get(user_id, [])
        kept = [entry for entry in entries if entry["id"] != favorite_id]
        if len(kept) == len(entries):
            return False

        if kept:
            data[user_id] = kept
        else:
            data.pop(user_id, None)
        self._save(data)
        return True

    def _load(self) -> Dict[str, List[Dict[str, str]]]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, data: Dict[str, List[Dict[str, str]]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
