"""
Card catalog collaborators and document text construction.

The catalog order (arcana, then number) is the alignment contract between
the document list and the embedded-vector list built during indexing.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Protocol

from .errors import ConfigurationError
from .models import CardDocument

logger = logging.getLogger(__name__)


class CardCatalog(Protocol):
    """Read-only source of card records."""

    def list_all_documents(self) -> list[CardDocument]:
        """Return every card sorted by arcana, then number."""


def sort_cards(cards: Iterable[CardDocument]) -> list[CardDocument]:
    return sorted(cards, key=lambda card: (card.arcana, card.number, card.id))


class StaticCardCatalog:
    """Catalog over an in-memory card list."""

    def __init__(self, cards: Iterable[CardDocument]) -> None:
        self._cards = sort_cards(cards)

    def list_all_documents(self) -> list[CardDocument]:
        return list(self._cards)


class JsonCardCatalog:
    """Catalog backed by a JSON array of card records.

    Records may use the seed format's camelCase keys (``nameKo``,
    ``uprightMeaning``, ``type``...) or the snake_case field names of
    :class:`CardDocument`.
    """

    def __init__(self, path: str) -> None:
        self.path = str(Path(path).expanduser().resolve())

    def list_all_documents(self) -> list[CardDocument]:
        records = self._read_records()
        return sort_cards(CardDocument.from_payload(record) for record in records)

    def _read_records(self) -> list[dict[str, Any]]:
        path = Path(self.path)
        if not path.is_file():
            raise ConfigurationError(f"Card catalog not found: {self.path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Card catalog is not valid JSON: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("cards", [])
        if not isinstance(data, list):
            raise ConfigurationError("Card catalog must be a JSON array of cards")
        logger.debug("Loaded %d card records from %s", len(data), self.path)
        return [record for record in data if isinstance(record, dict)]


def build_document(card: CardDocument) -> str:
    """Render a card as the text that is both embedded and BM25-fitted."""
    card_type = f"{card.arcana} {card.suit}" if card.suit else card.arcana
    return "\n".join(
        [
            f"Card: {card.name_native} ({card.name_en})",
            f"Type: {card_type}",
            f"Keywords: {', '.join(card.keywords)}",
            f"Upright: {card.upright_meaning}",
            f"Reversed: {card.reversed_meaning}",
            f"Symbolism: {card.symbolism}",
            f"Love: {card.love}",
            f"Career: {card.career}",
            f"Health: {card.health}",
            f"Finance: {card.finance}",
        ]
    )
