"""
AI cart-action protocol.

Assistant replies may embed directives that mutate the cart:

    [[ACTION:<type>:<menu item name>:<quantity>?:<notes>?]]

with ``type`` one of ``add_to_cart``, ``update_notes``, ``remove_from_cart``.
Quantity, when present, is a positive integer. Anything that does not fit the
grammar is left in the text untouched; parsing never raises.

Menu item names are resolved against the catalog used for the turn:

1. exact name match (case-insensitive, surrounding whitespace ignored)
2. otherwise a substring match in either direction, preferring the longest
   overlap ("Nasi Goreng Spesial" beats "Nasi Goreng" for "goreng spesial")
3. remaining ties go to catalog order

Directives whose name matches nothing are dropped and logged.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .cart import Cart, CartLine

logger = logging.getLogger(__name__)


ACTION_TYPES = ("add_to_cart", "update_notes", "remove_from_cart")

DIRECTIVE_PATTERN = re.compile(
    r"\[\[ACTION:"
    r"(?P<type>add_to_cart|update_notes|remove_from_cart)"
    r":(?P<name>[^:\]\[]+)"
    r"(?::(?P<quantity>[1-9]\d*)?(?::(?P<notes>[^\]]*))?)?"
    r"\]\]"
)


@dataclass
class AIAction:
    """A cart mutation extracted from one assistant reply; never persisted."""
    type: str
    menu_item_id: int
    menu_item_name: str
    quantity: Optional[int] = None
    notes: Optional[str] = None


@dataclass
class ParsedReply:
    actions: List[AIAction]
    clean_message: str


def _normalize(value: str) -> str:
    return " ".join(value.lower().split())


def _match_score(query: str, candidate: str) -> Optional[Tuple[int, int]]:
    """
    Score how well ``candidate`` matches ``query``; None when unrelated.

    Higher tuples win: exact matches rank above every substring match,
    then by overlap length.
    """
    if not query or not candidate:
        return None
    if query == candidate:
        return (1, len(candidate))
    if query in candidate or candidate in query:
        return (0, min(len(query), len(candidate)))
    return None


def find_best_match(name: str, candidates: Iterable[Any], key=lambda c: c.name) -> Optional[Any]:
    """Return the candidate whose name best matches ``name``, or None."""
    query = _normalize(name)
    best = None
    best_score = None
    for candidate in candidates:
        score = _match_score(query, _normalize(key(candidate) or ""))
        if score is None:
            continue
        # Strictly greater keeps the earliest candidate on ties
        if best_score is None or score > best_score:
            best, best_score = candidate, score
    return best


def parse_ai_reply(text: str, catalog: Sequence[Any]) -> ParsedReply:
    """
    Extract cart actions from an assistant reply.

    Args:
        text: Raw reply text from the model
        catalog: Menu items (objects with id/name) the turn was built from

    Returns:
        ParsedReply with resolved actions in textual order and the reply text
        with every directive removed.
    """
    if not text:
        return ParsedReply(actions=[], clean_message="")

    actions: List[AIAction] = []
    for match in DIRECTIVE_PATTERN.finditer(text):
        raw_name = match.group("name").strip()
        item = find_best_match(raw_name, catalog)
        if item is None:
            logger.info("Dropping %s directive for unknown item '%s'", match.group("type"), raw_name)
            continue

        quantity = match.group("quantity")
        notes = (match.group("notes") or "").strip()
        actions.append(AIAction(
            type=match.group("type"),
            menu_item_id=item.id,
            menu_item_name=raw_name,
            quantity=int(quantity) if quantity else None,
            notes=notes or None,
        ))

    clean = DIRECTIVE_PATTERN.sub("", text)
    # Removing a directive mid-sentence leaves doubled spaces behind
    clean = re.sub(r"[ \t]{2,}", " ", clean)
    clean = re.sub(r"[ \t]+\n", "\n", clean).strip()

    return ParsedReply(actions=actions, clean_message=clean)


def _find_cart_line(cart: Cart, action: AIAction) -> Optional[CartLine]:
    line = cart.get_line(action.menu_item_id)
    if line:
        return line
    return find_best_match(action.menu_item_name, cart.lines)


def apply_actions(cart: Cart, actions: Iterable[AIAction], catalog: Sequence[Any]) -> List[AIAction]:
    """
    Apply parsed actions to the cart in order.

    Returns the actions that changed the cart; ``update_notes`` for an item
    not yet in the cart is reported as the ``add_to_cart`` it degraded to.
    """
    by_id = {item.id: item for item in catalog}
    applied: List[AIAction] = []

    for action in actions:
        item = by_id.get(action.menu_item_id)
        if item is None:
            continue

        if action.type == "add_to_cart":
            cart.add_item(item, action.quantity or 1, action.notes)
            applied.append(action)

        elif action.type == "update_notes":
            line = _find_cart_line(cart, action)
            if line:
                cart.update_notes(line.menu_item_id, action.notes)
                applied.append(action)
            else:
                cart.add_item(item, action.quantity or 1, action.notes)
                applied.append(AIAction(
                    type="add_to_cart",
                    menu_item_id=action.menu_item_id,
                    menu_item_name=action.menu_item_name,
                    quantity=action.quantity or 1,
                    notes=action.notes,
                ))

        elif action.type == "remove_from_cart":
            line = _find_cart_line(cart, action)
            if line:
                cart.remove_item(line.menu_item_id)
                applied.append(action)

    return applied
