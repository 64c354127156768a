from typing import Any, Callable, Dict, Iterable, List

Predicate = Callable[[Dict[str, Any]], bool]


def spam_filter(field: str = "possible_spam") -> Predicate:
    """Build a predicate that drops items flagged as possible spam."""

    def predicate(item: Dict[str, Any]) -> bool:
        return not item.get(field, False)

    return predicate


def verified_filter(field: str = "verified_contract") -> Predicate:
    """Build a predicate that keeps only items from verified contracts."""

    def predicate(item: Dict[str, Any]) -> bool:
        return bool(item.get(field, False))

    return predicate


def apply_filters(items: Iterable[Dict[str, Any]], *predicates: Predicate) -> List[Dict[str, Any]]:
    """
    Keep the items accepted by every predicate.

    Args:
        items (Iterable[Dict[str, Any]]): Result items, e.g. a `result` array.
        *predicates (Predicate): Filters built with `spam_filter`/`verified_filter`.

    Returns:
        List[Dict[str, Any]]: The accepted items in their original order.
    """
    return [item for item in items if all(p(item) for p in predicates)]
