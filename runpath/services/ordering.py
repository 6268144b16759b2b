"""Manual ticket ordering, independent of priority.

A project's tickets carry an optional ``sort_order``. Saving a new order from
the order page numbers tickets 10, 20, 30, ... so that later insertions can
slot in between without renumbering everything.

``compare_tickets`` is deliberately a pairwise rule rather than a sort key:
when only some tickets have a sort order, two ordered tickets compare by
sort order while any pair involving an unordered ticket compares by
priority. That is not a strict total order, so the placement of unordered
tickets relative to ordered ones depends on which pairs ``sorted`` happens
to compare.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Iterable, Sequence

from ..core.constants import PRIORITY_RANK, SORT_ORDER_STEP


def priority_rank(priority: str | None) -> int:
    return PRIORITY_RANK.get((priority or "").strip().lower(), 0)


def compare_tickets(a: Any, b: Any) -> int:
    a_order = getattr(a, "sort_order", None)
    b_order = getattr(b, "sort_order", None)
    if a_order is not None and b_order is not None and a_order != b_order:
        return -1 if a_order < b_order else 1
    return priority_rank(getattr(b, "priority", None)) - priority_rank(getattr(a, "priority", None))


def sort_for_display(tickets: Iterable[Any]) -> list[Any]:
    return sorted(tickets, key=cmp_to_key(compare_tickets))


def reorder_plan(ticket_ids: Sequence[int]) -> list[tuple[int, int]]:
    """Pair every id with its new sort order: (index + 1) * 10."""

    seen: set[int] = set()
    for ticket_id in ticket_ids:
        if ticket_id in seen:
            raise ValueError(f"ticket {ticket_id} appears more than once in the new order")
        seen.add(ticket_id)
    return [(ticket_id, (index + 1) * SORT_ORDER_STEP) for index, ticket_id in enumerate(ticket_ids)]


__all__ = [
    "compare_tickets",
    "priority_rank",
    "reorder_plan",
    "sort_for_display",
]
