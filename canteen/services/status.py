CANONICAL_STATUSES = ("Pending", "Approved", "Preparing", "Ready", "Claimed", "Rejected")

# statuses whose line items count towards revenue and sold quantity
REVENUE_STATUSES = frozenset({"Approved", "Preparing", "Ready", "Claimed"})

_RESERVATION_SYNONYMS = {
    "pending": "Pending",
    "approved": "Approved",
    "approve": "Approved",
    "preparing": "Preparing",
    "in-prep": "Preparing",
    "in_prep": "Preparing",
    "prep": "Preparing",
    "ready": "Ready",
    "done": "Ready",
    "claimed": "Claimed",
    "pickedup": "Claimed",
    "picked_up": "Claimed",
    "picked-up": "Claimed",
    "rejected": "Rejected",
    "declined": "Rejected",
}


def normalize_reservation_status(raw) -> str:
    s = str(raw or "").strip().lower()
    return _RESERVATION_SYNONYMS.get(s, "Pending")


def normalize_topup_status(raw) -> str:
    s = str(raw or "").strip().lower()
    if "approve" in s:
        return "Approved"
    if "pending" in s:
        return "Pending"
    if "reject" in s or "decline" in s:
        return "Rejected"
    return "Pending"
