"""
Reference population
Replaces user / customer ids in response documents by small summaries
({id, name, email, ...}). Ids that no longer resolve are kept as
{"id": <id>} so orphaned references stay visible.
"""

from typing import List, Dict, Iterable

USER_SUMMARY = {"_id": 0, "id": 1, "name": 1, "email": 1}
CUSTOMER_SUMMARY = {"_id": 0, "id": 1, "name": 1, "email": 1, "company": 1}


def _collect_ids(docs: Iterable[dict], fields: Iterable[str]) -> List[str]:
    ids = set()
    for doc in docs:
        for field in fields:
            value = doc.get(field)
            if isinstance(value, str) and value:
                ids.add(value)
    return list(ids)


async def _lookup(collection, ids: List[str], projection: dict) -> Dict[str, dict]:
    if not ids:
        return {}
    found = await collection.find({"id": {"$in": ids}}, projection).to_list(len(ids))
    return {d["id"]: d for d in found}


def _replace(docs: List[dict], fields: Iterable[str], lookup: Dict[str, dict]):
    for doc in docs:
        for field in fields:
            value = doc.get(field)
            if isinstance(value, str) and value:
                doc[field] = lookup.get(value, {"id": value})


async def populate(
    db,
    docs: List[dict],
    user_fields: Iterable[str] = ("assignedTo", "createdBy"),
    customer_fields: Iterable[str] = (),
) -> List[dict]:
    """Populate in place and return the same list."""
    user_fields = list(user_fields)
    customer_fields = list(customer_fields)

    users = await _lookup(db.users, _collect_ids(docs, user_fields), USER_SUMMARY)
    customers = await _lookup(db.customers, _collect_ids(docs, customer_fields), CUSTOMER_SUMMARY)

    _replace(docs, user_fields, users)
    _replace(docs, customer_fields, customers)
    return docs


async def populate_one(db, doc: dict, **kwargs) -> dict:
    await populate(db, [doc], **kwargs)
    return doc


def ref_name(value, default: str = "Unknown") -> str:
    """Display name of a populated reference."""
    if isinstance(value, dict):
        return value.get("name") or default
    return default
