"""Company (tenant) lookups."""

from typing import Any

from app.db.supabase_client import get_supabase


def list_companies_by_ids(company_ids: list[str]) -> list[dict[str, Any]]:
    """List companies by ID, ordered by name."""
    if not company_ids:
        return []
    supabase = get_supabase()

    response = (
        supabase.table("companies")
        .select("id, name")
        .in_("id", [str(c) for c in company_ids])
        .order("name")
        .execute()
    )
    return response.data or []


def find_company_by_phone(phone_number: str) -> dict[str, Any] | None:
    """Company whose inbound number is ``phone_number`` (E.164)."""
    supabase = get_supabase()

    response = (
        supabase.table("companies")
        .select("id, name")
        .eq("phone_number", phone_number)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None
