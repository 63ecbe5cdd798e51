"""Company CRM integration configuration."""

from typing import Any

from app.db.supabase_client import get_supabase


def get_active_crm_integration(company_id: str) -> dict[str, Any] | None:
    """
    Most recent active CRM integration of a company.

    Returns:
        Integration dict (provider_name, settings, ...) or None if the company
        has no external CRM configured
    """
    supabase = get_supabase()

    response = (
        supabase.table("company_integrations")
        .select("id, company_id, provider_name, provider_type, settings, is_active, created_at")
        .eq("company_id", str(company_id))
        .eq("provider_type", "crm")
        .eq("is_active", True)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None


def get_integration(integration_id: str) -> dict[str, Any] | None:
    """Get an integration by ID."""
    supabase = get_supabase()

    response = (
        supabase.table("company_integrations")
        .select("id, company_id, provider_name, provider_type, settings, is_active, created_at")
        .eq("id", str(integration_id))
        .limit(1)
        .execute()
    )
    return response.data[0] if response.data else None
