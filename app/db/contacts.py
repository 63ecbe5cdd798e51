"""Contacts and project-contact association database operations.

Homeowner contacts (role ``HO``) carry no company_id: their company is derived
through the projects they are associated with.
"""

from typing import Any

from app.core.logging import get_logger
from app.core.phone import legacy_phone_variants, normalize_phone
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

CONTACT_COLUMNS = "id, company_id, full_name, role, phone_number, email, created_at"

HOMEOWNER_ROLE = "HO"


def get_contact(contact_id: str) -> dict[str, Any] | None:
    """Get a contact by ID."""
    supabase = get_supabase()

    response = (
        supabase.table("contacts").select(CONTACT_COLUMNS).eq("id", str(contact_id)).limit(1).execute()
    )
    return response.data[0] if response.data else None


def list_project_contacts(project_id: str) -> list[dict[str, Any]]:
    """
    List the contacts associated with a project.

    Args:
        project_id: Project UUID

    Returns:
        Contact dicts (empty list when the project has no contacts)
    """
    supabase = get_supabase()

    try:
        links = (
            supabase.table("project_contacts")
            .select("contact_id")
            .eq("project_id", str(project_id))
            .execute()
        )
        contact_ids = [row["contact_id"] for row in links.data or []]
        if not contact_ids:
            return []

        response = (
            supabase.table("contacts")
            .select(CONTACT_COLUMNS)
            .in_("id", contact_ids)
            .order("full_name")
            .execute()
        )
        return response.data or []

    except Exception as e:
        logger.error(f"Failed to list contacts for project {project_id}: {e}")
        raise


def get_contact_project_ids(contact_id: str) -> list[str]:
    """IDs of every project the contact is associated with."""
    supabase = get_supabase()

    response = (
        supabase.table("project_contacts")
        .select("project_id")
        .eq("contact_id", str(contact_id))
        .execute()
    )
    return [row["project_id"] for row in response.data or []]


def is_contact_on_project(contact_id: str, project_id: str) -> bool:
    """Whether a project-contact association exists."""
    supabase = get_supabase()

    response = (
        supabase.table("project_contacts")
        .select("id")
        .eq("contact_id", str(contact_id))
        .eq("project_id", str(project_id))
        .limit(1)
        .execute()
    )
    return bool(response.data)


def find_contacts_by_phone(phone: str) -> list[dict[str, Any]]:
    """
    Find contacts by phone number.

    Looks up the canonical E.164 form first. If nothing matches, falls back to
    the formats historical rows were written in and backfills the canonical
    form on every row found that way.

    Args:
        phone: Phone number in any format

    Returns:
        Matching contact dicts
    """
    e164 = normalize_phone(phone)
    if not e164:
        return []

    supabase = get_supabase()

    response = supabase.table("contacts").select(CONTACT_COLUMNS).eq("phone_number", e164).execute()
    if response.data:
        return response.data

    legacy = (
        supabase.table("contacts")
        .select(CONTACT_COLUMNS)
        .in_("phone_number", legacy_phone_variants(e164))
        .execute()
    )
    contacts = legacy.data or []
    for contact in contacts:
        if contact.get("phone_number") != e164:
            supabase.table("contacts").update({"phone_number": e164}).eq("id", contact["id"]).execute()
            contact["phone_number"] = e164
            logger.info(f"Backfilled canonical phone for contact {contact['id']}")
    return contacts


def find_contacts_by_email(email: str) -> list[dict[str, Any]]:
    """Find contacts by email address (case-insensitive exact match)."""
    if not email or "@" not in email:
        return []
    supabase = get_supabase()

    response = (
        supabase.table("contacts")
        .select(CONTACT_COLUMNS)
        .ilike("email", email.strip().lower())
        .execute()
    )
    return response.data or []


def create_contact(
    company_id: str | None,
    full_name: str | None = None,
    role: str | None = None,
    phone_number: str | None = None,
    email: str | None = None,
) -> dict[str, Any]:
    """
    Create a contact. Phone numbers are stored canonicalized.

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    row: dict[str, Any] = {
        "company_id": str(company_id) if company_id else None,
        "full_name": full_name,
        "role": role,
        "phone_number": normalize_phone(phone_number) if phone_number else None,
        "email": email.strip().lower() if email else None,
    }

    try:
        response = supabase.table("contacts").insert(row).execute()
        if not response.data:
            raise ValueError("No data returned from create_contact")

        contact = response.data[0]
        logger.info(
            f"Created contact {contact['id']}",
            extra={"company_id": str(company_id) if company_id else None},
        )
        return contact

    except Exception as e:
        logger.error(f"Failed to create contact: {e}")
        raise


def assign_contact_company(contact_id: str, company_id: str) -> dict[str, Any] | None:
    """
    Attach a company to a contact that has none.

    The update only matches while company_id is still null, so a contact
    already bound to a company is never moved.

    Returns:
        Updated contact, or None when the contact already had a company
    """
    supabase = get_supabase()

    response = (
        supabase.table("contacts")
        .update({"company_id": str(company_id)})
        .eq("id", str(contact_id))
        .is_("company_id", "null")
        .execute()
    )
    if not response.data:
        return None
    logger.info(f"Attached contact {contact_id} to company {company_id}", extra={"company_id": str(company_id)})
    return response.data[0]


def link_contact_to_project(project_id: str, contact_id: str) -> dict[str, Any]:
    """Associate a contact with a project (idempotent)."""
    supabase = get_supabase()

    response = (
        supabase.table("project_contacts")
        .upsert(
            {"project_id": str(project_id), "contact_id": str(contact_id)},
            on_conflict="project_id,contact_id",
        )
        .execute()
    )
    return response.data[0] if response.data else {}
