"""Inbound channel routing.

Maps an inbound message (SMS, email, web chat) to a tenant-scoped chat session
and security context, running the disambiguation sub-state machine when one
sender maps to several companies or projects:

    standard ──(ambiguous sender)──▶ company_selection | project_selection
        ▲                                     │
        └────(numeric reply in range)─────────┘

While a selection session is pending, the next inbound message is consumed as
a menu choice and never reaches the agent.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.phone import normalize_phone
from app.core.schemas_sessions import (
    ChannelType,
    ChatSession,
    InboundMessage,
    MemoryMode,
    SelectionOption,
    session_ttl_minutes,
)
from app.core.security_context import SecurityContext, build_contact_context
from app.db import chat_sessions as sessions
from app.db.companies import list_companies_by_ids
from app.db.contacts import (
    HOMEOWNER_ROLE,
    assign_contact_company,
    create_contact,
    find_contacts_by_email,
    find_contacts_by_phone,
    get_contact_project_ids,
)
from app.db.projects import list_projects_by_ids

logger = get_logger(__name__)

COMPANY_MENU_HEADER = (
    "Your number is linked to more than one company. "
    "Reply with the number of the one you want to reach:"
)
PROJECT_MENU_HEADER = (
    "You have more than one project with us. "
    "Reply with the number of the project this is about:"
)
RETRY_PREFIX = "Sorry, that wasn't one of the options."
UNRESOLVED_MESSAGE = (
    "Thanks for your message. We couldn't match it to a company yet; "
    "a team member will follow up."
)


class RouteKind(str, Enum):
    """How an inbound message was routed."""

    CONVERSATION = "conversation"  # forward to the agent
    SELECTION_PROMPT = "selection_prompt"  # menu sent, agent not called
    SELECTION_RETRY = "selection_retry"  # invalid menu reply, menu re-sent
    SELECTION_RESOLVED = "selection_resolved"  # menu choice bound a new session
    DUPLICATE = "duplicate"  # provider retry of an already-handled message
    UNRESOLVED = "unresolved"  # no company could be determined


@dataclass
class RouteResult:
    kind: RouteKind
    session: ChatSession | None = None
    security_context: SecurityContext | None = None
    outbound_message: str | None = None
    contact_id: str | None = None
    options: list[SelectionOption] = field(default_factory=list)

    @property
    def forward_to_agent(self) -> bool:
        return self.kind == RouteKind.CONVERSATION


def canonical_identifier(channel_type: ChannelType, identifier: str) -> str:
    """Canonical channel identifier: E.164 for SMS, lowercased address for email."""
    identifier = identifier.strip()
    if channel_type == ChannelType.SMS:
        return normalize_phone(identifier) or identifier
    if channel_type == ChannelType.EMAIL:
        return identifier.lower()
    return identifier


def render_menu(mode: MemoryMode, options: list[SelectionOption]) -> str:
    """Numbered menu, 1-based, in option order."""
    header = COMPANY_MENU_HEADER if mode == MemoryMode.COMPANY_SELECTION else PROJECT_MENU_HEADER
    lines = [header]
    lines.extend(f"{i}. {option.label}" for i, option in enumerate(options, start=1))
    return "\n".join(lines)


def parse_menu_choice(body: str, option_count: int) -> int | None:
    """
    Zero-based index for a menu reply, or None if the reply is not a valid choice.

    Only purely numeric replies count; "2." or "option 2" are not choices.
    """
    text = body.strip()
    if not text.isdigit():
        return None
    choice = int(text)
    if choice < 1 or choice > option_count:
        return None
    return choice - 1


def _lookup_contacts(message: InboundMessage, identifier: str) -> list[dict[str, Any]]:
    if message.channel_type == ChannelType.SMS:
        return find_contacts_by_phone(identifier)
    if message.channel_type == ChannelType.EMAIL:
        return find_contacts_by_email(identifier)

    # Web identifiers are browser session ids; reuse the contact of a live session
    if not message.company_hint:
        return []
    live = sessions.find_active_sessions(
        message.company_hint, channel_type=ChannelType.WEB, channel_identifier=identifier, limit=1
    )
    if live and live[0].get("contact_id"):
        return [{"id": live[0]["contact_id"], "company_id": message.company_hint, "role": None}]
    return []


def resolve_options(contacts: list[dict[str, Any]], company_hint: str | None = None) -> list[SelectionOption]:
    """
    Distinct (company, project) targets a sender can reach.

    Homeowner contacts carry no company; their companies come from the
    projects they are associated with, one option per project. Other contacts
    contribute one option for their company.
    """
    raw: list[tuple[str, str | None, str]] = []
    homeowner_project_ids: dict[str, str] = {}

    for contact in contacts:
        if contact.get("role") == HOMEOWNER_ROLE or not contact.get("company_id"):
            for project_id in get_contact_project_ids(contact["id"]):
                homeowner_project_ids.setdefault(project_id, contact["id"])
        else:
            raw.append((str(contact["company_id"]), None, contact["id"]))

    projects = list_projects_by_ids(list(homeowner_project_ids))
    project_labels = {}
    for project in projects:
        raw.append((str(project["company_id"]), project["id"], homeowner_project_ids[project["id"]]))
        project_labels[project["id"]] = project.get("project_name") or project.get("address") or project["id"]

    if company_hint and any(company_id == company_hint for company_id, _, _ in raw):
        raw = [entry for entry in raw if entry[0] == company_hint]

    seen: set[tuple[str, str | None]] = set()
    unique: list[tuple[str, str | None, str]] = []
    for company_id, project_id, contact_id in raw:
        if (company_id, project_id) not in seen:
            seen.add((company_id, project_id))
            unique.append((company_id, project_id, contact_id))

    # A company reached both directly and through a project collapses to the project entries
    project_companies = {company_id for company_id, project_id, _ in unique if project_id}
    unique = [e for e in unique if e[1] is not None or e[0] not in project_companies]

    names = {c["id"]: c.get("name") or c["id"] for c in list_companies_by_ids(sorted({e[0] for e in unique}))}

    options = []
    for company_id, project_id, contact_id in unique:
        company_name = names.get(company_id, company_id)
        label = f"{project_labels[project_id]} ({company_name})" if project_id else company_name
        options.append(
            SelectionOption(company_id=company_id, project_id=project_id, contact_id=contact_id, label=label)
        )
    # Menu order is stable: by label
    options.sort(key=lambda o: o.label.lower())
    return options


def _hinted_company_option(contacts: list[dict[str, Any]], company_id: str) -> SelectionOption:
    """
    Company-level option for a sender that reaches no company of its own.

    A company-less contact that is not a homeowner (typically one created on a
    first touch that carried no company) is attached to the hinted company.
    """
    contact = next((c for c in contacts if c.get("role") != HOMEOWNER_ROLE), contacts[0])
    if contact.get("role") != HOMEOWNER_ROLE and not contact.get("company_id"):
        contact = assign_contact_company(contact["id"], company_id) or contact
    companies = list_companies_by_ids([company_id])
    label = (companies[0].get("name") if companies else None) or company_id
    return SelectionOption(company_id=company_id, project_id=None, contact_id=contact["id"], label=label)


def _bind(
    message: InboundMessage,
    identifier: str,
    option: SelectionOption,
    settings: Settings,
) -> tuple[ChatSession, SecurityContext]:
    row = sessions.find_or_create_session(
        message.channel_type,
        identifier,
        option.company_id,
        session_ttl_minutes(message.channel_type, settings),
        contact_id=option.contact_id,
        project_id=option.project_id,
        memory_mode=MemoryMode.STANDARD,
    )
    session = ChatSession.model_validate(row)
    project_id = session.project_id or option.project_id
    context = build_contact_context(option.company_id, session.contact_id or option.contact_id, project_id)
    return session, context


def _option_for_session(options: list[SelectionOption], session: dict[str, Any]) -> SelectionOption | None:
    for option in options:
        if option.company_id != str(session.get("company_id")):
            continue
        if option.project_id is None or option.project_id == session.get("project_id"):
            return option
    return None


def _handle_pending_selection(
    message: InboundMessage,
    identifier: str,
    pending: ChatSession,
    settings: Settings,
) -> RouteResult:
    options = pending.selection_options
    index = parse_menu_choice(message.body, len(options))
    if index is None:
        logger.info(f"Invalid menu reply on selection session {pending.id}; re-prompting")
        return RouteResult(
            kind=RouteKind.SELECTION_RETRY,
            session=pending,
            outbound_message=f"{RETRY_PREFIX}\n{render_menu(pending.memory_mode, options)}",
            options=options,
        )

    chosen = options[index]
    if sessions.deactivate_session(pending.id, pending.memory_mode) is None:
        logger.info(f"Selection session {pending.id} already resolved by a concurrent reply")

    session, context = _bind(message, identifier, chosen, settings)
    logger.info(
        f"Selection resolved to company {chosen.company_id}",
        extra={"company_id": chosen.company_id},
    )
    return RouteResult(
        kind=RouteKind.SELECTION_RESOLVED,
        session=session,
        security_context=context,
        outbound_message=f"Thanks! You're connected with {chosen.label}. How can we help?",
        contact_id=context.contact_id,
    )


def route_inbound_message(message: InboundMessage, settings: Settings | None = None) -> RouteResult:
    """
    Resolve an inbound message to a session and security context.

    Args:
        message: Normalized inbound message
        settings: Resolved settings (fetched when omitted)

    Returns:
        RouteResult; only CONVERSATION results are forwarded to the agent
    """
    settings = settings or get_settings()
    identifier = canonical_identifier(message.channel_type, message.channel_identifier)

    pending_row = sessions.find_pending_selection(message.channel_type, identifier)
    if pending_row:
        return _handle_pending_selection(message, identifier, ChatSession.model_validate(pending_row), settings)

    contacts = _lookup_contacts(message, identifier)

    if not contacts:
        contact = create_contact(
            company_id=message.company_hint,
            full_name=message.sender_name,
            phone_number=identifier if message.channel_type == ChannelType.SMS else None,
            email=identifier if message.channel_type == ChannelType.EMAIL else None,
        )
        logger.info(
            f"First-touch contact {contact['id']} created for inbound {message.channel_type.value}",
            extra={"company_id": message.company_hint},
        )
        if not message.company_hint:
            return RouteResult(
                kind=RouteKind.UNRESOLVED,
                outbound_message=UNRESOLVED_MESSAGE,
                contact_id=contact["id"],
            )
        contacts = [contact]

    options = resolve_options(contacts, message.company_hint)
    if not options and message.company_hint:
        options = [_hinted_company_option(contacts, message.company_hint)]
    if not options:
        return RouteResult(
            kind=RouteKind.UNRESOLVED,
            outbound_message=UNRESOLVED_MESSAGE,
            contact_id=contacts[0]["id"],
        )

    if len(options) == 1:
        session, context = _bind(message, identifier, options[0], settings)
        return RouteResult(
            kind=RouteKind.CONVERSATION,
            session=session,
            security_context=context,
            contact_id=context.contact_id,
        )

    # An earlier menu choice holds while the conversation it opened is live
    live_row = sessions.find_live_conversation(message.channel_type, identifier)
    if live_row:
        chosen = _option_for_session(options, live_row)
        if chosen is not None:
            session, context = _bind(message, identifier, chosen, settings)
            return RouteResult(
                kind=RouteKind.CONVERSATION,
                session=session,
                security_context=context,
                contact_id=context.contact_id,
            )

    mode = (
        MemoryMode.PROJECT_SELECTION
        if any(option.project_id for option in options)
        else MemoryMode.COMPANY_SELECTION
    )
    row = sessions.find_or_create_session(
        message.channel_type,
        identifier,
        None,
        session_ttl_minutes(message.channel_type, settings),
        memory_mode=mode,
        selection_options=[option.model_dump() for option in options],
    )
    session = ChatSession.model_validate(row)
    logger.info(f"Sender matches {len(options)} targets; opened {mode.value} session {session.id}")
    return RouteResult(
        kind=RouteKind.SELECTION_PROMPT,
        session=session,
        outbound_message=render_menu(mode, session.selection_options or options),
        options=session.selection_options or options,
    )
