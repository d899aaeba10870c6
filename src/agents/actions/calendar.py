"""
Google Calendar actions - meetings, recurring events, lookups, free/busy.

Meetings are created with a Google Meet conference attached. Update and
delete accept an event title instead of an id; the title is resolved to an
id first and a new parameter object carries the resolved id.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from loguru import logger

from src.agents.actions.google_client import google_call
from src.agents.actions.params import (
    CheckEventConflictsParams,
    CreateRecurringEventParams,
    DeleteEventParams,
    EventTargetParams,
    FindFreeTimeSlotsParams,
    GetEventParams,
    GetUpcomingEventsParams,
    ListCalendarsParams,
    ScheduleMeetingParams,
    SearchEventsParams,
    UpdateEventParams,
)
from src.agents.actions.registry import ActionContext, ActionSpec, NarrationScript
from src.config.constants import CALENDAR
from src.utils.errors import ActionExecutionError, ResourceNotFoundError

SERVICE_LABEL = "Google Calendar"
SLOT_STEP_MINUTES = 30
UPCOMING_WINDOW_DAYS = 30
SEARCH_WINDOW_DAYS = 365


# ============================================================================
# Helpers
# ============================================================================

def parse_datetime(value: str, tz_name: str) -> datetime:
    """Parse an ISO 8601 string; naive values are taken in the user's timezone."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ActionExecutionError(f"Invalid date/time '{value}'. Use ISO 8601, e.g. 2025-01-31T15:00:00") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(tz_name))
    return parsed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _event_time(value: Dict[str, Any]) -> str:
    return value.get("dateTime") or value.get("date") or "unknown time"


def format_event(event: Dict[str, Any], index: Optional[int] = None) -> str:
    prefix = f"{index}. " if index is not None else ""
    lines = [
        f"{prefix}\"{event.get('summary', '(No title)')}\" from {_event_time(event.get('start', {}))} "
        f"to {_event_time(event.get('end', {}))}"
    ]
    if event.get("location"):
        lines.append(f"   Location: {event['location']}")
    attendees = [a.get("email") for a in event.get("attendees", []) or [] if a.get("email")]
    if attendees:
        lines.append(f"   Attendees: {', '.join(attendees)}")
    if event.get("hangoutLink"):
        lines.append(f"   Meet link: {event['hangoutLink']}")
    if event.get("recurrence"):
        lines.append(f"   Recurrence: {'; '.join(event['recurrence'])}")
    lines.append(f"   Event ID: {event.get('id', 'unknown')}")
    return "\n".join(lines)


def format_events(events: List[Dict[str, Any]], heading: str) -> str:
    if not events:
        return f"{heading}: no events found."
    body = "\n".join(format_event(event, i) for i, event in enumerate(events, 1))
    return f"{heading}: {len(events)} event(s).\n\n{body}"


def _meeting_body(params: ScheduleMeetingParams, ctx: ActionContext) -> Dict[str, Any]:
    return {
        "summary": params.title,
        "description": params.description,
        "start": {"dateTime": params.start, "timeZone": ctx.timezone},
        "end": {"dateTime": params.end, "timeZone": ctx.timezone},
        "attendees": [{"email": email} for email in params.attendees],
        "conferenceData": {"createRequest": {"requestId": f"meet-{int(time.time() * 1000)}"}},
        "organizer": {"email": ctx.organizer.email, "displayName": ctx.organizer.display_name},
    }


def _insert_event(service, body: Dict[str, Any]) -> Dict[str, Any]:
    return service.events().insert(
        calendarId="primary",
        body=body,
        conferenceDataVersion=1,
        sendUpdates="all",
    ).execute()


def compute_free_slots(
    busy: List[Dict[str, str]],
    start: datetime,
    end: datetime,
    duration_minutes: int,
) -> List[Dict[str, Any]]:
    """
    Walk the window in 30 minute steps and keep every slot of the requested
    duration that overlaps no busy interval.
    """
    busy_ranges = [
        (datetime.fromisoformat(b["start"].replace("Z", "+00:00")), datetime.fromisoformat(b["end"].replace("Z", "+00:00")))
        for b in busy
    ]
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=SLOT_STEP_MINUTES)

    slots = []
    current = start
    while current < end:
        slot_end = current + duration
        if slot_end > end:
            break
        if not any(current < busy_end and slot_end > busy_start for busy_start, busy_end in busy_ranges):
            slots.append({"start": current.isoformat(), "end": slot_end.isoformat(), "duration": duration_minutes})
        current += step
    return slots


async def resolve_event_target(params: EventTargetParams, ctx: ActionContext, operation: str) -> EventTargetParams:
    """
    Return a copy of ``params`` with ``event_id`` filled in from the title.

    Raises:
        ResourceNotFoundError: No event matches the title
    """
    if params.event_id:
        return params

    title = params.event_title
    now = _utc_now()

    def _search(service):
        return service.events().list(
            calendarId="primary",
            q=title,
            timeMin=(now - timedelta(days=UPCOMING_WINDOW_DAYS)).isoformat(),
            timeMax=(now + timedelta(days=SEARCH_WINDOW_DAYS)).isoformat(),
            maxResults=10,
            singleEvents=True,
            orderBy="startTime",
        ).execute()

    response = await google_call(ctx.access_token, "calendar", "v3", SERVICE_LABEL, operation, _search)
    items = response.get("items", []) or []
    if not items:
        raise ResourceNotFoundError(f"No calendar event found matching \"{title}\"")

    exact = [e for e in items if (e.get("summary") or "").strip().lower() == title.strip().lower()]
    match = (exact or items)[0]
    logger.debug(f"Resolved event title '{title}' to {match.get('id')}")
    return params.model_copy(update={"event_id": match["id"]})


# ============================================================================
# Executors
# ============================================================================

async def schedule_meeting(params: ScheduleMeetingParams, ctx: ActionContext) -> str:
    body = _meeting_body(params, ctx)
    event = await google_call(
        ctx.access_token, "calendar", "v3", SERVICE_LABEL, "schedule meeting",
        lambda service: _insert_event(service, body),
    )
    guests = ", ".join(params.attendees) if params.attendees else "no other attendees"
    return (
        f"Meeting \"{params.title}\" scheduled from {params.start} to {params.end} ({ctx.timezone}) "
        f"with {guests}. Invitations were sent. Event ID: {event.get('id')}. "
        f"Google Meet link: {event.get('hangoutLink') or 'not available'}."
    )


async def create_recurring_event(params: CreateRecurringEventParams, ctx: ActionContext) -> str:
    body = _meeting_body(params, ctx)
    body["recurrence"] = params.recurrence
    event = await google_call(
        ctx.access_token, "calendar", "v3", SERVICE_LABEL, "create recurring event",
        lambda service: _insert_event(service, body),
    )
    return (
        f"Recurring event \"{params.title}\" created starting {params.start} ({ctx.timezone}) "
        f"with recurrence {'; '.join(params.recurrence)}. Event ID: {event.get('id')}. "
        f"Google Meet link: {event.get('hangoutLink') or 'not available'}."
    )


async def get_upcoming_events(params: GetUpcomingEventsParams, ctx: ActionContext) -> str:
    now = _utc_now()
    time_min = params.time_min or now.isoformat()
    time_max = params.time_max or (now + timedelta(days=UPCOMING_WINDOW_DAYS)).isoformat()

    def _list(service):
        return service.events().list(
            calendarId="primary",
            timeMin=time_min,
            timeMax=time_max,
            maxResults=params.max_results,
            singleEvents=True,
            orderBy="startTime",
        ).execute()

    response = await google_call(ctx.access_token, "calendar", "v3", SERVICE_LABEL, "get upcoming events", _list)
    return format_events(response.get("items", []) or [], f"Upcoming events between {time_min} and {time_max}")


async def get_event(params: GetEventParams, ctx: ActionContext) -> str:
    event = await google_call(
        ctx.access_token, "calendar", "v3", SERVICE_LABEL, "get event",
        lambda service: service.events().get(calendarId="primary", eventId=params.event_id).execute(),
    )
    details = format_event(event)
    if event.get("description"):
        details += f"\n   Description: {event['description']}"
    return f"Event details:\n{details}"


async def update_event(params: UpdateEventParams, ctx: ActionContext) -> str:
    resolved = await resolve_event_target(params, ctx, "update event")

    def _update(service):
        current = service.events().get(calendarId="primary", eventId=resolved.event_id).execute()
        updated = dict(current)
        if resolved.title:
            updated["summary"] = resolved.title
        if resolved.description:
            updated["description"] = resolved.description
        if resolved.start:
            updated["start"] = {"dateTime": resolved.start, "timeZone": ctx.timezone}
        if resolved.end:
            updated["end"] = {"dateTime": resolved.end, "timeZone": ctx.timezone}
        if resolved.attendees is not None:
            updated["attendees"] = [{"email": email} for email in resolved.attendees]
        if resolved.location:
            updated["location"] = resolved.location
        return service.events().update(
            calendarId="primary",
            eventId=resolved.event_id,
            body=updated,
            sendUpdates="all",
        ).execute()

    event = await google_call(ctx.access_token, "calendar", "v3", SERVICE_LABEL, "update event", _update)
    return f"Event updated and attendees notified.\n{format_event(event)}"


async def delete_event(params: DeleteEventParams, ctx: ActionContext) -> str:
    resolved = await resolve_event_target(params, ctx, "delete event")
    send_updates = "all" if resolved.notify_attendees else "none"

    await google_call(
        ctx.access_token, "calendar", "v3", SERVICE_LABEL, "delete event",
        lambda service: service.events().delete(
            calendarId="primary", eventId=resolved.event_id, sendUpdates=send_updates
        ).execute(),
    )
    label = f"\"{resolved.event_title}\"" if resolved.event_title else resolved.event_id
    notified = "Attendees were notified." if resolved.notify_attendees else "Attendees were not notified."
    return f"Event {label} (ID: {resolved.event_id}) was deleted. {notified}"


async def find_free_time_slots(params: FindFreeTimeSlotsParams, ctx: ActionContext) -> str:
    start = parse_datetime(params.start_date, ctx.timezone)
    end = parse_datetime(params.end_date, ctx.timezone)
    if end <= start:
        raise ActionExecutionError("Failed to find free time slots: endDate must be after startDate")

    def _query(service):
        return service.freebusy().query(body={
            "timeMin": start.isoformat(),
            "timeMax": end.isoformat(),
            "timeZone": ctx.timezone,
            "items": [{"id": "primary"}, *({"id": email} for email in params.attendees)],
        }).execute()

    response = await google_call(ctx.access_token, "calendar", "v3", SERVICE_LABEL, "find free time slots", _query)
    busy = response.get("calendars", {}).get("primary", {}).get("busy", []) or []
    slots = compute_free_slots(busy, start, end, params.duration_minutes)

    if not slots:
        return (
            f"No free {params.duration_minutes}-minute slots between {start.isoformat()} and {end.isoformat()}. "
            f"{len(busy)} busy period(s) in that window."
        )
    lines = [f"{i}. {slot['start']} to {slot['end']}" for i, slot in enumerate(slots, 1)]
    return (
        f"Found {len(slots)} free {params.duration_minutes}-minute slot(s) between "
        f"{start.isoformat()} and {end.isoformat()}:\n" + "\n".join(lines)
    )


async def search_events(params: SearchEventsParams, ctx: ActionContext) -> str:
    now = _utc_now()
    time_min = params.time_min or now.isoformat()
    time_max = params.time_max or (now + timedelta(days=SEARCH_WINDOW_DAYS)).isoformat()

    def _search(service):
        return service.events().list(
            calendarId="primary",
            q=params.query,
            timeMin=time_min,
            timeMax=time_max,
            maxResults=params.max_results,
            singleEvents=True,
            orderBy="startTime",
        ).execute()

    response = await google_call(ctx.access_token, "calendar", "v3", SERVICE_LABEL, "search events", _search)
    return format_events(response.get("items", []) or [], f"Events matching \"{params.query}\"")


async def check_event_conflicts(params: CheckEventConflictsParams, ctx: ActionContext) -> str:
    start = parse_datetime(params.start, ctx.timezone)
    end = parse_datetime(params.end, ctx.timezone)

    def _list(service):
        return service.events().list(
            calendarId="primary",
            timeMin=start.isoformat(),
            timeMax=end.isoformat(),
            singleEvents=True,
        ).execute()

    response = await google_call(ctx.access_token, "calendar", "v3", SERVICE_LABEL, "check event conflicts", _list)
    conflicts = [
        event for event in response.get("items", []) or []
        if event.get("id") != params.exclude_event_id and event.get("status") != "cancelled"
    ]
    if not conflicts:
        return f"No conflicts: the calendar is free between {start.isoformat()} and {end.isoformat()}."
    return format_events(conflicts, f"Conflicts between {start.isoformat()} and {end.isoformat()}")


async def list_calendars(params: ListCalendarsParams, ctx: ActionContext) -> str:
    response = await google_call(
        ctx.access_token, "calendar", "v3", SERVICE_LABEL, "get calendar list",
        lambda service: service.calendarList().list().execute(),
    )
    calendars = response.get("items", []) or []
    if not calendars:
        return "No calendars found."
    lines = [
        f"{i}. {c.get('summary', '(Unnamed)')}{' (primary)' if c.get('primary') else ''} "
        f"- access: {c.get('accessRole', 'unknown')}, ID: {c.get('id')}"
        for i, c in enumerate(calendars, 1)
    ]
    return f"You have {len(calendars)} calendar(s):\n" + "\n".join(lines)


# ============================================================================
# Narrators
# ============================================================================

def narrate_schedule_meeting(params: ScheduleMeetingParams) -> NarrationScript:
    return NarrationScript(
        intro=f"I'll set up \"{params.title}\" on your calendar.",
        progress="Creating the event and generating a Google Meet link...",
    )


def narrate_recurring_event(params: CreateRecurringEventParams) -> NarrationScript:
    return NarrationScript(
        intro=f"I'll create the recurring event \"{params.title}\".",
        progress="Setting up the series and sending invitations...",
    )


def narrate_upcoming_events(params: GetUpcomingEventsParams) -> NarrationScript:
    return NarrationScript(intro="Let me check what's coming up on your calendar.", progress="Loading your events...")


def narrate_get_event(params: GetEventParams) -> NarrationScript:
    return NarrationScript(intro="Let me look up that event.", progress="Fetching the event details...")


def narrate_update_event(params: UpdateEventParams) -> NarrationScript:
    target = f"\"{params.event_title}\"" if params.event_title else "the event"
    return NarrationScript(intro=f"I'll update {target} for you.", progress="Applying the changes and notifying attendees...")


def narrate_delete_event(params: DeleteEventParams) -> NarrationScript:
    target = f"\"{params.event_title}\"" if params.event_title else "the event"
    return NarrationScript(intro=f"I'll remove {target} from your calendar.", progress="Deleting the event...")


def narrate_free_slots(params: FindFreeTimeSlotsParams) -> NarrationScript:
    return NarrationScript(
        intro=f"I'll look for free {params.duration_minutes}-minute slots.",
        progress="Checking everyone's availability...",
    )


def narrate_search_events(params: SearchEventsParams) -> NarrationScript:
    return NarrationScript(intro=f"I'll search your calendar for \"{params.query}\".", progress="Searching events...")


def narrate_conflicts(params: CheckEventConflictsParams) -> NarrationScript:
    return NarrationScript(intro="Let me check that time for conflicts.", progress="Comparing against your schedule...")


def narrate_list_calendars(params: ListCalendarsParams) -> NarrationScript:
    return NarrationScript(intro="I'll list your calendars.", progress="Loading your calendar list...")


CALENDAR_ACTIONS = [
    ActionSpec(
        name="scheduleMeeting",
        capability=CALENDAR,
        params_model=ScheduleMeetingParams,
        executor=schedule_meeting,
        narrator=narrate_schedule_meeting,
        description=(
            "Schedule a meeting with a Google Meet link. Parameters: title, start, end (ISO 8601), "
            "description, attendees (list of emails)."
        ),
    ),
    ActionSpec(
        name="createRecurringEvent",
        capability=CALENDAR,
        params_model=CreateRecurringEventParams,
        executor=create_recurring_event,
        narrator=narrate_recurring_event,
        description=(
            "Create a recurring event. Parameters: title, start, end, description, attendees, "
            "recurrence (list of RRULE strings, e.g. RRULE:FREQ=WEEKLY;COUNT=10)."
        ),
    ),
    ActionSpec(
        name="getUpcomingEvents",
        capability=CALENDAR,
        params_model=GetUpcomingEventsParams,
        executor=get_upcoming_events,
        narrator=narrate_upcoming_events,
        description="List upcoming events (default next 30 days). Parameters: maxResults, timeMin, timeMax.",
        idempotent=True,
    ),
    ActionSpec(
        name="getEvent",
        capability=CALENDAR,
        params_model=GetEventParams,
        executor=get_event,
        narrator=narrate_get_event,
        description="Get one event. Parameters: eventId.",
        idempotent=True,
    ),
    ActionSpec(
        name="updateEvent",
        capability=CALENDAR,
        params_model=UpdateEventParams,
        executor=update_event,
        narrator=narrate_update_event,
        description=(
            "Update an event. Parameters: eventId or eventTitle, plus any of title, description, "
            "start, end, attendees, location."
        ),
    ),
    ActionSpec(
        name="deleteEvent",
        capability=CALENDAR,
        params_model=DeleteEventParams,
        executor=delete_event,
        narrator=narrate_delete_event,
        description="Delete an event. Parameters: eventId or eventTitle, notifyAttendees (default true).",
    ),
    ActionSpec(
        name="findFreeTimeSlots",
        capability=CALENDAR,
        params_model=FindFreeTimeSlotsParams,
        executor=find_free_time_slots,
        narrator=narrate_free_slots,
        description="Find free slots. Parameters: startDate, endDate (ISO 8601), durationMinutes (default 60), attendees.",
        idempotent=True,
    ),
    ActionSpec(
        name="searchEvents",
        capability=CALENDAR,
        params_model=SearchEventsParams,
        executor=search_events,
        narrator=narrate_search_events,
        description="Search events by text (default next year). Parameters: query, maxResults, timeMin, timeMax.",
        idempotent=True,
    ),
    ActionSpec(
        name="checkEventConflicts",
        capability=CALENDAR,
        params_model=CheckEventConflictsParams,
        executor=check_event_conflicts,
        narrator=narrate_conflicts,
        description="Check a time range for conflicting events. Parameters: start, end, excludeEventId.",
        idempotent=True,
    ),
    ActionSpec(
        name="listCalendars",
        capability=CALENDAR,
        params_model=ListCalendarsParams,
        executor=list_calendars,
        narrator=narrate_list_calendars,
        description="List the user's calendars. No parameters.",
        idempotent=True,
    ),
]
