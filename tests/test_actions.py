"""
Tests for action parameters, the registry and the Google-backed executors

Google discovery clients are replaced with MagicMock services; no network.
"""

import base64
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from src.agents.actions import google_client
from src.agents.actions.calendar import compute_free_slots, delete_event, parse_datetime, schedule_meeting
from src.agents.actions.docs import build_search_query, read_document, share_document
from src.agents.actions.gmail import build_gmail_query, parse_email_message, send_email
from src.agents.actions.params import (
    DeleteEventParams,
    MarkEmailsAsReadParams,
    ReadDocumentParams,
    ReadEmailsParams,
    ScheduleMeetingParams,
    SendEmailParams,
    ShareDocumentParams,
    UpdateDocumentParams,
    parse_parameters,
)
from src.agents.actions.registry import ActionContext, ActionRegistry, ActionSpec, Organizer, build_default_registry
from src.utils.errors import (
    ActionExecutionError,
    MissingParameterError,
    ResourceNotFoundError,
    ServiceAuthError,
    UnknownActionError,
)
from tests.fakes import LookupParams, RecordingExecutor, lookup_narrator

CTX = ActionContext(
    access_token="access-1",
    organizer=Organizer(display_name="Ada Lovelace", email="ada@example.com"),
    timezone="Asia/Kolkata",
)


@pytest.fixture
def service(monkeypatch):
    """MagicMock discovery client returned for every API"""
    fake = MagicMock()
    monkeypatch.setattr(google_client, "build_service", lambda api, version, token: fake)
    return fake


def http_error(status: int, message: str = "error") -> HttpError:
    resp = MagicMock(status=status, reason=message)
    return HttpError(resp, f'{{"error": {{"message": "{message}"}}}}'.encode())


class TestParameterParsing(unittest.TestCase):
    """Classifier parameter maps -> typed parameter objects"""

    def test_camel_case_aliases(self):
        params = parse_parameters("sendEmail", SendEmailParams, {
            "to": "bob@example.com", "body": "Hi", "replyToMessageId": "m-1",
        })
        self.assertEqual(params.reply_to_message_id, "m-1")
        self.assertEqual(params.subject, "")

    def test_missing_required_fields_listed(self):
        with self.assertRaises(MissingParameterError) as raised:
            parse_parameters("sendEmail", SendEmailParams, {"to": "bob@example.com", "body": "  "})
        self.assertEqual(raised.exception.missing, ["body"])

    def test_empty_list_counts_as_missing(self):
        with self.assertRaises(MissingParameterError):
            parse_parameters("markEmailsAsRead", MarkEmailsAsReadParams, {"messageIds": []})

    def test_comma_separated_attendees_split(self):
        params = parse_parameters("scheduleMeeting", ScheduleMeetingParams, {
            "title": "Sync", "start": "2025-03-11T15:00:00", "end": "2025-03-11T15:30:00",
            "attendees": "bob@example.com, carol@example.com",
        })
        self.assertEqual(params.attendees, ["bob@example.com", "carol@example.com"])

    def test_event_target_needs_id_or_title(self):
        with self.assertRaises(MissingParameterError) as raised:
            parse_parameters("deleteEvent", DeleteEventParams, {})
        self.assertIn("eventId or eventTitle", str(raised.exception))

    def test_replace_mode_requires_replace_text(self):
        with self.assertRaises(MissingParameterError):
            parse_parameters("updateDocument", UpdateDocumentParams, {
                "documentId": "d-1", "mode": "replace", "content": "new",
            })

    def test_invalid_value_is_execution_error(self):
        with self.assertRaises(ActionExecutionError):
            parse_parameters("shareDocument", ShareDocumentParams, {
                "documentId": "d-1", "email": "bob@example.com", "role": "owner",
            })

    def test_params_are_immutable(self):
        params = parse_parameters("readDocument", ReadDocumentParams, {"documentTitle": "Plan"})
        with self.assertRaises(Exception):
            params.document_id = "d-1"


class TestRegistry(unittest.TestCase):

    def test_default_registry_is_complete(self):
        registry = build_default_registry()
        self.assertEqual(len(registry), 22)
        self.assertEqual(registry.capability_for("scheduleMeeting"), "calendar")
        self.assertEqual(registry.capability_for("shareDocument"), "docs")
        self.assertTrue(registry.is_idempotent("readEmails"))
        self.assertFalse(registry.is_idempotent("sendEmail"))
        self.assertFalse(registry.is_idempotent("deleteDocument"))

    def test_every_action_has_a_narrator(self):
        registry = build_default_registry()
        for name in registry.names():
            self.assertTrue(callable(registry.get(name).narrator), name)

    def test_unknown_action(self):
        with self.assertRaises(UnknownActionError):
            build_default_registry().get("launchRocket")

    def test_duplicate_registration_rejected(self):
        spec = ActionSpec("lookup", "calendar", LookupParams, RecordingExecutor(), lookup_narrator, "Lookup.")
        registry = ActionRegistry([spec])
        with self.assertRaises(ValueError):
            registry.register(spec)

    def test_describe_lists_parameters(self):
        description = build_default_registry().describe()
        self.assertIn("sendEmail [gmail]", description)
        self.assertIn("replyToMessageId?", description)
        self.assertIn("documentTitle?", description)


class TestGmail(unittest.TestCase):

    def test_gmail_query_scoped_to_inbox(self):
        params = ReadEmailsParams(sender="alice@example.com", is_unread=True, subject="Q3 report")
        self.assertEqual(
            build_gmail_query(params),
            'in:inbox from:alice@example.com subject:"Q3 report" is:unread',
        )

    def test_parse_email_message_decodes_html_body(self):
        html = "<p>Hello <b>Ada</b></p>"
        message = {
            "id": "m-1",
            "threadId": "t-1",
            "labelIds": ["UNREAD", "INBOX"],
            "payload": {
                "headers": [{"name": "Subject", "value": "Hi"}, {"name": "From", "value": "bob@example.com"}],
                "parts": [{"mimeType": "text/html", "body": {"data": base64.urlsafe_b64encode(html.encode()).decode()}}],
            },
        }
        parsed = parse_email_message(message)
        self.assertEqual(parsed["body"], "Hello Ada")
        self.assertTrue(parsed["isUnread"])
        self.assertEqual(parsed["subject"], "Hi")


class TestCalendarHelpers(unittest.TestCase):

    def test_naive_datetime_uses_user_timezone(self):
        parsed = parse_datetime("2025-03-11T15:00:00", "Asia/Kolkata")
        self.assertEqual(parsed.utcoffset().total_seconds(), 5.5 * 3600)

    def test_invalid_datetime(self):
        with self.assertRaises(ActionExecutionError):
            parse_datetime("tomorrow-ish", "UTC")

    def test_free_slots_skip_busy_intervals(self):
        start = datetime(2025, 3, 11, 9, 0, tzinfo=timezone.utc)
        end = datetime(2025, 3, 11, 11, 0, tzinfo=timezone.utc)
        busy = [{"start": "2025-03-11T09:30:00Z", "end": "2025-03-11T10:00:00Z"}]

        slots = compute_free_slots(busy, start, end, 30)

        starts = [slot["start"] for slot in slots]
        self.assertEqual(starts, [
            "2025-03-11T09:00:00+00:00",
            "2025-03-11T10:00:00+00:00",
            "2025-03-11T10:30:00+00:00",
        ])


class TestDocsHelpers(unittest.TestCase):

    def test_search_query_escapes_quotes(self):
        q = build_search_query(query="Bob's plan")
        self.assertIn("mimeType='application/vnd.google-apps.document'", q)
        self.assertIn("name contains 'Bob\\'s plan'", q)
        self.assertIn("trashed=false", q)


class TestExecutors:

    async def test_send_email_encodes_message(self, service):
        service.users.return_value.messages.return_value.send.return_value.execute.return_value = {"id": "m-9"}
        params = SendEmailParams(to="bob@example.com", subject="Hello", body="<p>Hi Bob</p>")

        result = await send_email(params, CTX)

        assert "m-9" in result
        _, kwargs = service.users.return_value.messages.return_value.send.call_args
        raw = base64.urlsafe_b64decode(kwargs["body"]["raw"]).decode()
        assert "To: bob@example.com" in raw
        assert "Subject: Hello" in raw

    async def test_schedule_meeting_requests_meet_link_and_invites(self, service):
        insert = service.events.return_value.insert
        insert.return_value.execute.return_value = {"id": "e-1", "hangoutLink": "https://meet.google.com/abc"}
        params = ScheduleMeetingParams(
            title="Sync", start="2025-03-11T15:00:00", end="2025-03-11T15:30:00", attendees=["bob@example.com"]
        )

        result = await schedule_meeting(params, CTX)

        assert "https://meet.google.com/abc" in result
        _, kwargs = insert.call_args
        assert kwargs["conferenceDataVersion"] == 1
        assert kwargs["sendUpdates"] == "all"
        assert kwargs["body"]["organizer"]["email"] == "ada@example.com"
        assert kwargs["body"]["start"]["timeZone"] == "Asia/Kolkata"

    async def test_delete_event_by_title(self, service):
        events = service.events.return_value
        events.list.return_value.execute.return_value = {"items": [{"id": "e-7", "summary": "Standup"}]}
        events.delete.return_value.execute.return_value = None

        result = await delete_event(DeleteEventParams(event_title="standup"), CTX)

        _, kwargs = events.delete.call_args
        assert kwargs["eventId"] == "e-7"
        assert "e-7" in result

    async def test_document_title_is_resolved_through_drive(self, service):
        service.files.return_value.list.return_value.execute.return_value = {
            "files": [{"id": "d-2", "name": "Roadmap draft"}, {"id": "d-1", "name": "Roadmap"}]
        }
        service.documents.return_value.get.return_value.execute.return_value = {
            "title": "Roadmap",
            "body": {"content": [{"paragraph": {"elements": [{"textRun": {"content": "Q1: ship it\n"}}]}}]},
        }

        result = await read_document(ReadDocumentParams(document_title="roadmap"), CTX)

        _, kwargs = service.documents.return_value.get.call_args
        assert kwargs["documentId"] == "d-1"
        assert "Q1: ship it" in result

    async def test_unknown_document_title(self, service):
        service.files.return_value.list.return_value.execute.return_value = {"files": []}

        with pytest.raises(ResourceNotFoundError):
            await share_document(ShareDocumentParams(document_title="Nope", email="bob@example.com"), CTX)

    async def test_unauthorized_maps_to_service_auth_error(self, service):
        service.files.return_value.list.return_value.execute.side_effect = http_error(401, "Invalid Credentials")

        with pytest.raises(ServiceAuthError) as raised:
            await read_document(ReadDocumentParams(document_title="Roadmap"), CTX)
        assert "Google Docs" in str(raised.value)

    async def test_server_error_maps_to_execution_error(self, service):
        service.documents.return_value.get.return_value.execute.side_effect = http_error(500, "Backend Error")

        with pytest.raises(ActionExecutionError) as raised:
            await read_document(ReadDocumentParams(document_id="d-1"), CTX)
        assert str(raised.value).startswith("Failed to read document")
        assert raised.value.status_code == 500
