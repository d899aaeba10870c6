"""
Gmail actions - send, read, search, mark as read, thread lookup.
"""

import base64
import re
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from src.agents.actions.google_client import google_call
from src.agents.actions.params import (
    GetEmailThreadParams,
    MarkEmailsAsReadParams,
    ReadEmailsParams,
    SearchEmailsParams,
    SendEmailParams,
)
from src.agents.actions.registry import ActionContext, ActionSpec, NarrationScript
from src.config.constants import GMAIL

SERVICE_LABEL = "Gmail"
BODY_PREVIEW_CHARS = 1000


# ============================================================================
# Message helpers
# ============================================================================

def build_gmail_query(params: ReadEmailsParams) -> str:
    """Gmail search query for the read filters (always scoped to the inbox)."""
    query = "in:inbox"
    if params.sender:
        query += f" from:{params.sender}"
    if params.subject:
        query += f' subject:"{params.subject}"'
    if params.is_unread:
        query += " is:unread"
    if params.has_attachment:
        query += " has:attachment"
    if params.date_after:
        query += f" after:{params.date_after}"
    if params.date_before:
        query += f" before:{params.date_before}"
    if params.query:
        query += f" {params.query}"
    return query


def strip_html(text: str) -> str:
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = text.replace("&nbsp;", " ").replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")
    return re.sub(r"\s+", " ", text).strip()


def _decode_body(data: str) -> str:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4)).decode("utf-8", errors="replace")


def _find_text_part(parts: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for part in parts:
        if part.get("mimeType") in ("text/plain", "text/html"):
            return part
        if part.get("parts"):
            found = _find_text_part(part["parts"])
            if found:
                return found
    return None


def _has_attachments(payload: Dict[str, Any]) -> bool:
    for part in payload.get("parts", []) or []:
        if part.get("filename"):
            return True
        if part.get("parts") and _has_attachments(part):
            return True
    return False


def get_header(message: Dict[str, Any], name: str) -> str:
    headers = message.get("payload", {}).get("headers", [])
    return next((h.get("value", "") for h in headers if h.get("name", "").lower() == name.lower()), "")


def parse_email_message(message: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Gmail API message into the fields we narrate."""
    payload = message.get("payload", {})
    body = ""
    if payload.get("body", {}).get("data"):
        body = _decode_body(payload["body"]["data"])
    elif payload.get("parts"):
        text_part = _find_text_part(payload["parts"])
        if text_part and text_part.get("body", {}).get("data"):
            body = _decode_body(text_part["body"]["data"])

    return {
        "id": message.get("id", ""),
        "threadId": message.get("threadId", ""),
        "subject": get_header(message, "Subject") or "(No Subject)",
        "from": get_header(message, "From"),
        "to": get_header(message, "To"),
        "date": get_header(message, "Date"),
        "snippet": message.get("snippet", ""),
        "body": strip_html(body)[:BODY_PREVIEW_CHARS],
        "isUnread": "UNREAD" in (message.get("labelIds") or []),
        "hasAttachments": _has_attachments(payload),
    }


def format_emails(emails: List[Dict[str, Any]], heading: str) -> str:
    if not emails:
        return f"{heading}: no emails found."
    lines = [f"{heading}: {len(emails)} email(s) found.", ""]
    for i, email in enumerate(emails, 1):
        flags = []
        if email["isUnread"]:
            flags.append("unread")
        if email["hasAttachments"]:
            flags.append("has attachments")
        flag_text = f" [{', '.join(flags)}]" if flags else ""
        lines.append(f"{i}. \"{email['subject']}\" from {email['from']} on {email['date']}{flag_text}")
        lines.append(f"   Message ID: {email['id']} | Thread ID: {email['threadId']}")
        lines.append(f"   Content: {email['body'] or email['snippet']}")
    return "\n".join(lines)


def _list_messages(service, query: str, max_results: int) -> List[Dict[str, Any]]:
    response = service.users().messages().list(userId="me", q=query, maxResults=max_results).execute()
    emails = []
    for item in response.get("messages", []) or []:
        details = service.users().messages().get(userId="me", id=item["id"], format="full").execute()
        emails.append(parse_email_message(details))
    return emails


# ============================================================================
# Executors
# ============================================================================

async def send_email(params: SendEmailParams, ctx: ActionContext) -> str:
    def _send(service):
        message = EmailMessage()
        message["To"] = params.to
        message["Subject"] = params.subject
        message.set_content(params.body, subtype="html")

        body: Dict[str, Any] = {}
        if params.reply_to_message_id:
            original = service.users().messages().get(
                userId="me",
                id=params.reply_to_message_id,
                format="metadata",
                metadataHeaders=["Message-ID", "References", "In-Reply-To"],
            ).execute()
            message_id = get_header(original, "Message-ID")
            if message_id:
                references = get_header(original, "References")
                message["In-Reply-To"] = message_id
                message["References"] = f"{references} {message_id}".strip()
            if original.get("threadId"):
                body["threadId"] = original["threadId"]

        body["raw"] = base64.urlsafe_b64encode(message.as_bytes()).decode()
        return service.users().messages().send(userId="me", body=body).execute()

    result = await google_call(ctx.access_token, "gmail", "v1", SERVICE_LABEL, "send email", _send)
    reply_note = " as a reply in the existing thread" if params.reply_to_message_id else ""
    return (
        f"Email sent successfully{reply_note} to {params.to} with subject "
        f"\"{params.subject or '(No Subject)'}\". Gmail message ID: {result.get('id', 'unknown')}."
    )


async def read_emails(params: ReadEmailsParams, ctx: ActionContext) -> str:
    query = build_gmail_query(params)
    emails = await google_call(
        ctx.access_token, "gmail", "v1", SERVICE_LABEL, "read emails from Gmail",
        lambda service: _list_messages(service, query, params.max_results),
    )
    return format_emails(emails, f"Inbox results for query '{query}'")


async def search_emails(params: SearchEmailsParams, ctx: ActionContext) -> str:
    query = build_gmail_query(ReadEmailsParams(query=params.query))
    emails = await google_call(
        ctx.access_token, "gmail", "v1", SERVICE_LABEL, "search emails",
        lambda service: _list_messages(service, query, params.max_results),
    )
    return format_emails(emails, f"Search results for '{params.query}'")


async def mark_emails_as_read(params: MarkEmailsAsReadParams, ctx: ActionContext) -> str:
    operation = "removeLabelIds" if params.mark_as_read else "addLabelIds"

    def _modify(service):
        return service.users().messages().batchModify(
            userId="me",
            body={"ids": params.message_ids, operation: ["UNREAD"]},
        ).execute()

    await google_call(ctx.access_token, "gmail", "v1", SERVICE_LABEL, "mark emails", _modify)
    state = "read" if params.mark_as_read else "unread"
    return f"Marked {len(params.message_ids)} email(s) as {state}: {', '.join(params.message_ids)}."


async def get_email_thread(params: GetEmailThreadParams, ctx: ActionContext) -> str:
    def _thread(service):
        thread = service.users().threads().get(userId="me", id=params.thread_id, format="full").execute()
        return [parse_email_message(m) for m in thread.get("messages", []) or []]

    emails = await google_call(ctx.access_token, "gmail", "v1", SERVICE_LABEL, "get email thread", _thread)
    return format_emails(emails, f"Conversation thread {params.thread_id}")


# ============================================================================
# Narrators
# ============================================================================

def narrate_send_email(params: SendEmailParams) -> NarrationScript:
    return NarrationScript(
        intro=f"I'll send that email to {params.to} for you.",
        progress=f"Drafting and sending \"{params.subject or 'your message'}\"...",
    )


def narrate_read_emails(params: ReadEmailsParams) -> NarrationScript:
    scope = f" from {params.sender}" if params.sender else ""
    return NarrationScript(
        intro=f"Let me check your inbox{scope}.",
        progress="Fetching your latest emails...",
    )


def narrate_search_emails(params: SearchEmailsParams) -> NarrationScript:
    return NarrationScript(
        intro=f"I'll search your mailbox for \"{params.query}\".",
        progress="Searching through your emails...",
    )


def narrate_mark_emails(params: MarkEmailsAsReadParams) -> NarrationScript:
    state = "read" if params.mark_as_read else "unread"
    return NarrationScript(
        intro=f"I'll mark {len(params.message_ids)} email(s) as {state}.",
        progress="Updating your inbox...",
    )


def narrate_email_thread(params: GetEmailThreadParams) -> NarrationScript:
    return NarrationScript(
        intro="Let me pull up that conversation.",
        progress="Loading every message in the thread...",
    )


GMAIL_ACTIONS = [
    ActionSpec(
        name="sendEmail",
        capability=GMAIL,
        params_model=SendEmailParams,
        executor=send_email,
        narrator=narrate_send_email,
        description="Send an email. Parameters: to, subject, body, replyToMessageId (optional).",
    ),
    ActionSpec(
        name="readEmails",
        capability=GMAIL,
        params_model=ReadEmailsParams,
        executor=read_emails,
        narrator=narrate_read_emails,
        description=(
            "Read inbox emails. Parameters (all optional): sender, subject, isUnread, hasAttachment, "
            "dateAfter (YYYY/MM/DD), dateBefore (YYYY/MM/DD), query, maxResults."
        ),
        idempotent=True,
    ),
    ActionSpec(
        name="searchEmails",
        capability=GMAIL,
        params_model=SearchEmailsParams,
        executor=search_emails,
        narrator=narrate_search_emails,
        description="Search emails with a Gmail query. Parameters: query, maxResults.",
        idempotent=True,
    ),
    ActionSpec(
        name="markEmailsAsRead",
        capability=GMAIL,
        params_model=MarkEmailsAsReadParams,
        executor=mark_emails_as_read,
        narrator=narrate_mark_emails,
        description="Mark emails as read or unread. Parameters: messageIds (list), markAsRead (default true).",
    ),
    ActionSpec(
        name="getEmailThread",
        capability=GMAIL,
        params_model=GetEmailThreadParams,
        executor=get_email_thread,
        narrator=narrate_email_thread,
        description="Get every message of an email thread. Parameters: threadId.",
        idempotent=True,
    ),
]
