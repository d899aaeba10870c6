"""
Google Docs actions - create, read, update, share, delete, search.

Documents can be addressed by title. The title is looked up through a Drive
search and the executor works on a new parameter object holding the id.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from src.agents.actions.google_client import google_call
from src.agents.actions.params import (
    CreateDocumentParams,
    DeleteDocumentParams,
    DocumentTargetParams,
    GetDocumentPermissionsParams,
    ReadDocumentParams,
    SearchDocumentsParams,
    ShareDocumentParams,
    UpdateDocumentParams,
)
from src.agents.actions.registry import ActionContext, ActionSpec, NarrationScript
from src.config.constants import DOCS
from src.utils.errors import ResourceNotFoundError

SERVICE_LABEL = "Google Docs"
DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"
READ_PREVIEW_CHARS = 8000


def document_url(document_id: str) -> str:
    return f"https://docs.google.com/document/d/{document_id}/edit"


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_search_query(
    query: Optional[str] = None,
    folder_id: Optional[str] = None,
    modified_after: Optional[str] = None,
) -> str:
    """Drive ``q`` expression restricted to Google Docs."""
    q = f"mimeType='{DOCUMENT_MIME_TYPE}' and trashed=false"
    if query:
        term = _escape_query(query)
        q += f" and (name contains '{term}' or fullText contains '{term}')"
    if folder_id:
        q += f" and '{_escape_query(folder_id)}' in parents"
    if modified_after:
        q += f" and modifiedTime > '{_escape_query(modified_after)}'"
    return q


def extract_text(document: Dict[str, Any]) -> str:
    """Concatenate every text run of the document body."""
    parts: List[str] = []
    for element in document.get("body", {}).get("content", []) or []:
        for run in element.get("paragraph", {}).get("elements", []) or []:
            content = run.get("textRun", {}).get("content")
            if content:
                parts.append(content)
    return "".join(parts)


async def resolve_document_target(
    params: DocumentTargetParams,
    ctx: ActionContext,
    operation: str,
) -> DocumentTargetParams:
    """
    Return a copy of ``params`` with ``document_id`` filled in from the title.

    Raises:
        ResourceNotFoundError: The Drive search found no document
    """
    if params.document_id:
        return params

    title = params.document_title
    q = build_search_query(query=title)

    response = await google_call(
        ctx.access_token, "drive", "v3", SERVICE_LABEL, operation,
        lambda service: service.files().list(
            q=q, pageSize=10, orderBy="modifiedTime desc", fields="files(id, name, modifiedTime)"
        ).execute(),
    )
    files = response.get("files", []) or []
    if not files:
        raise ResourceNotFoundError(f"No document found with the title \"{title}\"")

    exact = [f for f in files if (f.get("name") or "").strip().lower() == title.strip().lower()]
    match = (exact or files)[0]
    logger.debug(f"Resolved document title '{title}' to {match.get('id')}")
    return params.model_copy(update={"document_id": match["id"]})


# ============================================================================
# Executors
# ============================================================================

async def create_document(params: CreateDocumentParams, ctx: ActionContext) -> str:
    def _create(service):
        return service.documents().create(body={"title": params.title}).execute()

    created = await google_call(ctx.access_token, "docs", "v1", SERVICE_LABEL, "create document", _create)
    document_id = created["documentId"]

    if params.content:
        await google_call(
            ctx.access_token, "docs", "v1", SERVICE_LABEL, "add content to document",
            lambda service: service.documents().batchUpdate(
                documentId=document_id,
                body={"requests": [{"insertText": {"location": {"index": 1}, "text": params.content}}]},
            ).execute(),
        )

    if params.folder_id:
        await google_call(
            ctx.access_token, "drive", "v3", SERVICE_LABEL, "move document",
            lambda service: service.files().update(
                fileId=document_id, addParents=params.folder_id, fields="id, parents"
            ).execute(),
        )

    content_note = " with the initial content" if params.content else ""
    return (
        f"Document \"{params.title}\" created{content_note}. "
        f"Document ID: {document_id}. Link: {document_url(document_id)}"
    )


async def read_document(params: ReadDocumentParams, ctx: ActionContext) -> str:
    resolved = await resolve_document_target(params, ctx, "read document")
    document = await google_call(
        ctx.access_token, "docs", "v1", SERVICE_LABEL, "read document",
        lambda service: service.documents().get(documentId=resolved.document_id).execute(),
    )
    text = extract_text(document)
    truncated = len(text) > READ_PREVIEW_CHARS
    body = text[:READ_PREVIEW_CHARS] + ("\n[... content truncated ...]" if truncated else "")
    return (
        f"Document \"{document.get('title', '(Untitled)')}\" (ID: {resolved.document_id}, "
        f"link: {document_url(resolved.document_id)}), {len(text)} characters:\n\n{body or '(empty document)'}"
    )


async def update_document(params: UpdateDocumentParams, ctx: ActionContext) -> str:
    resolved = await resolve_document_target(params, ctx, "update document")
    document_id = resolved.document_id

    def _update(service):
        if resolved.mode == "append":
            document = service.documents().get(documentId=document_id).execute()
            content = document.get("body", {}).get("content", []) or [{}]
            end_index = content[-1].get("endIndex", 1)
            requests = [{"insertText": {"location": {"index": max(end_index - 1, 1)}, "text": resolved.content}}]
        elif resolved.mode == "replace":
            requests = [{
                "replaceAllText": {
                    "containsText": {"text": resolved.replace_text, "matchCase": True},
                    "replaceText": resolved.content,
                }
            }]
        else:
            requests = [{"insertText": {"location": {"index": resolved.insert_index or 1}, "text": resolved.content}}]
        return service.documents().batchUpdate(documentId=document_id, body={"requests": requests}).execute()

    response = await google_call(ctx.access_token, "docs", "v1", SERVICE_LABEL, "update document", _update)

    if resolved.mode == "replace":
        replies = response.get("replies", []) or [{}]
        changed = replies[0].get("replaceAllText", {}).get("occurrencesChanged", 0)
        summary = f"Replaced {changed} occurrence(s) of \"{resolved.replace_text}\""
    elif resolved.mode == "insert":
        summary = f"Inserted {len(resolved.content)} characters at index {resolved.insert_index or 1}"
    else:
        summary = f"Appended {len(resolved.content)} characters to the end"
    return f"{summary} in document {document_id}. Link: {document_url(document_id)}"


async def share_document(params: ShareDocumentParams, ctx: ActionContext) -> str:
    resolved = await resolve_document_target(params, ctx, "share document")

    def _share(service):
        kwargs: Dict[str, Any] = {
            "fileId": resolved.document_id,
            "body": {"type": "user", "role": resolved.role, "emailAddress": resolved.email},
            "sendNotificationEmail": resolved.notify,
            "fields": "id, emailAddress, role",
        }
        if resolved.notify and resolved.message:
            kwargs["emailMessage"] = resolved.message
        return service.permissions().create(**kwargs).execute()

    permission = await google_call(ctx.access_token, "drive", "v3", SERVICE_LABEL, "share document", _share)
    notified = "A notification email was sent." if resolved.notify else "No notification was sent."
    return (
        f"Shared document {resolved.document_id} with {resolved.email} as {resolved.role}. {notified} "
        f"Permission ID: {permission.get('id')}. Link: {document_url(resolved.document_id)}"
    )


async def delete_document(params: DeleteDocumentParams, ctx: ActionContext) -> str:
    resolved = await resolve_document_target(params, ctx, "delete document")

    def _delete(service):
        if resolved.permanent:
            return service.files().delete(fileId=resolved.document_id).execute()
        return service.files().update(fileId=resolved.document_id, body={"trashed": True}).execute()

    await google_call(ctx.access_token, "drive", "v3", SERVICE_LABEL, "delete document", _delete)
    label = f"\"{resolved.document_title}\" ({resolved.document_id})" if resolved.document_title else resolved.document_id
    if resolved.permanent:
        return f"Document {label} was permanently deleted."
    return f"Document {label} was moved to trash (it can be recovered within 30 days)."


async def get_document_permissions(params: GetDocumentPermissionsParams, ctx: ActionContext) -> str:
    resolved = await resolve_document_target(params, ctx, "get document permissions")
    response = await google_call(
        ctx.access_token, "drive", "v3", SERVICE_LABEL, "get document permissions",
        lambda service: service.permissions().list(
            fileId=resolved.document_id, fields="permissions(id, type, role, emailAddress, displayName)"
        ).execute(),
    )
    permissions = response.get("permissions", []) or []
    if not permissions:
        return f"Document {resolved.document_id} has no explicit permissions."
    lines = [
        f"{i}. {p.get('displayName') or p.get('emailAddress') or p.get('type')} "
        f"({p.get('emailAddress', p.get('type'))}): {p.get('role')}"
        for i, p in enumerate(permissions, 1)
    ]
    return (
        f"Document {resolved.document_id} is shared with {len(permissions)} principal(s):\n"
        + "\n".join(lines)
        + f"\nLink: {document_url(resolved.document_id)}"
    )


async def search_documents(params: SearchDocumentsParams, ctx: ActionContext) -> str:
    q = build_search_query(params.query, params.folder_id, params.modified_after)
    response = await google_call(
        ctx.access_token, "drive", "v3", SERVICE_LABEL, "search documents",
        lambda service: service.files().list(
            q=q,
            pageSize=params.max_results,
            orderBy="modifiedTime desc",
            fields="files(id, name, modifiedTime, createdTime, owners, webViewLink)",
        ).execute(),
    )
    files = response.get("files", []) or []
    heading = f"Documents matching \"{params.query}\"" if params.query else "Recent documents"
    if not files:
        return f"{heading}: none found."
    lines = []
    for i, f in enumerate(files, 1):
        owners = ", ".join(o.get("displayName") or o.get("emailAddress", "") for o in f.get("owners", []) or [])
        lines.append(
            f"{i}. \"{f.get('name')}\" (ID: {f.get('id')}), last modified {f.get('modifiedTime')}"
            f"{f', owned by {owners}' if owners else ''}. Link: {f.get('webViewLink') or document_url(f['id'])}"
        )
    return f"{heading}: {len(files)} document(s).\n" + "\n".join(lines)


# ============================================================================
# Narrators
# ============================================================================

def _target_label(params: DocumentTargetParams) -> str:
    return f"\"{params.document_title}\"" if params.document_title else "the document"


def narrate_create_document(params: CreateDocumentParams) -> NarrationScript:
    return NarrationScript(intro=f"I'll create the document \"{params.title}\".", progress="Setting up your new doc...")


def narrate_read_document(params: ReadDocumentParams) -> NarrationScript:
    return NarrationScript(intro=f"Let me open {_target_label(params)}.", progress="Reading the document...")


def narrate_update_document(params: UpdateDocumentParams) -> NarrationScript:
    return NarrationScript(intro=f"I'll update {_target_label(params)}.", progress=f"Applying the {params.mode} edit...")


def narrate_share_document(params: ShareDocumentParams) -> NarrationScript:
    return NarrationScript(
        intro=f"I'll share {_target_label(params)} with {params.email}.",
        progress=f"Granting {params.role} access...",
    )


def narrate_delete_document(params: DeleteDocumentParams) -> NarrationScript:
    progress = "Deleting it permanently..." if params.permanent else "Moving it to the trash..."
    return NarrationScript(intro=f"I'll remove {_target_label(params)}.", progress=progress)


def narrate_document_permissions(params: GetDocumentPermissionsParams) -> NarrationScript:
    return NarrationScript(intro=f"Let me check who has access to {_target_label(params)}.", progress="Loading sharing settings...")


def narrate_search_documents(params: SearchDocumentsParams) -> NarrationScript:
    target = f" for \"{params.query}\"" if params.query else ""
    return NarrationScript(intro=f"I'll search your documents{target}.", progress="Searching Google Drive...")


DOCUMENT_TARGET_HELP = "documentId or documentTitle"

DOCS_ACTIONS = [
    ActionSpec(
        name="createDocument",
        capability=DOCS,
        params_model=CreateDocumentParams,
        executor=create_document,
        narrator=narrate_create_document,
        description="Create a Google Doc. Parameters: title, content (optional), folderId (optional).",
    ),
    ActionSpec(
        name="readDocument",
        capability=DOCS,
        params_model=ReadDocumentParams,
        executor=read_document,
        narrator=narrate_read_document,
        description=f"Read a document's text. Parameters: {DOCUMENT_TARGET_HELP}.",
        idempotent=True,
    ),
    ActionSpec(
        name="updateDocument",
        capability=DOCS,
        params_model=UpdateDocumentParams,
        executor=update_document,
        narrator=narrate_update_document,
        description=(
            f"Edit a document. Parameters: {DOCUMENT_TARGET_HELP}, mode (append|replace|insert), content, "
            "replaceText (for replace), insertIndex (for insert)."
        ),
    ),
    ActionSpec(
        name="shareDocument",
        capability=DOCS,
        params_model=ShareDocumentParams,
        executor=share_document,
        narrator=narrate_share_document,
        description=(
            f"Share a document. Parameters: {DOCUMENT_TARGET_HELP}, email, role (reader|writer|commenter), "
            "notify (default true), message."
        ),
    ),
    ActionSpec(
        name="deleteDocument",
        capability=DOCS,
        params_model=DeleteDocumentParams,
        executor=delete_document,
        narrator=narrate_delete_document,
        description=f"Delete a document (trash by default). Parameters: {DOCUMENT_TARGET_HELP}, permanent.",
    ),
    ActionSpec(
        name="getDocumentPermissions",
        capability=DOCS,
        params_model=GetDocumentPermissionsParams,
        executor=get_document_permissions,
        narrator=narrate_document_permissions,
        description=f"List who can access a document. Parameters: {DOCUMENT_TARGET_HELP}.",
        idempotent=True,
    ),
    ActionSpec(
        name="searchDocuments",
        capability=DOCS,
        params_model=SearchDocumentsParams,
        executor=search_documents,
        narrator=narrate_search_documents,
        description="Search Google Docs by name or content. Parameters: query, folderId, modifiedAfter, maxResults.",
        idempotent=True,
    ),
]
