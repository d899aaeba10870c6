"""
Chat Orchestrator - per-turn state machine

Classifies each turn, then chats, asks for confirmation, or performs an
action with a narrated multi-agent handoff. Every chunk that reaches the
client is also captured by the transcript sink, which persists it once.
"""

from typing import AsyncIterator, Dict, List

from loguru import logger

from src.agents.actions.registry import ActionSpec
from src.agents.orchestrator.context import OrchestratorContext
from src.agents.orchestrator.prompts import (
    build_confirmation_prompt,
    build_general_prompt,
    build_summary_input,
    build_summary_prompt,
)
from src.agents.orchestrator.routing import RoutingDecision, classify_intent, route_for
from src.agents.orchestrator.state import ConversationTurn, TurnRoute
from src.agents.orchestrator.transcript import TranscriptSink
from src.config.constants import get_app_display_name
from src.config.settings import settings
from src.errors import ErrorCategory, classify_error, format_error_message, get_retry_delay, should_retry
from src.utils.errors import ActionError, ClassificationError

CLASSIFICATION_FAILED_MESSAGE = "I'm sorry, I failed to analyze your request. Please try again."
MAX_RETRY_DELAY_SECONDS = 5.0


def capability_unavailable_message(app_name: str) -> str:
    return (
        f"I'd be happy to help with that, but **{app_name}** isn't connected to your account yet. "
        f"Please connect or reconnect {app_name} from the [Apps page]({settings.apps_page_url}) and then ask me again."
    )


def credential_expired_message(app_name: str) -> str:
    return (
        f"Your **{app_name}** connection has expired and could not be refreshed. "
        f"Please reconnect {app_name} from the [Apps page]({settings.apps_page_url}) to continue."
    )


def handoff_banner(app_name: str) -> str:
    return f"\n\n**{app_name}** joined the chat\n\n"


class ChatOrchestrator:
    """
    Drives one chat turn: CLASSIFY -> {PLAIN_CHAT | CONFIRM | ACT} -> DONE | ERROR

    Failures after streaming has begun become formatted chunks of the same
    stream; they are never raised to the caller.
    """

    def __init__(self, ctx: OrchestratorContext):
        self.ctx = ctx
        logger.info(f"Initialized ChatOrchestrator ({len(ctx.registry)} actions)")

    def _transcript_for(self, turn: ConversationTurn) -> TranscriptSink:
        db = self.ctx.conversation_db

        async def persist(text: str):
            await db.save_assistant_message(turn.thread_id, text)

        return TranscriptSink(persist, turn.thread_id)

    async def stream_turn(self, turn: ConversationTurn) -> AsyncIterator[str]:
        """Stream the assistant reply for one turn as plain-text chunks."""
        sink = self._transcript_for(turn)
        route = TurnRoute.CLASSIFY
        logger.info(f"\n{'='*80}\nTURN {turn.thread_id} (user={turn.user_id}, model={turn.model})\n{'='*80}")

        try:
            gateway = self.ctx.gateway_factory(turn.model, turn.api_key)
            messages = self.ctx.conversation_db.truncate_messages(list(turn.messages))

            try:
                decision = await classify_intent(
                    gateway, messages, self.ctx.registry, self.ctx.clock(), self.ctx.timezone_name
                )
            except Exception as e:
                route = TurnRoute.ERROR
                logger.error(f"❌ Intent classification failed: {e}")
                text = self._classification_failure_text(e)
                sink.append(text)
                yield text
                return

            route = route_for(decision)
            if route is TurnRoute.PLAIN_CHAT:
                chunks = gateway.stream_complete(
                    build_general_prompt(
                        turn.user_name, turn.organizer.email, self.ctx.clock(), self.ctx.timezone_name
                    ),
                    messages,
                )
            elif route is TurnRoute.CONFIRM:
                chunks = gateway.stream_complete(
                    build_confirmation_prompt(
                        decision.action_name, decision.parameters, self.ctx.clock(), self.ctx.timezone_name
                    ),
                    messages,
                )
            else:
                chunks = self._act(gateway, turn, decision)

            async for chunk in chunks:
                sink.append(chunk)
                yield chunk
            route = TurnRoute.DONE

        except Exception as e:
            route = TurnRoute.ERROR
            logger.exception(f"❌ Turn {turn.thread_id} failed: {e}")
            text = format_error_message(classify_error(e))
            if sink.text:
                text = "\n\n" + text
            sink.append(text)
            yield text

        finally:
            logger.info(f"Turn {turn.thread_id} ended in state {route.value}")
            await sink.finalize()

    def _classification_failure_text(self, error: Exception) -> str:
        # Provider problems (quota, auth, ...) get their remediation appended
        if isinstance(error, ClassificationError):
            return CLASSIFICATION_FAILED_MESSAGE
        details = classify_error(error)
        if details.category == ErrorCategory.UNKNOWN:
            return CLASSIFICATION_FAILED_MESSAGE
        return f"{CLASSIFICATION_FAILED_MESSAGE}\n\n{format_error_message(details)}"

    async def _act(
        self,
        gateway,
        turn: ConversationTurn,
        decision: RoutingDecision,
    ) -> AsyncIterator[str]:
        """Confirmed action: credential check, narration, execution, summary."""
        registry = self.ctx.registry
        spec = registry.get(decision.action_name)
        app_name = get_app_display_name(spec.capability)

        if not await self.ctx.credentials.has_permission(turn.user_id, spec.capability):
            logger.warning(f"User {turn.user_id} has not connected {spec.capability}")
            yield capability_unavailable_message(app_name)
            return

        access_token = await self.ctx.credentials.get_valid_access_token(turn.user_id, spec.capability)
        if access_token is None:
            logger.warning(f"No valid {spec.capability} credential for user {turn.user_id}")
            yield credential_expired_message(app_name)
            return

        try:
            params = registry.parse(spec.name, decision.parameters)
        except ActionError as e:
            logger.warning(f"Rejected parameters for {spec.name}: {e}")
            yield format_error_message(classify_error(e))
            return

        narration = registry.narrate(spec.name, params)
        yield narration.intro
        await self.ctx.pause()
        yield handoff_banner(app_name)
        await self.ctx.pause()
        yield narration.progress
        await self.ctx.pause()

        try:
            result = await self._execute(spec, params, access_token, turn)
        except Exception as e:
            logger.error(f"❌ Action {spec.name} failed: {e}")
            yield "\n\n" + format_error_message(classify_error(e))
            return

        yield "\n\n"
        summary_messages: List[Dict[str, str]] = [
            {"role": "user", "content": build_summary_input(spec.name, result)}
        ]
        async for chunk in gateway.stream_complete(
            build_summary_prompt(spec.name, turn.last_user_message), summary_messages
        ):
            yield chunk

    async def _execute(self, spec: ActionSpec, params, access_token: str, turn: ConversationTurn) -> str:
        """Execute an action, retrying read-only actions once on retryable failures."""
        registry = self.ctx.registry
        try:
            return await registry.execute(spec.name, params, access_token, turn.organizer)
        except Exception as e:
            if not (spec.idempotent and self.ctx.retry_idempotent_actions and should_retry(e)):
                raise
            delay = min(get_retry_delay(e), MAX_RETRY_DELAY_SECONDS)
            logger.warning(f"⚠️  Retrying {spec.name} in {delay:.1f}s after: {e}")
            await self.ctx.delay(delay)

        return await registry.execute(spec.name, params, access_token, turn.organizer)
