"""
Tests for the chat orchestrator turn state machine
"""

from dataclasses import replace

from src.agents.actions.registry import ActionRegistry, build_default_registry
from src.agents.orchestrator import (
    ChatOrchestrator,
    OrchestratorContext,
    RoutingDecision,
    TurnRoute,
    no_delay,
    route_for,
)
from src.agents.orchestrator.agent import CLASSIFICATION_FAILED_MESSAGE
from src.llm.gateway import ModelGateway
from src.utils.errors import ActionExecutionError, ClassificationError
from tests.fakes import (
    NOW,
    THREAD_ID,
    USER_ID,
    FakeGateway,
    RecordingExecutor,
    collect,
    connect,
    make_orchestrator,
    make_registry,
    make_turn,
)


async def assistant_rows(db, thread_id=THREAD_ID):
    cursor = await db.connection.execute(
        "SELECT content FROM messages WHERE thread_id = ? AND role = 'assistant' ORDER BY id", (thread_id,)
    )
    return [row["content"] for row in await cursor.fetchall()]


def confirmed(action_name, **parameters):
    return RoutingDecision(
        requires_action=True,
        user_confirmed=True,
        action_name=action_name,
        parameters=parameters,
        reasoning="user approved",
    )


class TestRouting:
    """Decision -> state mapping"""

    def test_no_action_routes_to_plain_chat(self):
        assert route_for(RoutingDecision(requires_action=False)) is TurnRoute.PLAIN_CHAT

    def test_requires_action_false_wins_over_other_fields(self):
        decision = RoutingDecision(requires_action=False, user_confirmed=True, action_name="sendEmail")
        assert route_for(decision) is TurnRoute.PLAIN_CHAT

    def test_action_none_routes_to_plain_chat(self):
        decision = RoutingDecision(requires_action=True, user_confirmed=True, action_name="none")
        assert route_for(decision) is TurnRoute.PLAIN_CHAT

    def test_unconfirmed_action_routes_to_confirm(self):
        decision = RoutingDecision(requires_action=True, action_name="sendEmail")
        assert route_for(decision) is TurnRoute.CONFIRM

    def test_confirmed_action_routes_to_act(self):
        assert route_for(confirmed("sendEmail")) is TurnRoute.ACT

    def test_parameters_accept_json_string(self):
        decision = RoutingDecision(requires_action=True, action_name="searchEvents", parameters='{"query": "standup"}')
        assert decision.parameters == {"query": "standup"}


class TestPlainChat:

    async def test_streams_model_chunks_and_persists_concatenation(self, db, credentials):
        gateway = FakeGateway(chunks=["Hello", ", ", "world!"])
        orchestrator = make_orchestrator(gateway, credentials, make_registry(), db)

        chunks = await collect(orchestrator.stream_turn(make_turn("hi")))

        assert chunks == ["Hello", ", ", "world!"]
        assert await assistant_rows(db) == ["Hello, world!"]
        assert gateway.classify_calls == 1

    async def test_action_fields_ignored_when_not_required(self, db, credentials):
        executor = RecordingExecutor()
        gateway = FakeGateway(
            decision=RoutingDecision(requires_action=False, user_confirmed=True, action_name="searchEvents")
        )
        orchestrator = make_orchestrator(gateway, credentials, make_registry(read_executor=executor), db)

        await collect(orchestrator.stream_turn(make_turn()))

        assert executor.calls == []

    async def test_each_turn_persists_one_assistant_row(self, db, credentials):
        orchestrator = make_orchestrator(FakeGateway(chunks=["one"]), credentials, make_registry(), db)
        await collect(orchestrator.stream_turn(make_turn("first")))
        orchestrator = make_orchestrator(FakeGateway(chunks=["two"]), credentials, make_registry(), db)
        await collect(orchestrator.stream_turn(make_turn("second")))

        assert await assistant_rows(db) == ["one", "two"]


class TestConfirmation:

    async def test_unconfirmed_action_never_executes(self, db, credentials, permissions):
        await connect(permissions, "gmail")
        executor = RecordingExecutor()
        gateway = FakeGateway(
            decision=RoutingDecision(
                requires_action=True, action_name="sendEmail", parameters={"query": "to bob"}
            ),
            chunks=["Shall I send it?"],
        )
        orchestrator = make_orchestrator(gateway, credentials, make_registry(write_executor=executor), db)

        chunks = await collect(orchestrator.stream_turn(make_turn("email bob")))

        assert executor.calls == []
        assert "".join(chunks) == "Shall I send it?"
        system_prompt, _ = gateway.stream_calls[0]
        assert "sendEmail" in system_prompt


class TestAct:

    async def test_confirmed_action_narrates_executes_and_summarizes(self, db, credentials, permissions):
        await connect(permissions, "calendar")
        executor = RecordingExecutor(result="Found 2 events: Standup, Review")
        gateway = FakeGateway(decision=confirmed("searchEvents", query="standup"), chunks=["You have ", "2 events."])
        orchestrator = make_orchestrator(gateway, credentials, make_registry(read_executor=executor), db)

        chunks = await collect(orchestrator.stream_turn(make_turn("yes")))

        assert chunks[0] == 'I\'ll look up "standup" for you.'
        assert chunks[1] == "\n\n**Google Calendar** joined the chat\n\n"
        assert chunks[2] == "Searching your calendar..."
        assert chunks[-2:] == ["You have ", "2 events."]

        assert len(executor.calls) == 1
        params, ctx = executor.calls[0]
        assert params.query == "standup"
        assert ctx.access_token == "access-1"
        assert ctx.organizer.email == "ada@example.com"

        _, summary_messages = gateway.stream_calls[0]
        assert "Found 2 events" in summary_messages[0]["content"]
        assert await assistant_rows(db) == ["".join(chunks)]

    async def test_capability_not_connected_skips_execution(self, db, credentials):
        executor = RecordingExecutor()
        gateway = FakeGateway(decision=confirmed("searchEvents", query="standup"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(read_executor=executor), db)

        text = "".join(await collect(orchestrator.stream_turn(make_turn("yes"))))

        assert executor.calls == []
        assert "Google Calendar" in text
        assert "Apps page" in text
        assert await assistant_rows(db) == [text]

    async def test_failed_refresh_asks_to_reconnect(self, db, credentials, permissions, refresher):
        await connect(permissions, "calendar", expires_in_seconds=30)
        refresher.error = RuntimeError("invalid_grant")
        executor = RecordingExecutor()
        gateway = FakeGateway(decision=confirmed("searchEvents", query="standup"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(read_executor=executor), db)

        text = "".join(await collect(orchestrator.stream_turn(make_turn("yes"))))

        assert executor.calls == []
        assert text.rstrip().endswith("to continue.")
        assert "reconnect" in text
        permission = await permissions.get(USER_ID, "calendar")
        assert permission.is_connected is False

    async def test_missing_parameters_reported_without_executing(self, db, credentials, permissions):
        await connect(permissions, "calendar")
        executor = RecordingExecutor()
        gateway = FakeGateway(decision=confirmed("searchEvents"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(read_executor=executor), db)

        text = "".join(await collect(orchestrator.stream_turn(make_turn("yes"))))

        assert executor.calls == []
        assert "missing" in text
        assert "query" in text

    async def test_unknown_action_is_reported(self, db, credentials):
        gateway = FakeGateway(decision=confirmed("launchRocket"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(), db)

        text = "".join(await collect(orchestrator.stream_turn(make_turn("yes"))))

        assert "I don't know how to perform that action yet." in text
        assert await assistant_rows(db) == [text]

    async def test_side_effecting_failure_is_not_retried(self, db, credentials, permissions):
        await connect(permissions, "gmail")
        executor = RecordingExecutor(errors=[ActionExecutionError("Failed to send email: backend error", 503)])
        gateway = FakeGateway(decision=confirmed("sendEmail", query="hi bob"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(write_executor=executor), db)

        chunks = await collect(orchestrator.stream_turn(make_turn("yes")))

        assert len(executor.calls) == 1
        assert chunks[-1].startswith("\n\n**")
        assert gateway.stream_calls == []
        assert await assistant_rows(db) == ["".join(chunks)]

    async def test_read_action_retried_once_on_retryable_failure(self, db, credentials, permissions):
        await connect(permissions, "calendar")
        executor = RecordingExecutor(errors=[TimeoutError("request timed out")])
        gateway = FakeGateway(decision=confirmed("searchEvents", query="standup"), chunks=["Done."])
        orchestrator = make_orchestrator(gateway, credentials, make_registry(read_executor=executor), db)

        chunks = await collect(orchestrator.stream_turn(make_turn("yes")))

        assert len(executor.calls) == 2
        assert chunks[-1] == "Done."


class TestErrorsAndTranscript:

    async def test_classification_failure_yields_fixed_message(self, db, credentials):
        gateway = FakeGateway(classify_error=ClassificationError("no structured output"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(), db)

        chunks = await collect(orchestrator.stream_turn(make_turn()))

        assert chunks == [CLASSIFICATION_FAILED_MESSAGE]
        assert gateway.stream_calls == []
        assert await assistant_rows(db) == [CLASSIFICATION_FAILED_MESSAGE]

    async def test_quota_failure_during_classification_adds_remediation(self, db, credentials):
        gateway = FakeGateway(classify_error=RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(), db)

        text = "".join(await collect(orchestrator.stream_turn(make_turn())))

        assert text.startswith(CLASSIFICATION_FAILED_MESSAGE)
        assert "quota" in text

    async def test_mid_stream_failure_appends_error_after_partial_text(self, db, credentials):
        gateway = FakeGateway(chunks=["Hello", " never sent"], stream_error=ConnectionError("connection reset"))
        orchestrator = make_orchestrator(gateway, credentials, make_registry(), db)

        chunks = await collect(orchestrator.stream_turn(make_turn()))

        assert chunks[0] == "Hello"
        assert chunks[1].startswith("\n\n**")
        assert await assistant_rows(db) == ["".join(chunks)]

    async def test_client_disconnect_persists_partial_transcript(self, db, credentials):
        gateway = FakeGateway(chunks=["Hello", " there", " friend"])
        orchestrator = make_orchestrator(gateway, credentials, make_registry(), db)

        stream = orchestrator.stream_turn(make_turn())
        first = await stream.__anext__()
        await stream.aclose()

        assert first == "Hello"
        assert await assistant_rows(db) == ["Hello"]


class TestEmailScenario:
    """Confirm on one turn, execute on the next, against the real sendEmail parameters"""

    @staticmethod
    def email_registry(executor):
        spec = build_default_registry().get("sendEmail")
        return ActionRegistry([replace(spec, executor=executor)])

    async def test_confirm_then_send(self, db, credentials, permissions):
        await connect(permissions, "gmail")
        executor = RecordingExecutor(result="Email sent to a@example.com (message id m-1)")
        parameters = {"to": "a@example.com", "body": "hi"}
        request = "send an email to a@example.com saying hi"

        first = FakeGateway(
            decision=RoutingDecision(requires_action=True, action_name="sendEmail", parameters=parameters),
            chunks=["Do you want me to email a@example.com?"],
        )
        orchestrator = make_orchestrator(first, credentials, self.email_registry(executor), db)
        await collect(orchestrator.stream_turn(make_turn(request)))

        assert executor.calls == []
        assert await assistant_rows(db) == ["Do you want me to email a@example.com?"]

        second = FakeGateway(decision=confirmed("sendEmail", **parameters), chunks=["Done, the email is on its way."])
        orchestrator = make_orchestrator(second, credentials, self.email_registry(executor), db)
        history = [
            {"role": "user", "content": request},
            {"role": "assistant", "content": "Do you want me to email a@example.com?"},
        ]
        chunks = await collect(orchestrator.stream_turn(make_turn("yes do it", history=history)))

        assert len(executor.calls) == 1
        params, _ = executor.calls[0]
        assert params.to == "a@example.com"
        assert chunks[-1] == "Done, the email is on its way."

        rows = await assistant_rows(db)
        assert len(rows) == 2
        assert rows[1] == "".join(chunks)


class TestModelKey:

    async def test_missing_api_key_asks_for_key(self, db, credentials):
        orchestrator = ChatOrchestrator(
            OrchestratorContext(
                gateway_factory=ModelGateway.for_request,
                credentials=credentials,
                registry=make_registry(),
                conversation_db=db,
                delay=no_delay,
                clock=lambda: NOW,
            )
        )
        turn = replace(make_turn(), model="gemini-2.5-flash", api_key=None)

        text = "".join(await collect(orchestrator.stream_turn(turn)))

        assert "Gemini API key" in text
        assert "requires action on your part" in text
        assert "may resolve itself" not in text
        assert await assistant_rows(db) == [text]
