"""Tests for ConversationOrchestrator."""

import asyncio

import httpx
import pytest

from hookchat.db.database_models.conversation import (
    AgentDO,
    MessageDO,
    STATUS_PENDING,
    STATUS_PROCESSED,
    STATUS_ERROR,
)
from hookchat.errors import (
    ValidationError,
    NotFoundError,
    StorageError,
    AttachmentError,
    AttachmentRejectedError,
    InvalidTransitionError,
    DispatchTimeout,
    DispatchNonSuccess,
    DispatchTransportError,
)
from hookchat.services import ConversationOrchestrator, AttachmentStorage
from hookchat.services.orchestrator import DISPATCH_ERROR_PREFIX
from hookchat.services.poller import OUTCOME_COMPLETED, OUTCOME_TIMED_OUT

from fakes import FakeWebhook, make_dispatcher, make_settings, WEBHOOK_URL, BASE_URL

QUESTION = "What were last week's sessions?"


@pytest.fixture
async def build(repo, tmp_path):
    """Build an orchestrator around a given fake webhook."""
    dispatchers = []

    def _build(webhook, **settings_overrides):
        settings = make_settings(tmp_path, **settings_overrides)
        dispatcher = make_dispatcher(webhook, timeout=settings.dispatch_timeout, base_url=settings.base_url)
        dispatchers.append(dispatcher)
        return ConversationOrchestrator(
            repo, dispatcher, settings, storage=AttachmentStorage(settings.attachments_dir)
        )

    yield _build
    for d in dispatchers:
        await d.close()


def _roles(conversation):
    return [m.role for m in conversation.messages]


class TestConversationOrchestrator:
    """Tests for ConversationOrchestrator."""

    class TestSendMessage:
        """SUT: ConversationOrchestrator.send_message"""

        async def test_end_to_end_success(self, repo, build):
            webhook = FakeWebhook(json_body={"response": "12,345 sessions"})
            orchestrator = build(webhook)

            result = await orchestrator.send_message("u1", None, QUESTION)

            assert result.success is True
            assert result.assistant_text == "12,345 sessions"
            stored = repo.get("u1", result.conversation.id)
            assert [(m.role, m.content) for m in stored.messages] == [
                ("user", QUESTION),
                ("assistant", "12,345 sessions"),
            ]

        async def test_payload(self, orchestrator, webhook):
            result = await orchestrator.send_message("u1", "c1", "hello")

            assert len(webhook.payloads) == 1
            payload = webhook.payloads[0]
            assert payload["message"] == "hello"
            assert payload["conversationId"] == "c1"
            assert payload["userId"] == "u1"
            assert payload["history"] == [{"role": "user", "content": "hello"}]
            assert payload["files"] == []
            assert "accountId" not in payload
            assert str(webhook.requests[0].url) == WEBHOOK_URL
            assert result.conversation.id == "c1"

        async def test_history_bounded(self, build):
            webhook = FakeWebhook(json_body={"output": "ok"})
            orchestrator = build(webhook, history_limit=3)

            for text in ("one", "two", "three"):
                await orchestrator.send_message("u1", "c1", text)

            history = webhook.payloads[-1]["history"]
            assert [h["content"] for h in history] == ["two", "ok", "three"]

        async def test_account_id_forwarded(self, orchestrator, webhook):
            await orchestrator.send_message("u1", "c1", "hello", account_id="acct-42")
            assert webhook.payloads[0]["accountId"] == "acct-42"

        async def test_agent_account_hint_forwarded(self, orchestrator, webhook):
            await orchestrator.create_conversation("u1", "c1", agent=AgentDO(webhook_url=WEBHOOK_URL, account_hint="acct-7"))
            await orchestrator.send_message("u1", "c1", "hello")
            assert webhook.payloads[0]["accountId"] == "acct-7"

        async def test_override_url_wins(self, orchestrator, webhook):
            await orchestrator.create_conversation("u1", "c1", agent=AgentDO(webhook_url="https://agent.example.com/hook"))
            await orchestrator.send_message("u1", "c1", "hello", webhook_url="https://override.example.com/hook")
            assert str(webhook.requests[0].url) == "https://override.example.com/hook"

        async def test_agent_url_before_default(self, orchestrator, webhook):
            await orchestrator.create_conversation("u1", "c1", agent=AgentDO(webhook_url="/internal/bigquery"))
            await orchestrator.send_message("u1", "c1", "hello")
            assert str(webhook.requests[0].url) == f"{BASE_URL}/internal/bigquery"

        async def test_no_url_rejected_before_persistence(self, repo, build):
            webhook = FakeWebhook(json_body={"output": "ok"})
            orchestrator = build(webhook, default_webhook_url=None)

            with pytest.raises(ValidationError):
                await orchestrator.send_message("u1", "c1", "hello")

            assert repo.get("u1", "c1") is None
            assert webhook.requests == []

        @pytest.mark.parametrize("text", ["", "   ", None])
        async def test_empty_text_rejected(self, orchestrator, repo, webhook, text):
            with pytest.raises(ValidationError):
                await orchestrator.send_message("u1", "c1", text)
            assert repo.get("u1", "c1") is None
            assert webhook.requests == []

        async def test_empty_owner_rejected(self, orchestrator):
            with pytest.raises(ValidationError):
                await orchestrator.send_message("", "c1", "hello")

        async def test_timeout_recorded(self, repo, build):
            webhook = FakeWebhook(json_body={"output": "late"}, delay=5)
            orchestrator = build(webhook, dispatch_timeout=0.05)

            result = await orchestrator.send_message("u1", "c1", QUESTION)

            assert result.success is False
            assert isinstance(result.error, DispatchTimeout)
            stored = repo.get("u1", "c1")
            assert _roles(stored) == ["user", "assistant"]
            assert stored.messages[0].content == QUESTION
            assert stored.messages[1].content.startswith(DISPATCH_ERROR_PREFIX)
            assert "did not respond" in stored.messages[1].content
            assert result.assistant_text == stored.messages[1].content

        @pytest.mark.parametrize("webhook_kwargs, error_type", [
            (dict(status_code=500, text="boom"), DispatchNonSuccess),
            (dict(exc=httpx.ConnectError("refused")), DispatchTransportError),
        ])
        async def test_failure_recorded(self, repo, build, webhook_kwargs, error_type):
            orchestrator = build(FakeWebhook(**webhook_kwargs))

            result = await orchestrator.send_message("u1", "c1", "hello")

            assert isinstance(result.error, error_type)
            stored = repo.get("u1", "c1")
            assert _roles(stored) == ["user", "assistant"]
            assert stored.messages[1].content == f"{DISPATCH_ERROR_PREFIX} {result.error.message}"

        async def test_one_user_message_per_send(self, repo, build):
            orchestrator = build(FakeWebhook(status_code=502, text="bad gateway"))
            await orchestrator.send_message("u1", "c1", "first")
            await orchestrator.send_message("u1", "c1", "second")

            stored = repo.get("u1", "c1")
            assert _roles(stored) == ["user", "assistant", "user", "assistant"]
            assert [m.content for m in stored.messages if m.role == "user"] == ["first", "second"]

        async def test_plain_text_reply(self, build):
            orchestrator = build(FakeWebhook(text="Done, see dashboard."))
            result = await orchestrator.send_message("u1", "c1", "hello")
            assert result.assistant_text == "Done, see dashboard."

        async def test_empty_reply(self, build):
            orchestrator = build(FakeWebhook(text=""))
            result = await orchestrator.send_message("u1", "c1", "hello")
            assert result.success is True
            assert result.assistant_text == "no content received"

        async def test_concurrent_sends_serialized(self, repo, build):
            webhook = FakeWebhook(json_body={"output": "ok"}, delay=0.02)
            orchestrator = build(webhook)
            await orchestrator.create_conversation("u1", "c1")

            await asyncio.gather(
                orchestrator.send_message("u1", "c1", "first"),
                orchestrator.send_message("u1", "c1", "second"),
            )

            stored = repo.get("u1", "c1")
            assert _roles(stored) == ["user", "assistant", "user", "assistant"]
            timestamps = [m.timestamp for m in stored.messages]
            assert timestamps == sorted(timestamps)

        async def test_update_during_send_kept(self, repo, build):
            webhook = FakeWebhook(json_body={"output": "ok"}, delay=0.2)
            orchestrator = build(webhook)
            await orchestrator.create_conversation("u1", "c1")

            send = asyncio.create_task(orchestrator.send_message("u1", "c1", QUESTION))
            while not webhook.requests:
                await asyncio.sleep(0.01)
            await orchestrator.create_conversation("u1", "c1", title="Quarterly report", is_archived=True)

            assert send.done()
            await send
            stored = repo.get("u1", "c1")
            assert stored.title == "Quarterly report"
            assert stored.is_archived is True
            assert _roles(stored) == ["user", "assistant"]

        async def test_marks_pending_processed(self, orchestrator, webhook, repo):
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "report.csv", "text/csv", b"a,b\n1,2\n")

            await orchestrator.send_message("u1", "c1", "summarize the file")

            files = webhook.payloads[0]["files"]
            assert [f["fileName"] for f in files] == ["report.csv"]
            stored = repo.get("u1", "c1")
            assert stored.get_attachment(att.id).status == STATUS_PROCESSED

        async def test_failed_send_keeps_pending(self, repo, build):
            orchestrator = build(FakeWebhook(status_code=500))
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "report.csv", "text/csv", b"x")

            await orchestrator.send_message("u1", "c1", "hello")

            assert repo.get("u1", "c1").get_attachment(att.id).status == STATUS_PENDING

    class TestAwaitReply:
        """SUT: ConversationOrchestrator.await_reply"""

        async def test_completed(self, orchestrator):
            await orchestrator.send_message("u1", "c1", QUESTION)
            outcome = await orchestrator.await_reply("u1", "c1", QUESTION)
            assert outcome.status == OUTCOME_COMPLETED
            assert outcome.attempts == 1

        async def test_timed_out_without_mutation(self, orchestrator, repo):
            await orchestrator.create_conversation("u1", "c1", messages=[MessageDO(role="user", content=QUESTION)])
            before = repo.get("u1", "c1")

            outcome = await orchestrator.await_reply("u1", "c1", QUESTION)

            assert outcome.status == OUTCOME_TIMED_OUT
            assert outcome.attempts == orchestrator.settings.poll_max_attempts
            after = repo.get("u1", "c1")
            assert after.messages == before.messages
            assert after.updated_at == before.updated_at

        async def test_not_found(self, orchestrator):
            with pytest.raises(NotFoundError):
                await orchestrator.await_reply("u1", "missing", QUESTION)

    class TestCreateConversation:
        """SUT: ConversationOrchestrator.create_conversation"""

        async def test_defaults(self, orchestrator):
            conv = await orchestrator.create_conversation("u1")
            assert conv.id
            assert conv.title == "New Conversation"
            assert conv.messages == []
            assert conv.is_archived is False

        async def test_upsert_updates(self, orchestrator, repo):
            await orchestrator.create_conversation("u1", "c1", title="First")
            await orchestrator.create_conversation("u1", "c1", title="Second", is_archived=True)

            stored = repo.get("u1", "c1")
            assert stored.title == "Second"
            assert stored.is_archived is True
            assert len(orchestrator.list_conversations("u1")) == 1

    class TestOwnerScoping:
        """SUT: ConversationOrchestrator owner isolation"""

        async def test_other_owner_cannot_read(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            with pytest.raises(NotFoundError):
                orchestrator.get_conversation("u2", "c1")

        async def test_same_id_different_owners(self, orchestrator, repo):
            await orchestrator.send_message("u1", "c1", "from u1")
            await orchestrator.send_message("u2", "c1", "from u2")

            assert repo.get("u1", "c1").messages[0].content == "from u1"
            assert repo.get("u2", "c1").messages[0].content == "from u2"

        async def test_other_owner_cannot_delete(self, orchestrator, repo):
            await orchestrator.create_conversation("u1", "c1")
            with pytest.raises(NotFoundError):
                await orchestrator.delete("u2", "c1")
            assert repo.get("u1", "c1") is not None

    class TestListConversations:
        """SUT: ConversationOrchestrator.list_conversations"""

        async def test_archived_filter(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            await orchestrator.create_conversation("u1", "c2", is_archived=True)

            assert {c.id for c in orchestrator.list_conversations("u1")} == {"c1", "c2"}
            assert [c.id for c in orchestrator.list_conversations("u1", include_archived=False)] == ["c1"]

        async def test_stable_ordering(self, orchestrator):
            await orchestrator.send_message("u1", "c1", "a")
            await orchestrator.send_message("u1", "c1", "b")

            first = orchestrator.get_conversation("u1", "c1")
            second = orchestrator.get_conversation("u1", "c1")
            assert [m.to_dict() for m in first.messages] == [m.to_dict() for m in second.messages]

    class TestRename:
        """SUT: ConversationOrchestrator.rename"""

        async def test_rename(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            conv = await orchestrator.rename("u1", "c1", "  Weekly report  ")
            assert conv.title == "Weekly report"

        async def test_empty_title(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            with pytest.raises(ValidationError):
                await orchestrator.rename("u1", "c1", "  ")

        async def test_too_long(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            with pytest.raises(ValidationError):
                await orchestrator.rename("u1", "c1", "x" * 201)

        async def test_missing(self, orchestrator):
            with pytest.raises(NotFoundError):
                await orchestrator.rename("u1", "missing", "title")

    class TestSetArchived:
        """SUT: ConversationOrchestrator.set_archived"""

        async def test_toggle(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            assert (await orchestrator.set_archived("u1", "c1", True)).is_archived is True
            assert (await orchestrator.set_archived("u1", "c1", False)).is_archived is False

    class TestDelete:
        """SUT: ConversationOrchestrator.delete"""

        async def test_removes_record_and_files(self, orchestrator, repo):
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"hi")

            await orchestrator.delete("u1", "c1")

            assert repo.get("u1", "c1") is None
            assert not orchestrator.storage._conversation_dir("u1", "c1").exists()
            assert att.stored_path

        async def test_storage_failure(self, orchestrator, repo, monkeypatch):
            await orchestrator.create_conversation("u1", "c1")
            monkeypatch.setattr(repo, "delete", lambda owner, cid: False)
            with pytest.raises(StorageError):
                await orchestrator.delete("u1", "c1")

    class TestReset:
        """SUT: ConversationOrchestrator.reset"""

        async def test_clears_messages_and_attachments(self, orchestrator):
            await orchestrator.send_message("u1", "c1", "hello")
            await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"hi")

            conv = await orchestrator.reset("u1", "c1")

            assert conv.messages == []
            assert conv.attachments == []
            assert orchestrator.get_conversation("u1", "c1").messages == []

    class TestAttachments:
        """SUT: ConversationOrchestrator attachment operations"""

        async def test_upload_stores_bytes(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"hello")

            assert att.status == STATUS_PENDING
            assert att.size_bytes == 5
            with open(att.stored_path, "rb") as f:
                assert f.read() == b"hello"

        async def test_second_pending_rejected(self, orchestrator, repo):
            await orchestrator.create_conversation("u1", "c1")
            await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"a")
            with pytest.raises(AttachmentRejectedError):
                await orchestrator.upload_attachment("u1", "c1", "b.txt", "text/plain", b"b")
            assert len(repo.get("u1", "c1").attachments) == 1

        async def test_eleventh_rejected(self, orchestrator, webhook):
            await orchestrator.create_conversation("u1", "c1")
            for i in range(10):
                await orchestrator.upload_attachment("u1", "c1", f"f{i}.txt", "text/plain", b"x")
                await orchestrator.send_message("u1", "c1", f"message {i}")

            with pytest.raises(AttachmentRejectedError):
                await orchestrator.upload_attachment("u1", "c1", "f10.txt", "text/plain", b"x")

        async def test_upload_to_missing_conversation(self, orchestrator):
            with pytest.raises(NotFoundError):
                await orchestrator.upload_attachment("u1", "missing", "a.txt", "text/plain", b"a")

        async def test_remove(self, orchestrator, repo):
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"a")

            conv = await orchestrator.remove_attachment("u1", "c1", att.id)

            assert conv.attachments == []
            assert repo.get("u1", "c1").attachments == []
            with pytest.raises(FileNotFoundError):
                open(att.stored_path, "rb")

        async def test_remove_unknown(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            with pytest.raises(NotFoundError):
                await orchestrator.remove_attachment("u1", "c1", "nope")

        async def test_remove_failure_marks_error(self, orchestrator, repo, monkeypatch):
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"a")

            async def failing_remove(path):
                raise PermissionError("read-only")

            monkeypatch.setattr(orchestrator.storage, "remove", failing_remove)

            with pytest.raises(AttachmentError):
                await orchestrator.remove_attachment("u1", "c1", att.id)

            assert repo.get("u1", "c1").get_attachment(att.id).status == STATUS_ERROR

        async def test_error_attachment_not_dispatched(self, orchestrator, webhook):
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"a")
            await orchestrator.mark_attachment_error("u1", "c1", att.id)

            await orchestrator.send_message("u1", "c1", "hello")

            assert webhook.payloads[0]["files"] == []

        async def test_mark_error_twice(self, orchestrator):
            await orchestrator.create_conversation("u1", "c1")
            att = await orchestrator.upload_attachment("u1", "c1", "a.txt", "text/plain", b"a")
            await orchestrator.mark_attachment_error("u1", "c1", att.id)
            with pytest.raises(InvalidTransitionError):
                await orchestrator.mark_attachment_error("u1", "c1", att.id)
