"""Headless editor session: one document and everything attached to it."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..ai.types import ActionKind, TransformResult
from ..chat.conversation_log import ConversationLog
from ..events import DocumentModified, DocumentSaved, EventBus, HistoryChanged, NoticePosted
from ..services.article_store import ArticleValidationError
from ..services.assets import AssetUploadError, image_markdown
from ..services.scheduling import DebouncedTask, Scheduler
from ..workflow.models import PendingProposal
from ..workflow.patch_workflow import PatchWorkflow
from .diffing import DiffSpan
from .document_model import ArticleMetadata, DocumentState
from .history import HistoryManager
from .selection import SelectionProvider, SelectionState, SelectionTracker

if TYPE_CHECKING:  # pragma: no cover
    from ..ai.gateway import TransformGateway
    from ..services.article_store import ArticleStore
    from ..services.assets import AssetUploader
    from ..services.conversation_store import ConversationStore
    from ..services.draft_cache import DraftCache
    from ..services.settings import Settings

__all__ = ["EditorSession"]

LOGGER = logging.getLogger(__name__)


class EditorSession:
    """Single owner of the document, its history, selection and review state.

    Manual edits never snapshot history; only accepted proposals and image
    insertions do. Autosave and conversation persistence run on separate
    debounced lanes, so a failure in one never blocks the other.

    The debounced lanes default to :class:`AsyncioScheduler`, so mutating
    calls (``edit``, ``set_title``, ``undo``, ``redo``, ``accept``) must run
    inside an event loop unless a ``scheduler`` is supplied.
    """

    def __init__(
        self,
        document: DocumentState,
        *,
        gateway: TransformGateway | None,
        article_store: ArticleStore | None = None,
        conversation_store: ConversationStore | None = None,
        draft_cache: DraftCache | None = None,
        uploader: AssetUploader | None = None,
        selection_provider: SelectionProvider | None = None,
        settings: Settings | None = None,
        scheduler: Scheduler | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._document = document
        self._bus = event_bus or EventBus()
        self._article_store = article_store
        self._draft_cache = draft_cache
        self._uploader = uploader
        self._is_new = article_store is None or not article_store.exists(document.document_id)

        max_history = settings.max_history if settings is not None else 50
        selection_debounce = settings.selection_debounce_seconds if settings is not None else 0.1
        conversation_debounce = settings.conversation_debounce_seconds if settings is not None else 1.0
        autosave_interval = settings.autosave_interval if settings is not None else 2.0

        self._history = HistoryManager(max_history)
        self._conversation = ConversationLog(
            conversation_store,
            debounce_seconds=conversation_debounce,
            scheduler=scheduler,
            event_bus=self._bus,
        )
        self._selection = SelectionTracker(
            selection_provider,
            lambda: self._document.content,
            debounce_seconds=selection_debounce,
            scheduler=scheduler,
            event_bus=self._bus,
        )
        self._workflow = PatchWorkflow(
            gateway,
            document,
            self._history,
            self._conversation,
            event_bus=self._bus,
        )
        self._autosave = DebouncedTask(
            self._write_draft,
            autosave_interval,
            scheduler=scheduler,
            name="draft-autosave",
        )

    @classmethod
    def open(
        cls,
        document_id: str,
        *,
        gateway: TransformGateway | None,
        article_store: ArticleStore | None = None,
        conversation_store: ConversationStore | None = None,
        draft_cache: DraftCache | None = None,
        uploader: AssetUploader | None = None,
        selection_provider: SelectionProvider | None = None,
        settings: Settings | None = None,
        scheduler: Scheduler | None = None,
        event_bus: EventBus | None = None,
        title: str | None = None,
    ) -> EditorSession:
        """Load ``document_id`` (or start an empty article) and its conversation."""

        bus = event_bus or EventBus()
        document: DocumentState | None = None
        load_error: str | None = None
        if article_store is not None:
            try:
                document = article_store.load(document_id)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Failed to load article %s: %s", document_id, exc)
                load_error = f"Could not load the saved article: {exc}"
        if document is None:
            document = DocumentState(document_id=document_id, metadata=ArticleMetadata())
            if title:
                document.metadata.retitle(title, keep_slug=False)

        session = cls(
            document,
            gateway=gateway,
            article_store=article_store,
            conversation_store=conversation_store,
            draft_cache=draft_cache,
            uploader=uploader,
            selection_provider=selection_provider,
            settings=settings,
            scheduler=scheduler,
            event_bus=bus,
        )
        if load_error:
            session._notify(load_error, level="error")
        session._restore_draft()
        session._conversation.load(document_id)
        LOGGER.debug(
            "Session opened: document_id=%s, new=%s, chars=%d",
            document_id,
            session._is_new,
            len(document.content),
        )
        return session

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def document(self) -> DocumentState:
        return self._document

    @property
    def content(self) -> str:
        return self._document.content

    @property
    def metadata(self) -> ArticleMetadata:
        return self._document.metadata

    @property
    def history(self) -> HistoryManager:
        return self._history

    @property
    def conversation(self) -> ConversationLog:
        return self._conversation

    @property
    def selection(self) -> SelectionTracker:
        return self._selection

    @property
    def workflow(self) -> PatchWorkflow:
        return self._workflow

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def is_new(self) -> bool:
        return self._is_new

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def edit(self, text: str) -> None:
        """Apply a manual edit; not recorded in undo history."""

        if text == self._document.content:
            return
        self._set_content(text, source="edit")

    def set_title(self, title: str) -> None:
        self._document.metadata.retitle(title, keep_slug=not self._is_new)
        self._document.dirty = True
        self._autosave.schedule()

    def undo(self) -> bool:
        snapshot = self._history.undo(self._document.content)
        if snapshot is None:
            return False
        self._set_content(snapshot, source="undo")
        self._publish_history()
        return True

    def redo(self) -> bool:
        snapshot = self._history.redo(self._document.content)
        if snapshot is None:
            return False
        self._set_content(snapshot, source="redo")
        self._publish_history()
        return True

    async def insert_image(self, data: bytes, filename: str) -> bool:
        """Upload an image and splice its markdown token at the cursor."""

        if self._uploader is None:
            self._notify("Image uploads are not configured.", level="warning")
            return False
        try:
            url = await self._uploader.upload(data, filename)
        except AssetUploadError as exc:
            LOGGER.warning("Image upload failed for %s: %s", filename, exc)
            self._notify(str(exc), level="error")
            return False

        content = self._document.content
        cursor = self._selection.cursor_offset
        offset = len(content) if cursor is None else max(0, min(cursor, len(content)))
        token = image_markdown(filename, url)
        self._history.push_undo(content)
        self._set_content(content[:offset] + token + content[offset:], source="image")
        self._selection.set_cursor(offset + len(token))
        self._publish_history()
        LOGGER.debug("Image inserted: %s at offset %d", filename, offset)
        return True

    # ------------------------------------------------------------------
    # AI workflow
    # ------------------------------------------------------------------

    async def run_action(self, action: ActionKind | str, *, custom_prompt: str | None = None) -> TransformResult | None:
        selection = self._current_selection()
        return await self._workflow.request_transform(action, selection, custom_prompt)

    async def send_chat(self, text: str) -> TransformResult | None:
        return await self._workflow.send_chat(text, self._current_selection())

    def edit_proposal(self, text: str) -> PendingProposal:
        return self._workflow.update_proposal(text)

    def preview_diff(self) -> list[DiffSpan]:
        return self._workflow.preview_diff()

    def has_diverged(self) -> bool:
        return self._workflow.has_diverged()

    def accept(self) -> PendingProposal:
        pending = self._workflow.accept()
        self._selection.clear()
        self._autosave.schedule()
        return pending

    def reject(self) -> PendingProposal:
        return self._workflow.reject()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *, publish: bool | None = None) -> bool:
        """Persist the article; failures are reported as notices."""

        if self._article_store is None:
            self._notify("No article store is configured.", level="error")
            return False
        try:
            self._article_store.save(self._document, publish=publish)
        except ArticleValidationError as exc:
            self._notify(str(exc), level="warning")
            return False
        except (OSError, ValueError, TypeError) as exc:
            LOGGER.warning("Failed to save article %s: %s", self._document.document_id, exc)
            self._notify(f"Could not save the article: {exc}", level="error")
            return False
        self._is_new = False
        self._autosave.cancel()
        if self._draft_cache is not None:
            try:
                self._draft_cache.pop_draft(self._document.document_id)
            except OSError as exc:
                LOGGER.warning("Failed to clear draft for %s: %s", self._document.document_id, exc)
        self._bus.publish(
            DocumentSaved(
                document_id=self._document.document_id,
                published=self._document.metadata.is_published,
            )
        )
        return True

    def clear_conversation(self, *, confirmed: bool = False) -> None:
        self._conversation.clear(confirmed=confirmed)

    def close(self) -> None:
        """Flush pending lanes; call before the process exits."""

        self._selection.flush()
        self._autosave.flush()
        self._conversation.flush()
        LOGGER.debug("Session closed: document_id=%s", self._document.document_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _current_selection(self) -> SelectionState | None:
        state = self._selection.flush()
        return state if state.has_text else None

    def _set_content(self, text: str, *, source: str) -> None:
        self._document.update_content(text)
        self._bus.publish(
            DocumentModified(
                document_id=self._document.document_id,
                version_id=self._document.version_id,
                source=source,
            )
        )
        self._autosave.schedule()

    def _publish_history(self) -> None:
        self._bus.publish(HistoryChanged(undo_depth=self._history.undo_depth, redo_depth=self._history.redo_depth))

    def _restore_draft(self) -> None:
        if self._draft_cache is None:
            return
        try:
            draft = self._draft_cache.get_draft(self._document.document_id)
        except OSError as exc:
            LOGGER.warning("Failed to read drafts: %s", exc)
            return
        if draft is None or draft.content == self._document.content:
            return
        self._document.update_content(draft.content)
        if draft.title and not self._document.metadata.title:
            self._document.metadata.retitle(draft.title, keep_slug=not self._is_new)
        LOGGER.info("Restored unsaved draft for %s", self._document.document_id)
        self._notify("Restored unsaved changes from the last session.", level="info")

    def _write_draft(self) -> None:
        if self._draft_cache is None or not self._document.dirty:
            return
        try:
            self._draft_cache.store_draft(
                self._document.document_id,
                self._document.content,
                title=self._document.metadata.title,
            )
        except OSError as exc:
            LOGGER.warning("Autosave failed for %s: %s", self._document.document_id, exc)
            self._notify(f"Autosave failed: {exc}", level="error")

    def _notify(self, message: str, *, level: str) -> None:
        self._bus.publish(NoticePosted(message=message, level=level))

    def describe(self) -> dict[str, Any]:
        return {
            "document_id": self._document.document_id,
            "title": self._document.metadata.title,
            "slug": self._document.metadata.slug,
            "version": self._document.version_id,
            "dirty": self._document.dirty,
            "undo_depth": self._history.undo_depth,
            "redo_depth": self._history.redo_depth,
            "messages": len(self._conversation),
            "workflow": self._workflow.state.value,
        }
