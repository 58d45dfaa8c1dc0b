"""
Navigation Orchestrator - turns model output into executed navigation steps.

Per turn:

    idle -> dispatching -> (per directive) direct | fabrication check | deep read
         -> (deep read only) awaiting model follow-up -> dispatching ... -> idle

Directives start in emission order. Independent ones run concurrently;
directives that read state written by earlier ones (OPEN_RESULT, tab
operations, CLICK_IN_TAB) wait until everything emitted before them has
finished. Collaborator failures are caught per directive and become a short
note on the message; sibling directives carry on. Deep reads re-prompt the
model with the fetched page and dispatch its answer recursively, bounded by
``max_deep_read_depth`` and a visited-URL guard. Cancelling the turn's token
stops everything that has not started yet.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol
from urllib.parse import urlparse

import httpx

from libs.core.config import NavigationSettings, get_settings, load_site_registry
from libs.core.exceptions import DeepReadLimitError, LLMError, TabNotFoundError, ToolError
from libs.core.logging_config import log_directive, log_turn_end, log_turn_start
from libs.core.models import (
    Directive,
    DirectiveKind,
    FetchedPage,
    Message,
    MessageImage,
    MessageRole,
    VideoEmbed,
    WebSource,
)
from libs.llm.prompts import (
    build_deep_read_prompt,
    build_search_results_context,
    build_summary_prompt,
    build_system_prompt,
    build_memory_context,
)
from libs.navigation.directive_parser import parse_response
from libs.navigation.link_classifier import LinkClassifier, get_link_classifier
from libs.navigation.link_ranker import LinkLocator, LinkRanker, is_ordinal_reference, parse_ordinal
from libs.navigation.refusal import RefusalBypass, SynthesizedAction, is_refusal
from libs.navigation.search_pages import SearchPageDetector
from libs.navigation.session import CancellationToken, ConversationSession, DeepReadChain, TurnContext
from libs.navigation.tab_registry import favicon_for, find_tab
from libs.search.cascade import SearchOutcome
from libs.search.logger import SearchLogEntry

logger = logging.getLogger(__name__)

YOUTUBE_ID_RE = re.compile(
    r"(?:youtube\.com/watch\?(?:[^#]*&)?v=|youtu\.be/|youtube\.com/shorts/|youtube\.com/embed/)"
    r"([A-Za-z0-9_-]{11})"
)

# Directives that read state written by directives emitted before them
BARRIER_KINDS = frozenset({
    DirectiveKind.OPEN_RESULT,
    DirectiveKind.SWITCH_TAB,
    DirectiveKind.CLOSE_TAB,
    DirectiveKind.LIST_TABS,
    DirectiveKind.CLICK_IN_TAB,
})

DEEP_READ_KINDS = frozenset({DirectiveKind.READ_URL, DirectiveKind.CLICK_IN_TAB})

MAX_SCRAPED_IMAGES = 30
MAX_SEARCH_SOURCES = 10


# =============================================================================
# Collaborators
# =============================================================================

class ModelCollaborator(Protocol):
    def stream(
        self,
        messages: list[dict[str, str]],
        system_prompt: str = "",
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]: ...

    async def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str = "",
        token: Optional[CancellationToken] = None,
    ) -> str: ...


class PageTools(Protocol):
    async def fetch_page(self, url: str) -> FetchedPage: ...
    async def screenshot(self, url: str): ...
    async def open_app(self, app: str): ...


class SearchBackend(Protocol):
    async def execute(self, query: str) -> SearchOutcome: ...


class FactStore(Protocol):
    def upsert_many(self, user_id: str, facts: list) -> list: ...
    def facts(self, user_id: str) -> list: ...


# =============================================================================
# Results
# =============================================================================

class Route(str, Enum):
    DIRECT = "direct"
    NEEDS_FABRICATION_CHECK = "needs_fabrication_check"
    NEEDS_DEEP_READ = "needs_deep_read"


class SessionState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING_MODEL_FOLLOW_UP = "awaiting_model_follow_up"


@dataclass
class DirectiveOutcome:
    directive: Directive
    route: Route = Route.DIRECT
    success: bool = True
    note: Optional[str] = None
    opened_url: Optional[str] = None
    rerouted_to: Optional[Directive] = None
    resolution_method: Optional[str] = None
    depth: int = 0


@dataclass
class TurnResult:
    conversation_id: str
    messages: list[Message] = field(default_factory=list)
    outcomes: list[DirectiveOutcome] = field(default_factory=list)
    search_logs: list[SearchLogEntry] = field(default_factory=list)
    cancelled: bool = False
    deep_read_depth: int = 0
    error: Optional[str] = None


@dataclass
class DispatchContext:
    """What every handler of one response needs."""

    session: ConversationSession
    message: Message
    turn: TurnContext
    chain: DeepReadChain
    result: TurnResult
    # url, title of the first page opened by this response (summary candidate)
    opened: list[tuple[str, Optional[str]]] = field(default_factory=list)


def youtube_embed_id(url: str) -> Optional[str]:
    match = YOUTUBE_ID_RE.search(url or "")
    return match.group(1) if match else None


def site_root(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme or 'https'}://{parsed.netloc}/"


def classify_route(directive: Directive, classifier: LinkClassifier) -> Route:
    if directive.kind in DEEP_READ_KINDS:
        return Route.NEEDS_DEEP_READ
    if directive.kind in (DirectiveKind.OPEN_URL, DirectiveKind.EMBED):
        if classifier.is_fabricated(directive.target):
            return Route.NEEDS_FABRICATION_CHECK
    return Route.DIRECT


# =============================================================================
# Orchestrator
# =============================================================================

class NavigationOrchestrator:
    """State machine tying the parser, classifier, ranker and tab registry together."""

    def __init__(
        self,
        model: ModelCollaborator,
        tools: PageTools,
        search: SearchBackend,
        memory: Optional[FactStore] = None,
        settings: Optional[NavigationSettings] = None,
        classifier: Optional[LinkClassifier] = None,
        refusal: Optional[RefusalBypass] = None,
        search_pages: Optional[SearchPageDetector] = None,
    ):
        self.model = model
        self.tools = tools
        self.search = search
        self.memory = memory
        self.settings = settings or get_settings().navigation
        self.classifier = classifier or get_link_classifier()
        self.ranker = LinkRanker(self.classifier, history_window=self.settings.history_window)

        if refusal is None or search_pages is None:
            registry = load_site_registry()
            refusal = refusal or RefusalBypass(registry)
            search_pages = search_pages or SearchPageDetector(registry)
        self.refusal = refusal
        self.search_pages = search_pages

        self._handlers: dict[DirectiveKind, Callable[[DispatchContext, Directive], Awaitable[DirectiveOutcome]]] = {
            DirectiveKind.OPEN_URL: self._handle_open_url,
            DirectiveKind.SEARCH: self._handle_search,
            DirectiveKind.IMAGE: self._handle_image,
            DirectiveKind.OPEN_RESULT: self._handle_open_result,
            DirectiveKind.OPEN_APP: self._handle_open_app,
            DirectiveKind.SCREENSHOT: self._handle_screenshot,
            DirectiveKind.EMBED: self._handle_embed,
            DirectiveKind.SCRAPE_IMAGES: self._handle_scrape_images,
            DirectiveKind.READ_URL: self._handle_read_url,
            DirectiveKind.CLOSE_TAB: self._handle_close_tab,
            DirectiveKind.SWITCH_TAB: self._handle_switch_tab,
            DirectiveKind.LIST_TABS: self._handle_list_tabs,
            DirectiveKind.CLICK_IN_TAB: self._handle_click_in_tab,
            DirectiveKind.OPEN_TAB: self._handle_open_tab,
        }

    # -------------------------------------------------------------------------
    # Turn entry points
    # -------------------------------------------------------------------------

    async def run_turn(self, session: ConversationSession, user_text: str) -> TurnResult:
        """Send the user's text to the model and execute whatever it asks for."""
        turn = TurnContext(user_request=user_text)
        session.current_turn = turn
        result = TurnResult(conversation_id=session.conversation_id)
        started = time.monotonic()
        log_turn_start(logger, session.conversation_id, user_text)

        session.add_message(MessageRole.USER, user_text)
        try:
            text = await self.model.complete(
                self._model_messages(session),
                self._system_prompt(session),
                turn.token,
            )
            if turn.cancelled:
                result.cancelled = True
                return result

            message = session.add_message(MessageRole.ASSISTANT)
            result.messages.append(message)
            await self.process_response(
                session,
                message,
                text,
                turn,
                DeepReadChain(original_user_request=user_text),
                result,
            )
        except LLMError as e:
            logger.warning(f"[Orchestrator] Model call failed: {e}")
            message = session.add_message(MessageRole.ASSISTANT)
            message.error = e.message
            result.messages.append(message)
            result.error = e.message
        finally:
            result.cancelled = result.cancelled or turn.cancelled
            session.state = SessionState.IDLE.value
            session.current_turn = None
            outcome = "cancelled" if result.cancelled else ("error" if result.error else "ok")
            log_turn_end(logger, session.conversation_id, outcome, (time.monotonic() - started) * 1000)

        return result

    def stop(self, session: ConversationSession, reason: str = "stopped by user") -> bool:
        """Cancel the session's in-flight turn. Returns False when nothing is running."""
        turn = session.current_turn
        if turn is None or turn.cancelled:
            return False
        turn.token.cancel(reason)
        return True

    async def process_response(
        self,
        session: ConversationSession,
        message: Message,
        text: str,
        turn: TurnContext,
        chain: DeepReadChain,
        result: TurnResult,
    ) -> list[DirectiveOutcome]:
        """Parse one model response into ``message`` and dispatch its directives."""
        parsed = parse_response(text, text_limit=self.settings.text_limit)
        message.content = parsed.clean_text
        message.status = parsed.status

        if parsed.memories and self.memory is not None:
            self.memory.upsert_many(session.user_id, parsed.memories)

        ctx = DispatchContext(session=session, message=message, turn=turn, chain=chain, result=result)

        if not parsed.directives and is_refusal(parsed.raw_text):
            action = self.refusal.synthesize(turn.user_request)
            if action is None:
                return []
            logger.info(f"[Orchestrator] Refusal detected, bypassing with {action.directive.to_tag()}")
            outcomes = [await self._run_synthesized(ctx, action)]
        else:
            outcomes = await self.dispatch(ctx, parsed.directives)

        if ctx.opened and self.settings.auto_summarize and not turn.cancelled:
            url, _ = ctx.opened[0]
            await self.scrape_and_summarize(session, url, turn, result)
        return outcomes

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def dispatch(self, ctx: DispatchContext, directives: list[Directive]) -> list[DirectiveOutcome]:
        """Start directives in emission order; barrier kinds wait for everything before them."""
        if not directives:
            return []

        ctx.session.state = SessionState.DISPATCHING.value
        tasks: list[asyncio.Task] = []
        for directive in directives:
            if ctx.turn.cancelled:
                logger.info(f"[Orchestrator] Cancelled before {directive.to_tag()}")
                break
            if directive.kind in BARRIER_KINDS and tasks:
                await asyncio.gather(*tasks)
                if ctx.turn.cancelled:
                    break
            tasks.append(asyncio.create_task(self._run_directive(ctx, directive)))

        outcomes = list(await asyncio.gather(*tasks)) if tasks else []
        ctx.result.outcomes.extend(outcomes)
        return outcomes

    async def _run_directive(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        route = classify_route(directive, self.classifier)
        conversation_id = ctx.session.conversation_id
        log_directive(logger, conversation_id, directive.kind.value, directive.value, route.value)
        try:
            outcome = await self._handlers[directive.kind](ctx, directive)
        except DeepReadLimitError as e:
            outcome = self._failure(ctx, directive, route, "I stopped following links here, that's as deep as I go in one go.")
            logger.info(f"[Orchestrator] {e.message}")
        except TabNotFoundError as e:
            outcome = self._failure(ctx, directive, route, f"I couldn't find a tab matching '{e.reference}'.")
        except (ToolError, LLMError) as e:
            outcome = self._failure(ctx, directive, route, self._failure_note(directive, e.message))
            logger.warning(f"[Orchestrator] {directive.kind.value} failed: {e.message}")
        except httpx.HTTPError as e:
            outcome = self._failure(ctx, directive, route, self._failure_note(directive, str(e)))
            logger.warning(f"[Orchestrator] {directive.kind.value} failed: {e}")

        outcome.depth = ctx.chain.depth
        log_directive(
            logger,
            conversation_id,
            directive.kind.value,
            directive.value,
            "ok" if outcome.success else "failed",
        )
        return outcome

    @staticmethod
    def _failure_note(directive: Directive, error: str) -> str:
        verbs = {
            DirectiveKind.SEARCH: "search for",
            DirectiveKind.OPEN_APP: "open",
            DirectiveKind.SCREENSHOT: "screenshot",
            DirectiveKind.SCRAPE_IMAGES: "grab images for",
            DirectiveKind.READ_URL: "read",
            DirectiveKind.CLICK_IN_TAB: "click",
        }
        verb = verbs.get(directive.kind, "open")
        return f"Couldn't {verb} {directive.target}: {error}"

    @staticmethod
    def _failure(ctx: DispatchContext, directive: Directive, route: Route, note: str) -> DirectiveOutcome:
        ctx.message.notes.append(note)
        return DirectiveOutcome(directive=directive, route=route, success=False, note=note)

    # -------------------------------------------------------------------------
    # Shared steps
    # -------------------------------------------------------------------------

    def _open_tab(
        self,
        ctx: DispatchContext,
        url: str,
        title: Optional[str] = None,
        summarize: bool = True,
    ) -> str:
        tab_id = ctx.session.tabs.open(url, title)
        if summarize and not youtube_embed_id(url) and not self.search_pages.search_query(url):
            ctx.opened.append((url, title))
        return tab_id

    async def _reroute_to_search(self, ctx: DispatchContext, directive: Directive, query: str) -> DirectiveOutcome:
        search = Directive(kind=DirectiveKind.SEARCH, value=query, emission_order=directive.emission_order)
        logger.info(f"[Orchestrator] {directive.target} is a search page, searching '{query}' instead")
        outcome = await self._handle_search(ctx, search)
        outcome.directive = directive
        outcome.rerouted_to = search
        return outcome

    async def _fetch(self, ctx: DispatchContext, url: str) -> FetchedPage:
        page = await self.tools.fetch_page(url)
        ctx.session.remember_page(page)
        return page

    async def _resolve_on_page(
        self,
        ctx: DispatchContext,
        page_url: str,
        locator: LinkLocator,
    ) -> tuple[str, Optional[str], Optional[str]]:
        """
        Fetch a page and pick one of its links. Returns (url, title, method);
        falls back to the page itself when nothing resolves or the fetch fails.
        """
        try:
            page = await self._fetch(ctx, page_url)
        except ToolError as e:
            logger.info(f"[Orchestrator] Could not fetch {page_url} for resolution: {e.message}")
            return page_url, None, None

        resolution = self.ranker.resolve(page, locator)
        if resolution.found:
            return resolution.link.url, resolution.link.anchor_text or None, resolution.method
        return page.url or page_url, page.display_title, None

    async def _resolve_fabricated(self, ctx: DispatchContext, directive: Directive) -> tuple[str, Optional[str], Optional[str]]:
        url = directive.target
        locator = LinkLocator(
            index=parse_ordinal(ctx.turn.user_request),
            title_hint=directive.label,
            fabricated_url=url,
            history=ctx.session.recent_assistant_texts(self.settings.history_window),
        )
        logger.info(f"[Orchestrator] {url} looks fabricated, resolving on {site_root(url)}")
        return await self._resolve_on_page(ctx, site_root(url), locator)

    # -------------------------------------------------------------------------
    # Navigation handlers
    # -------------------------------------------------------------------------

    async def _handle_open_url(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        url = directive.target
        query = self.search_pages.search_query(url)
        if query:
            return await self._reroute_to_search(ctx, directive, query)

        if self.classifier.is_fabricated(url):
            resolved, title, method = await self._resolve_fabricated(ctx, directive)
            self._embed_if_youtube(ctx, resolved, title)
            self._open_tab(ctx, resolved, title)
            return DirectiveOutcome(
                directive=directive,
                route=Route.NEEDS_FABRICATION_CHECK,
                opened_url=resolved,
                resolution_method=method,
            )

        self._embed_if_youtube(ctx, url, directive.label)
        self._open_tab(ctx, url, directive.label)
        return DirectiveOutcome(directive=directive, opened_url=url)

    async def _handle_open_tab(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        url = directive.target
        query = self.search_pages.search_query(url)
        if query:
            return await self._reroute_to_search(ctx, directive, query)
        self._open_tab(ctx, url, directive.label, summarize=False)
        return DirectiveOutcome(directive=directive, opened_url=url)

    async def _handle_open_result(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        value = directive.target.lstrip("#")
        index = int(value) - 1 if value.isdigit() else parse_ordinal(value)
        results = ctx.session.search_results
        if index is None or not results or not (-len(results) <= index < len(results)):
            note = f"There's no search result {directive.target} to open."
            return self._failure(ctx, directive, Route.DIRECT, note)

        hit = results[index]
        self._open_tab(ctx, hit.url, hit.title or None)
        return DirectiveOutcome(directive=directive, opened_url=hit.url)

    async def _handle_embed(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        url, title, method = directive.target, directive.label, None
        route = Route.DIRECT
        if self.classifier.is_fabricated(url):
            route = Route.NEEDS_FABRICATION_CHECK
            url, resolved_title, method = await self._resolve_fabricated(ctx, directive)
            title = title or resolved_title

        if not self._embed_if_youtube(ctx, url, title):
            ctx.message.videos.append(VideoEmbed(url=url, title=title, platform="other"))
        return DirectiveOutcome(directive=directive, route=route, opened_url=url, resolution_method=method)

    def _embed_if_youtube(self, ctx: DispatchContext, url: str, title: Optional[str]) -> bool:
        embed_id = youtube_embed_id(url)
        if not embed_id:
            return False
        if any(v.embed_id == embed_id for v in ctx.message.videos):
            return True
        ctx.message.videos.append(VideoEmbed(url=url, title=title, platform="youtube", embed_id=embed_id))
        return True

    # -------------------------------------------------------------------------
    # Search / media / app handlers
    # -------------------------------------------------------------------------

    async def _handle_search(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        query = directive.value.strip()
        outcome: SearchOutcome = await self.search.execute(query)
        if outcome.log is not None:
            ctx.result.search_logs.append(outcome.log)

        if not outcome.results:
            note = f"I couldn't find anything for \"{query}\" right now."
            return self._failure(ctx, directive, Route.DIRECT, note)

        ctx.session.search_results = list(outcome.results)
        for hit in outcome.results[:MAX_SEARCH_SOURCES]:
            ctx.message.sources.append(
                WebSource(url=hit.url, title=hit.title or hit.url, favicon=favicon_for(hit.url), snippet=hit.snippet or None)
            )
        logger.info(f"[Orchestrator] Search '{query}' -> {len(outcome.results)} results")
        return DirectiveOutcome(directive=directive)

    async def _handle_image(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        ctx.message.images.append(MessageImage(url=directive.target, alt=directive.label))
        return DirectiveOutcome(directive=directive)

    async def _handle_open_app(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        app = directive.value.rstrip(":").strip()
        await self.tools.open_app(app)
        return DirectiveOutcome(directive=directive)

    async def _handle_screenshot(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        shot = await self.tools.screenshot(directive.target)
        ctx.message.images.append(MessageImage(url=shot.image, alt=shot.title or directive.target))
        return DirectiveOutcome(directive=directive)

    async def _handle_scrape_images(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        target = directive.target
        if target.startswith(("http://", "https://")):
            urls = [target]
        else:
            outcome: SearchOutcome = await self.search.execute(target)
            if outcome.log is not None:
                ctx.result.search_logs.append(outcome.log)
            urls = [hit.url for hit in outcome.results[: self.settings.scrape_images_pages]]

        pages = await self.fetch_pages(urls, ctx.turn)
        seen = {image.url for image in ctx.message.images}
        added = 0
        for page in pages:
            for image in page.images:
                if image in seen or added >= MAX_SCRAPED_IMAGES:
                    continue
                seen.add(image)
                ctx.message.images.append(MessageImage(url=image, alt=page.display_title))
                added += 1

        if not added:
            return self._failure(ctx, directive, Route.DIRECT, f"I couldn't find any images for {target}.")
        logger.info(f"[Orchestrator] Scraped {added} images from {len(pages)} pages")
        return DirectiveOutcome(directive=directive)

    async def fetch_pages(self, urls: list[str], turn: Optional[TurnContext] = None) -> list[FetchedPage]:
        """Fetch pages concurrently, ``fetch_batch_size`` at a time. Failed fetches are skipped."""
        pages: list[FetchedPage] = []
        size = max(1, self.settings.fetch_batch_size)
        for start in range(0, len(urls), size):
            if turn is not None and turn.cancelled:
                break
            batch = urls[start:start + size]
            fetched = await asyncio.gather(
                *(self.tools.fetch_page(url) for url in batch),
                return_exceptions=True,
            )
            for url, page in zip(batch, fetched):
                if isinstance(page, BaseException):
                    if not isinstance(page, (ToolError, httpx.HTTPError)):
                        raise page
                    logger.info(f"[Orchestrator] Skipping {url}: {page}")
                    continue
                pages.append(page)
        return pages

    # -------------------------------------------------------------------------
    # Tab handlers
    # -------------------------------------------------------------------------

    async def _handle_switch_tab(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        tab = find_tab(ctx.session.tabs, directive.target)
        ctx.session.tabs.switch_to(tab.id)
        return DirectiveOutcome(directive=directive, opened_url=tab.url)

    async def _handle_close_tab(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        tab = find_tab(ctx.session.tabs, directive.target)
        ctx.session.tabs.close(tab.id)
        return DirectiveOutcome(directive=directive)

    async def _handle_list_tabs(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        tabs = ctx.session.tabs.list()
        if not tabs:
            ctx.message.notes.append("No tabs are open.")
        else:
            lines = [
                f"{i}. {tab.title or tab.url} - {tab.url}{' (active)' if tab.active else ''}"
                for i, tab in enumerate(tabs, start=1)
            ]
            ctx.message.notes.append("Open tabs:\n" + "\n".join(lines))
        return DirectiveOutcome(directive=directive)

    # -------------------------------------------------------------------------
    # Deep read
    # -------------------------------------------------------------------------

    async def _handle_read_url(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        url = directive.target
        query = self.search_pages.search_query(url)
        if query:
            return await self._reroute_to_search(ctx, directive, query)
        return await self.deep_read(ctx, directive, url, open_new_tab=True)

    async def _handle_click_in_tab(self, ctx: DispatchContext, directive: Directive) -> DirectiveOutcome:
        active = ctx.session.tabs.active
        if active is None:
            return self._failure(ctx, directive, Route.NEEDS_DEEP_READ, "There's no open tab to click in.")

        reference = directive.target
        digits = reference.lstrip("#")
        positional = digits.isdigit() or is_ordinal_reference(reference)
        locator = LinkLocator(
            index=int(digits) - 1 if digits.isdigit() else parse_ordinal(reference),
            title_hint=None if positional else reference,
            history=ctx.session.recent_assistant_texts(self.settings.history_window),
        )

        page = ctx.session.scraped_pages.get(active.url)
        if page is None:
            page = await self._fetch(ctx, active.url)

        resolution = self.ranker.resolve(page, locator)
        if not resolution.found:
            note = f"I couldn't find a link matching '{reference}' on {active.title or active.url}."
            return self._failure(ctx, directive, Route.NEEDS_DEEP_READ, note)

        outcome = await self.deep_read(ctx, directive, resolution.link.url, open_new_tab=False)
        outcome.resolution_method = resolution.method
        return outcome

    async def deep_read(
        self,
        ctx: DispatchContext,
        directive: Directive,
        url: str,
        open_new_tab: bool,
    ) -> DirectiveOutcome:
        """
        Fetch ``url``, attach its structure to the message, re-prompt the
        model with it and dispatch the follow-up response one level deeper.

        Raises:
            DeepReadLimitError: the chain or the turn already used up its reads
        """
        chain = ctx.chain
        limit = self.settings.max_deep_read_depth
        if chain.depth >= limit:
            raise DeepReadLimitError(chain.depth, limit, {"url": url})
        if ctx.turn.deep_reads >= limit:
            raise DeepReadLimitError(ctx.turn.deep_reads, limit, {"url": url, "scope": "turn"})

        if chain.has_visited(url):
            note = f"I already read {url} in this chain, so I stopped there."
            return self._failure(ctx, directive, Route.NEEDS_DEEP_READ, note)

        # sibling reads are checked before any of them awaits
        ctx.turn.deep_reads += 1
        page = await self._fetch(ctx, url)
        tabs = ctx.session.tabs
        active = tabs.active
        if open_new_tab or active is None:
            tabs.open(page.url or url, page.display_title)
        else:
            active.url = page.url or url
            tabs.update_title(active.id, page.display_title)

        message = ctx.message
        message.page_meta = page.meta
        message.links = list(page.links)
        message.headings = list(page.headings)
        message.sources.append(
            WebSource(url=page.url or url, title=page.display_title, favicon=page.meta.favicon or favicon_for(url))
        )

        outcome = DirectiveOutcome(directive=directive, route=Route.NEEDS_DEEP_READ, opened_url=page.url or url)
        if ctx.turn.cancelled:
            return outcome

        ctx.session.state = SessionState.AWAITING_MODEL_FOLLOW_UP.value
        prompt = build_deep_read_prompt(page, chain.original_user_request, self.settings.page_content_chars)
        messages = self._model_messages(ctx.session) + [{"role": "user", "content": prompt}]
        follow_up = await self.model.complete(messages, self._system_prompt(ctx.session), ctx.turn.token)

        if ctx.turn.cancelled:
            logger.info(f"[Orchestrator] Cancelled before follow-up for {url}")
            return outcome

        next_chain = chain.descend(url)
        if page.url and page.url != url:
            next_chain = DeepReadChain(
                original_user_request=next_chain.original_user_request,
                depth=next_chain.depth,
                visited_urls=next_chain.visited_urls | {page.url},
            )
        ctx.result.deep_read_depth = max(ctx.result.deep_read_depth, next_chain.depth)
        logger.info(f"[Orchestrator] Deep read {next_chain.depth}/{limit}: {url}")

        follow_message = ctx.session.add_message(MessageRole.ASSISTANT)
        ctx.result.messages.append(follow_message)
        await self.process_response(ctx.session, follow_message, follow_up, ctx.turn, next_chain, ctx.result)
        return outcome

    # -------------------------------------------------------------------------
    # Refusal bypass
    # -------------------------------------------------------------------------

    async def _run_synthesized(self, ctx: DispatchContext, action: SynthesizedAction) -> DirectiveOutcome:
        directive = action.directive
        if directive.kind != DirectiveKind.OPEN_URL or action.target_index is None:
            outcomes = await self.dispatch(ctx, [directive])
            return outcomes[0] if outcomes else DirectiveOutcome(directive=directive, success=False)

        locator = LinkLocator(index=action.target_index)
        url, title, method = await self._resolve_on_page(ctx, directive.target, locator)
        self._embed_if_youtube(ctx, url, title)
        self._open_tab(ctx, url, title)
        outcome = DirectiveOutcome(directive=directive, opened_url=url, resolution_method=method)
        ctx.result.outcomes.append(outcome)
        return outcome

    # -------------------------------------------------------------------------
    # Scrape and summarize
    # -------------------------------------------------------------------------

    async def scrape_and_summarize(
        self,
        session: ConversationSession,
        url: str,
        turn: TurnContext,
        result: TurnResult,
    ) -> Optional[Message]:
        """
        Fetch an opened page and stream a short model summary into a new
        assistant message. Only one runs per session at a time; a request
        made while one is in flight is dropped.
        """
        if session.scrape_in_flight:
            logger.info(f"[Orchestrator] Summary already in flight, dropping {url}")
            return None

        session.scrape_in_flight = True
        try:
            page = session.scraped_pages.get(url) or await self.tools.fetch_page(url)
            session.remember_page(page)
            if not page.content or turn.cancelled:
                return None

            message = session.add_message(MessageRole.ASSISTANT)
            message.sources.append(
                WebSource(url=page.url or url, title=page.display_title, favicon=favicon_for(page.url or url))
            )
            result.messages.append(message)

            prompt = build_summary_prompt(page, self.settings.page_content_chars)
            async for chunk in self.model.stream(
                [{"role": "user", "content": prompt}],
                self._system_prompt(session),
                turn.token,
            ):
                message.content += chunk

            parsed = parse_response(message.content)
            message.content = parsed.clean_text
            message.status = parsed.status
            return message
        except (ToolError, LLMError) as e:
            logger.warning(f"[Orchestrator] Summary of {url} failed: {e.message}")
            return None
        finally:
            session.scrape_in_flight = False

    # -------------------------------------------------------------------------
    # Model context
    # -------------------------------------------------------------------------

    def _system_prompt(self, session: ConversationSession) -> str:
        facts = self.memory.facts(session.user_id) if self.memory is not None else []
        return build_system_prompt(build_memory_context(facts))

    def _model_messages(self, session: ConversationSession) -> list[dict[str, str]]:
        messages = [
            {"role": m.role.value, "content": m.content}
            for m in session.messages
            if m.content
        ]
        context = build_search_results_context(session.search_results)
        if context:
            messages.append({"role": "assistant", "content": context})
        return messages
