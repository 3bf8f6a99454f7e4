"""
Dial-by-Name Directory - Call Flow

State machine driving one phone call through the directory:

    initial ──(no digits)──▶ searching ──(one match)──▶ transfer
       │                        │  ▲
       └──(digits)──────────────┤  │ (no match: reprompt)
                                ▼  │
                            selecting ──(1..n)──▶ transfer
                                │
                         0 repeat / 9 next page / * back

Each webhook invocation loads the session, routes the entered digits and
saves the session again unless a terminal action cleared it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError

from dialbyname.config import Settings
from dialbyname.core.cache import ResultCache
from dialbyname.core.catalog import DirectoryCatalog, UserSource
from dialbyname.core.logging import mask_call_id
from dialbyname.core.types import DirectoryEntry, SearchMode
from .models import (
    CallSession,
    CallState,
    DirectoryEvent,
    DirectoryOptions,
    ExitAction,
    has_next_page,
    page_count,
)
from .privacy import digits_only
from .providers import (
    ControlDocument,
    ForwardDocument,
    GatherDocument,
    HangupDocument,
    RedirectDocument,
)
from .session_store import CallSessionStore

logger = logging.getLogger(__name__)


# =============================================================================
# Prompts
# =============================================================================

WELCOME_PROMPT = "Welcome to the dial by name directory."
OPERATOR_PROMPT = "Press 0 for the operator."
EXIT_TO_MENU_PROMPT = "Press star to return to the main menu."
START_OVER_PROMPT = "Press star to start over."
NO_MATCHES_PROMPTS = ("No matches were found.", "Please try again, or press star to start over.")
NO_MORE_OPTIONS_PROMPT = "No more options. Please make a selection, or press star to start over."
INVALID_SELECTION_PROMPT = "Invalid selection. Please try again, or press star to start over."
OPERATOR_TRANSFER_PROMPT = "Transferring to the operator. Please hold."
RETURNING_PROMPT = "Returning to main menu."
GOODBYE_PROMPT = "Goodbye."
UNAVAILABLE_PROMPT = "We're sorry, the directory is temporarily unavailable. Please try again later."

NAME_TYPES = {
    SearchMode.FIRSTNAME: "first name",
    SearchMode.LASTNAME: "last name",
    SearchMode.BOTH: "first or last name",
}

# WORKAROUND: a leading keypad digit is sometimes consumed by the previous
# prompt before the name search sees it. When nothing matches, each of these
# is tried in front of the entered digits and the first hit wins.
FALLBACK_PREFIXES = "23456789"


class _Turn:
    """Mutable state for one webhook invocation."""

    def __init__(self, session: CallSession, options: DirectoryOptions):
        self.session = session
        self.options = options
        self.cleared = False
        self.catalog: Optional[DirectoryCatalog] = None
        self.catalog_failed = False

    def clear(self) -> None:
        """End the call's session; nothing is saved after this turn."""
        self.cleared = True

    def restart(self) -> None:
        """Replace the session with a fresh one, keeping return-to resolution."""
        previous = self.session
        self.session = CallSession(
            call_id=previous.call_id,
            return_to=previous.return_to,
            return_to_resolved=previous.return_to_resolved,
        )
        self.cleared = False


class CallFlowController:
    """
    Drives the directory state machine for every call.

    Built once per process with the settings and long-lived collaborators.
    The directory catalog is created per invocation and loaded only when a
    search actually runs.

    Usage:
        controller = CallFlowController(settings, source, store, cache)
        document = await controller.handle(event, options)
        xml = renderer.render(document)
    """

    def __init__(
        self,
        settings: Settings,
        source: UserSource,
        store: CallSessionStore,
        cache: Optional[ResultCache] = None,
        catalog_factory: Optional[Callable[[UserSource, Optional[ResultCache]], DirectoryCatalog]] = None,
    ):
        self._settings = settings
        self._source = source
        self._store = store
        self._cache = cache
        self._catalog_factory = catalog_factory or DirectoryCatalog

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def handle(self, event: DirectoryEvent, options: DirectoryOptions) -> ControlDocument:
        """Process one webhook invocation and return what the call does next."""
        if self._cache is not None:
            await asyncio.get_running_loop().run_in_executor(None, self._cache.maybe_purge)

        call_id = event.session_key
        session = await self._load_session(call_id)

        if not session.return_to_resolved:
            await self._resolve_return_to(session, event)

        turn = _Turn(session, options)
        document = await self._route(turn, event.digits or "")

        if turn.cleared:
            await self._store.clear(call_id)
        else:
            await self._store.set(call_id, turn.session.model_dump_json())

        return document

    async def _load_session(self, call_id: str) -> CallSession:
        payload = await self._store.get(call_id)
        if payload is None:
            return CallSession(call_id=call_id)

        try:
            return CallSession.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(
                "Corrupt session for call=%s, starting fresh: %s",
                mask_call_id(call_id),
                e.error_count(),
            )
            return CallSession(call_id=call_id)

    async def _resolve_return_to(self, session: CallSession, event: DirectoryEvent) -> None:
        """
        Decide once per call whether * at the main prompt returns the caller
        to the auto attendant that sent them here.
        """
        account_user = event.account_user.strip()
        account_domain = event.effective_account_domain.strip()

        if account_user and account_domain:
            if await self._source.is_auto_attendant(account_domain, account_user):
                session.return_to = account_user
                logger.info("Call arrived from auto attendant %s", account_user)

        session.return_to_resolved = True

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    async def _route(self, turn: _Turn, digits: str) -> ControlDocument:
        session = turn.session
        options = turn.options

        if "*" in digits:
            return self._handle_star(turn)

        if (
            digits == "0"
            and session.state != CallState.SELECTING.value
            and not session.accumulated_digits
            and options.operator_extension
        ):
            turn.clear()
            logger.info("Transferring to operator %s", options.operator_extension)
            return ForwardDocument(
                destination=f"{options.operator_extension}@{options.domain}",
                prompts=(OPERATOR_TRANSFER_PROMPT,),
                by_caller=options.by_caller,
                voice=options.voice,
            )

        try:
            state = CallState(session.state)
        except ValueError:
            logger.warning("Unknown session state %r, restarting", session.state)
            turn.restart()
            state = CallState.INITIAL
            digits = ""

        if state == CallState.INITIAL:
            if not digits:
                return self._prompt_for_name(turn)
            turn.session.state = CallState.SEARCHING.value
            return await self._handle_searching(turn, digits)

        if state == CallState.SEARCHING:
            return await self._handle_searching(turn, digits)

        return self._handle_selecting(turn, digits)

    async def _handle_searching(self, turn: _Turn, digits: str) -> ControlDocument:
        session = turn.session
        options = turn.options

        session.state = CallState.SEARCHING.value
        session.accumulated_digits += digits_only(digits)
        accumulated = session.accumulated_digits

        if not accumulated:
            return self._prompt_for_name(turn)

        catalog = await self._catalog(turn)
        if catalog is None:
            return self._unavailable(turn)

        matches = catalog.search(accumulated)

        if not matches and len(accumulated) >= 2:
            for prefix in FALLBACK_PREFIXES:
                candidate = prefix + accumulated
                candidate_matches = catalog.search(candidate)
                if candidate_matches:
                    logger.debug("Matched %s after prepending %s", accumulated, prefix)
                    matches = candidate_matches
                    session.accumulated_digits = candidate
                    break

        logger.debug("Found %d matches for %s", len(matches), session.accumulated_digits)

        if not matches:
            session.accumulated_digits = ""
            return GatherDocument(
                prompts=NO_MATCHES_PROMPTS,
                num_digits=options.max_digits,
                action=options.callback_url,
                voice=options.voice,
            )

        if len(matches) == 1:
            return self._transfer_to(turn, matches[0])

        return self._present_menu(turn, matches, page=0)

    def _handle_selecting(self, turn: _Turn, digits: str) -> ControlDocument:
        session = turn.session
        options = turn.options
        digit = digits.strip()

        if digit == "0":
            return self._present_menu(turn, session.all_matches, session.current_page)

        if digit == "9":
            if has_next_page(len(session.all_matches), session.current_page, options.page_size):
                return self._present_menu(turn, session.all_matches, session.current_page + 1)
            return self._menu_reprompt(turn, NO_MORE_OPTIONS_PROMPT)

        if digit.isdigit():
            selection = int(digit)
            if 1 <= selection <= len(session.current_page_matches):
                return self._transfer_to(turn, session.current_page_matches[selection - 1])

        logger.debug("Invalid selection %r", digit)
        return self._menu_reprompt(turn, INVALID_SELECTION_PROMPT)

    # -------------------------------------------------------------------------
    # Star key
    # -------------------------------------------------------------------------

    def _handle_star(self, turn: _Turn) -> ControlDocument:
        session = turn.session

        if session.state == CallState.SELECTING.value:
            if session.current_page > 0:
                return self._present_menu(turn, session.all_matches, session.current_page - 1)
            session.reset_search()
            return self._prompt_for_name(turn)

        if session.accumulated_digits:
            session.reset_search()
            return self._prompt_for_name(turn)

        return self._handle_exit(turn)

    def _handle_exit(self, turn: _Turn) -> ControlDocument:
        """Leave the directory from the main prompt."""
        options = turn.options
        return_to = turn.session.return_to
        turn.clear()

        if options.exit_url:
            logger.info("Exiting directory to %s", options.exit_url)
            return RedirectDocument(
                url=options.exit_url,
                prompts=(RETURNING_PROMPT,),
                voice=options.voice,
            )

        if return_to:
            logger.info("Returning caller to %s", return_to)
            return ForwardDocument(
                destination=f"{return_to}@{options.domain}",
                prompts=(RETURNING_PROMPT,),
                by_caller=options.by_caller,
                voice=options.voice,
            )

        if options.exit_action == ExitAction.HANGUP:
            return HangupDocument(prompts=(GOODBYE_PROMPT,), voice=options.voice)

        turn.restart()
        return self._prompt_for_name(turn)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def _prompt_for_name(self, turn: _Turn) -> GatherDocument:
        session = turn.session
        options = turn.options

        session.reset_search()

        prompts = [
            WELCOME_PROMPT,
            f"Using your telephone keypad, enter up to {options.max_digits} letters of the "
            f"person's {NAME_TYPES[options.mode]}, then press pound.",
        ]
        if options.operator_extension:
            prompts.append(OPERATOR_PROMPT)
        if options.exit_url or session.return_to:
            prompts.append(EXIT_TO_MENU_PROMPT)
        else:
            prompts.append(START_OVER_PROMPT)

        return GatherDocument(
            prompts=tuple(prompts),
            num_digits=options.max_digits,
            action=options.callback_url,
            voice=options.voice,
        )

    def _present_menu(self, turn: _Turn, matches: List[DirectoryEntry], page: int) -> GatherDocument:
        options = turn.options
        page_size = options.page_size
        total = len(matches)

        turn.session.show_page(matches, page, page_size)
        page_matches = turn.session.current_page_matches
        pages = page_count(total, page_size)

        prompt = ". ".join(
            f"{number}, {entry.full_name}" for number, entry in enumerate(page_matches, start=1)
        ) + "."

        if has_next_page(total, page, page_size):
            remaining = total - page * page_size - len(page_matches)
            prompt += f" 9 for {remaining} more options."

        prompt += " 0 to repeat."
        prompt += " Star for previous page." if page > 0 else " Star to start over."

        if pages > 1:
            prompt = f"Page {page + 1} of {pages}. " + prompt

        logger.debug("Presenting page %d of %d (%d matches)", page + 1, pages, total)

        return GatherDocument(
            prompts=(prompt,),
            num_digits=1,
            action=options.callback_url,
            voice=options.voice,
            dtmf_only=True,
        )

    def _menu_reprompt(self, turn: _Turn, prompt: str) -> GatherDocument:
        return GatherDocument(
            prompts=(prompt,),
            num_digits=1,
            action=turn.options.callback_url,
            voice=turn.options.voice,
        )

    def _transfer_to(self, turn: _Turn, entry: DirectoryEntry) -> ForwardDocument:
        options = turn.options
        turn.clear()
        logger.info("Transferring to extension %s", entry.extension)
        return ForwardDocument(
            destination=f"{entry.extension}@{options.domain}",
            prompts=(f"Transferring to {entry.full_name}. Please hold.",),
            by_caller=options.by_caller,
            voice=options.voice,
        )

    def _unavailable(self, turn: _Turn) -> HangupDocument:
        turn.clear()
        return HangupDocument(prompts=(UNAVAILABLE_PROMPT,), voice=turn.options.voice)

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def _catalog(self, turn: _Turn) -> Optional[DirectoryCatalog]:
        """Load the catalog on first use within this invocation; None if unavailable."""
        if turn.catalog is not None or turn.catalog_failed:
            return turn.catalog

        options = turn.options
        catalog = self._catalog_factory(self._source, self._cache)
        loaded = await catalog.load(
            options.domain,
            sites=options.sites,
            departments=options.departments,
            mode=options.mode,
        )
        if not loaded:
            logger.error("Directory unavailable for domain %s", options.domain)
            turn.catalog_failed = True
            return None

        turn.catalog = catalog
        return catalog
