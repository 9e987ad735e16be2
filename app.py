import logging
from enum import Enum
from typing import Callable
from dataclasses import dataclass, field
from request import (CompletedRequest, RequestError, RequestMethod,
                     DEFAULT_TIMEOUT, fetch)


logger = logging.getLogger(__name__)


class EditingTarget(Enum):
    # EditingTarget {{{
    Url = "URL"
    # }}}


@dataclass(frozen=True)
class ScreenMode:
    name = ""


@dataclass(frozen=True)
class Normal(ScreenMode):
    name = "Normal Mode"


@dataclass(frozen=True)
class Editing(ScreenMode):
    target: EditingTarget = EditingTarget.Url
    name = "Editing Mode"


@dataclass(frozen=True)
class ExitConfirm(ScreenMode):
    name = "Exiting"


@dataclass(frozen=True)
class PendingRequest:
    # PendingRequest {{{
    url: str
    method: RequestMethod
    # }}}


@dataclass(frozen=True)
class StateSnapshot:
    """
    Read-only view of the application state handed
    to the render path once per frame.
    """
    # StateSnapshot {{{
    url_draft: str
    method_draft: RequestMethod
    history: tuple[CompletedRequest, ...]
    screen: ScreenMode
    pending: PendingRequest = None
    error: RequestError = None

    @property
    def editing_target(self) -> EditingTarget:
        if isinstance(self.screen, Editing):
            return self.screen.target
        return None

    @property
    def latest(self) -> CompletedRequest:
        return self.history[-1] if self.history else None
    # }}}


@dataclass
class ApplicationState:
    """
    Owns every piece of mutable state. Operations that
    are not valid for the current screen are ignored.
    """
    # ApplicationState {{{
    url_draft: str = ""
    method_draft: RequestMethod = RequestMethod.GET
    history: list[CompletedRequest] = field(default_factory=list)
    screen: ScreenMode = field(default_factory=Normal)
    pending: PendingRequest = None
    error: RequestError = None
    running: bool = True

    @property
    def editing_target(self) -> EditingTarget:
        if isinstance(self.screen, Editing):
            return self.screen.target
        return None

    @property
    def editable(self) -> bool:
        return isinstance(self.screen, Editing) and self.pending is None

    def begin_edit(self) -> None:
        if not isinstance(self.screen, Normal):
            return self._ignore("begin_edit")
        self.screen = Editing(EditingTarget.Url)

    def cancel_edit(self) -> None:
        if not self.editable:
            return self._ignore("cancel_edit")
        self.screen = Normal()

    def append_to_draft(self, ch: str) -> None:
        if not self.editable:
            return self._ignore("append_to_draft")
        self.url_draft += ch

    def backspace_draft(self) -> None:
        if not self.editable:
            return self._ignore("backspace_draft")
        self.url_draft = self.url_draft[:-1]

    def cycle_method(self) -> None:
        if not self.editable:
            return self._ignore("cycle_method")
        self.method_draft = self.method_draft.next()

    def submit(self) -> PendingRequest:
        """
        Marks the draft as in flight. The screen stays on
        Editing until the request completes or fails.
        """
        if not self.editable or self.url_draft.strip() == "":
            return self._ignore("submit")

        self.error = None
        self.pending = PendingRequest(self.url_draft, self.method_draft)
        logger.debug("Submitted %s %s", self.pending.method.value,
                     self.pending.url)
        return self.pending

    def complete_request(self, pending: PendingRequest,
                         response_body: str) -> CompletedRequest:
        if pending is None or pending is not self.pending:
            return self._ignore("complete_request")

        completed = CompletedRequest(url=pending.url,
                                     method=pending.method,
                                     response_body=response_body)
        self.history.append(completed)
        self.url_draft = ""
        self.pending = None
        self.screen = Normal()
        logger.info("Completed %s", completed.label())
        return completed

    def fail_request(self, pending: PendingRequest,
                     error: RequestError) -> None:
        if pending is None or pending is not self.pending:
            return self._ignore("fail_request")

        # Draft is kept so the URL can be corrected and resent
        self.error = error
        self.pending = None
        self.screen = Normal()
        logger.warning("%s %s failed: %s", pending.method.value,
                       pending.url, error)

    def issue_request(self, fetcher: Callable = fetch,
                      timeout: float = DEFAULT_TIMEOUT
                      ) -> CompletedRequest:
        """
        Runs the whole request cycle on the calling thread.
        Failures are recorded on the state and re-raised.
        """
        pending = self.submit()
        if pending is None:
            return None

        try:
            body = fetcher(pending.url, pending.method, timeout=timeout)
        except RequestError as error:
            self.fail_request(pending, error)
            raise
        except Exception as exception:
            # Never leave the request pending
            self.fail_request(pending, RequestError(
                f"Unexpected error: {exception}"))
            raise

        return self.complete_request(pending, body)

    def request_exit(self) -> None:
        if not isinstance(self.screen, Normal):
            return self._ignore("request_exit")
        self.screen = ExitConfirm()

    def confirm_exit(self, yes: bool) -> None:
        if not isinstance(self.screen, ExitConfirm):
            return self._ignore("confirm_exit")
        if yes:
            self.running = False
        else:
            self.screen = Normal()

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(url_draft=self.url_draft,
                             method_draft=self.method_draft,
                             history=tuple(self.history),
                             screen=self.screen,
                             pending=self.pending,
                             error=self.error)

    def _ignore(self, operation: str) -> None:
        logger.debug("Ignored %s while in %s", operation,
                     type(self.screen).__name__)
        return None
    # }}}
