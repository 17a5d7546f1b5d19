"""Exchange workflow: an explicit state machine around the bundle engine.

States (frozen dataclasses, one per step):

  SelectingRemoved -> SelectingAvailable (optional) -> SelectingLocation
  -> Calculating -> ReviewingSuggestions -> ConfirmingLocation
  -> ConfirmingExchange -> Fulfilled | Pending

transition(state, event) is the single pure transition function; every
(state, event) pair not in the table raises InvalidTransition. The
ExchangeWorkflow driver runs the side effects (calculation, persistence,
visit tracking) and feeds their outcomes back in as events.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Optional, Union

from src.bundle_engine.generator import CalculationAborted
from src.bundle_engine.manual_builder import ManualBundleBuilder
from src.bundle_engine.models import BundleCandidate, RemovalSet, SuggestionResult
from src.bundle_engine.pipeline import ReplacementPipeline
from src.common.models import (
    ExchangeReason,
    ExchangeRecord,
    ExchangeStatus,
    LineItem,
)

from .base import ExchangeRecordStore, LocationDirectory
from .errors import InvalidTransition, PersistenceFailure

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Draft:
    """Operator input collected before calculation."""
    removed: tuple[LineItem, ...] = ()
    available: tuple[LineItem, ...] = ()
    location_id: Optional[str] = None
    skipped_available: bool = False

    @property
    def removal(self) -> RemovalSet:
        return RemovalSet(self.removed)


@dataclass(frozen=True)
class SelectingRemoved:
    draft: Draft = field(default_factory=Draft)


@dataclass(frozen=True)
class SelectingAvailable:
    draft: Draft


@dataclass(frozen=True)
class SelectingLocation:
    draft: Draft


@dataclass(frozen=True)
class Calculating:
    draft: Draft


@dataclass(frozen=True)
class ReviewingSuggestions:
    draft: Draft
    result: SuggestionResult
    selected: Optional[BundleCandidate] = None


@dataclass(frozen=True)
class ConfirmingLocation:
    draft: Draft
    result: SuggestionResult
    bundle: BundleCandidate


@dataclass(frozen=True)
class ConfirmingExchange:
    draft: Draft
    result: SuggestionResult
    bundle: BundleCandidate
    error: Optional[str] = None


@dataclass(frozen=True)
class Fulfilled:
    record: ExchangeRecord


@dataclass(frozen=True)
class Pending:
    record: ExchangeRecord


State = Union[
    SelectingRemoved,
    SelectingAvailable,
    SelectingLocation,
    Calculating,
    ReviewingSuggestions,
    ConfirmingLocation,
    ConfirmingExchange,
    Fulfilled,
    Pending,
]

TERMINAL_STATES = (Fulfilled, Pending)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SetRemoved:
    items: tuple[LineItem, ...]


@dataclass(frozen=True)
class SetAvailable:
    items: tuple[LineItem, ...]


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class SkipAvailable:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class ChooseLocation:
    location_id: str


@dataclass(frozen=True)
class StartCalculation:
    pass


@dataclass(frozen=True)
class SuggestionsReady:
    result: SuggestionResult


@dataclass(frozen=True)
class CalculationCancelled:
    pass


@dataclass(frozen=True)
class SelectSuggestion:
    candidate_id: str


@dataclass(frozen=True)
class UseManualBundle:
    bundle: BundleCandidate


@dataclass(frozen=True)
class AcceptSelection:
    pass


@dataclass(frozen=True)
class ConfirmLocation:
    pass


@dataclass(frozen=True)
class ChangeLocation:
    location_id: str


@dataclass(frozen=True)
class CommitFailed:
    error: str


@dataclass(frozen=True)
class CommitSucceeded:
    record: ExchangeRecord


Event = Union[
    SetRemoved,
    SetAvailable,
    Next,
    SkipAvailable,
    Back,
    ChooseLocation,
    StartCalculation,
    SuggestionsReady,
    CalculationCancelled,
    SelectSuggestion,
    UseManualBundle,
    AcceptSelection,
    ConfirmLocation,
    ChangeLocation,
    CommitFailed,
    CommitSucceeded,
]


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

def _reject(state: State, event: Event, reason: str) -> InvalidTransition:
    return InvalidTransition(
        f"{type(event).__name__} not allowed in {type(state).__name__}: {reason}"
    )


def _set_removed(state: SelectingRemoved, event: SetRemoved) -> State:
    return SelectingRemoved(replace(state.draft, removed=tuple(event.items)))


def _removed_next(state: SelectingRemoved, event: Next) -> State:
    if not state.draft.removal.is_runnable:
        raise _reject(state, event, "no removed product with quantity > 0")
    return SelectingAvailable(replace(state.draft, skipped_available=False))


def _removed_skip(state: SelectingRemoved, event: SkipAvailable) -> State:
    if not state.draft.removal.is_runnable:
        raise _reject(state, event, "no removed product with quantity > 0")
    return SelectingLocation(replace(state.draft, available=(), skipped_available=True))


def _set_available(state: SelectingAvailable, event: SetAvailable) -> State:
    return SelectingAvailable(replace(state.draft, available=tuple(event.items)))


def _available_next(state: SelectingAvailable, event: Next) -> State:
    return SelectingLocation(state.draft)


def _available_back(state: SelectingAvailable, event: Back) -> State:
    return SelectingRemoved(state.draft)


def _choose_location(state: SelectingLocation, event: ChooseLocation) -> State:
    return SelectingLocation(replace(state.draft, location_id=event.location_id))


def _location_back(state: SelectingLocation, event: Back) -> State:
    if state.draft.skipped_available:
        return SelectingRemoved(state.draft)
    return SelectingAvailable(state.draft)


def _start_calculation(state: SelectingLocation, event: StartCalculation) -> State:
    if not state.draft.location_id:
        raise _reject(state, event, "no location chosen")
    if not state.draft.removal.is_runnable:
        raise _reject(state, event, "removal set is empty")
    return Calculating(state.draft)


def _suggestions_ready(state: Calculating, event: SuggestionsReady) -> State:
    return ReviewingSuggestions(state.draft, event.result)


def _calculation_cancelled(state: Calculating, event: CalculationCancelled) -> State:
    return SelectingLocation(state.draft)


def _select_suggestion(state: ReviewingSuggestions, event: SelectSuggestion) -> State:
    candidate = state.result.get(event.candidate_id)
    if candidate is None:
        raise _reject(state, event, f"unknown suggestion '{event.candidate_id}'")
    return replace(state, selected=candidate)


def _use_manual_bundle(state: ReviewingSuggestions, event: UseManualBundle) -> State:
    if not event.bundle.items:
        raise _reject(state, event, "manual bundle is empty")
    return replace(state, selected=event.bundle)


def _accept_selection(state: ReviewingSuggestions, event: AcceptSelection) -> State:
    if state.selected is None:
        raise _reject(state, event, "no bundle selected")
    return ConfirmingLocation(state.draft, state.result, state.selected)


def _reviewing_back(state: ReviewingSuggestions, event: Back) -> State:
    return SelectingRemoved(state.draft)


def _confirm_location(state: ConfirmingLocation, event: ConfirmLocation) -> State:
    return ConfirmingExchange(state.draft, state.result, state.bundle)


def _change_location(state: ConfirmingLocation, event: ChangeLocation) -> State:
    return replace(state, draft=replace(state.draft, location_id=event.location_id))


def _confirming_location_back(state: ConfirmingLocation, event: Back) -> State:
    return ReviewingSuggestions(state.draft, state.result, state.bundle)


def _commit_failed(state: ConfirmingExchange, event: CommitFailed) -> State:
    return replace(state, error=event.error)


def _commit_succeeded(state: ConfirmingExchange, event: CommitSucceeded) -> State:
    if event.record.status == ExchangeStatus.FULFILLED:
        return Fulfilled(event.record)
    return Pending(event.record)


def _confirming_exchange_back(state: ConfirmingExchange, event: Back) -> State:
    return ConfirmingLocation(state.draft, state.result, state.bundle)


_TRANSITIONS: dict[tuple[type, type], Callable[..., State]] = {
    (SelectingRemoved, SetRemoved): _set_removed,
    (SelectingRemoved, Next): _removed_next,
    (SelectingRemoved, SkipAvailable): _removed_skip,
    (SelectingAvailable, SetAvailable): _set_available,
    (SelectingAvailable, Next): _available_next,
    (SelectingAvailable, Back): _available_back,
    (SelectingLocation, ChooseLocation): _choose_location,
    (SelectingLocation, StartCalculation): _start_calculation,
    (SelectingLocation, Back): _location_back,
    (Calculating, SuggestionsReady): _suggestions_ready,
    (Calculating, CalculationCancelled): _calculation_cancelled,
    (ReviewingSuggestions, SelectSuggestion): _select_suggestion,
    (ReviewingSuggestions, UseManualBundle): _use_manual_bundle,
    (ReviewingSuggestions, AcceptSelection): _accept_selection,
    (ReviewingSuggestions, Back): _reviewing_back,
    (ConfirmingLocation, ConfirmLocation): _confirm_location,
    (ConfirmingLocation, ChangeLocation): _change_location,
    (ConfirmingLocation, Back): _confirming_location_back,
    (ConfirmingExchange, CommitFailed): _commit_failed,
    (ConfirmingExchange, CommitSucceeded): _commit_succeeded,
    (ConfirmingExchange, Back): _confirming_exchange_back,
}


def transition(state: State, event: Event) -> State:
    """Return the next state for an event.

    Raises:
        InvalidTransition: If the event is not allowed in this state.
    """
    handler = _TRANSITIONS.get((type(state), type(event)))
    if handler is None:
        raise _reject(state, event, "no such transition")
    return handler(state, event)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class ExchangeWorkflow:
    """Runs one exchange session for one operator.

    Usage:
        workflow = ExchangeWorkflow(pipeline, records, locations, operator_id="gl-1")
        workflow.dispatch(SetRemoved((LineItem(product=p, quantity=4),)))
        workflow.dispatch(SkipAvailable())
        workflow.dispatch(ChooseLocation("market-7"))
        result = workflow.calculate()
        workflow.dispatch(SelectSuggestion(result.suggestions[0].id))
        workflow.dispatch(AcceptSelection())
        workflow.dispatch(ConfirmLocation())
        record = workflow.commit(defer=True)
    """

    def __init__(
        self,
        pipeline: ReplacementPipeline,
        records: ExchangeRecordStore,
        locations: LocationDirectory,
        operator_id: str,
        reason: ExchangeReason = ExchangeReason.PRODUCT_EXCHANGE,
        notes: str | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.records = records
        self.locations = locations
        self.operator_id = operator_id
        self.reason = reason
        self.notes = notes
        self.state: State = SelectingRemoved()

    @property
    def is_finished(self) -> bool:
        return isinstance(self.state, TERMINAL_STATES)

    @property
    def can_calculate(self) -> bool:
        state = self.state
        return (
            isinstance(state, SelectingLocation)
            and bool(state.draft.location_id)
            and state.draft.removal.is_runnable
        )

    def dispatch(self, event: Event) -> State:
        previous = self.state
        self.state = transition(previous, event)
        if type(self.state) is not type(previous):
            logger.info(
                "Workflow %s -> %s (%s)",
                type(previous).__name__,
                type(self.state).__name__,
                type(event).__name__,
            )
        return self.state

    def calculate(self, abort: threading.Event | None = None) -> SuggestionResult:
        """Run the bundle engine and move to ReviewingSuggestions.

        Raises:
            InvalidTransition: If no location is chosen or nothing was removed.
            CalculationAborted: If abort was set; the workflow returns to
                                SelectingLocation.
        """
        state = self.dispatch(StartCalculation())
        try:
            result = self.pipeline.suggest(
                state.draft.removal, state.draft.available, abort=abort
            )
        except CalculationAborted:
            self.dispatch(CalculationCancelled())
            raise
        self.dispatch(SuggestionsReady(result))
        return result

    def manual_builder(self) -> ManualBundleBuilder:
        """A builder pre-set with the current target and removed affinity."""
        state = self.state
        if not isinstance(state, ReviewingSuggestions):
            raise InvalidTransition(
                f"Manual bundles are built while reviewing suggestions, not in {type(state).__name__}"
            )
        removal = state.draft.removal
        return ManualBundleBuilder(
            target=state.result.target,
            category=removal.primary_category,
            subtype=removal.primary_subtype,
        )

    def _build_record(self, state: ConfirmingExchange, defer: bool) -> ExchangeRecord:
        now = datetime.now()
        return ExchangeRecord(
            location_id=state.draft.location_id or "",
            operator_id=self.operator_id,
            removed=[item for item in state.draft.removed if item.quantity > 0],
            replacement=list(state.bundle.items),
            total_value=state.bundle.total_value,
            status=ExchangeStatus.PENDING if defer else ExchangeStatus.FULFILLED,
            reason=self.reason,
            notes=self.notes,
            created_at=now,
            fulfilled_at=None if defer else now,
        )

    def commit(self, defer: bool = False) -> ExchangeRecord:
        """Persist the confirmed exchange.

        Args:
            defer: False creates a Fulfilled record ("confirm now"),
                   True a Pending one ("defer").

        Returns:
            The stored record, with its id.

        Raises:
            InvalidTransition: Outside ConfirmingExchange.
            PersistenceFailure: Record creation failed; the workflow stays in
                                ConfirmingExchange with the error set.
        """
        state = self.state
        if not isinstance(state, ConfirmingExchange):
            raise InvalidTransition(
                f"commit not allowed in {type(state).__name__}"
            )

        record = self._build_record(state, defer)
        try:
            record_id = self.records.create(record)
        except PersistenceFailure as e:
            logger.error("Exchange record creation failed: %s", e)
            self.dispatch(CommitFailed(str(e)))
            raise
        record = record.model_copy(update={"id": record_id})

        try:
            self.locations.record_visit(record.location_id, self.operator_id)
        except PersistenceFailure as e:
            # The record is already stored; only frequency tracking is lost
            logger.warning(
                "Visit tracking failed for location %s (record %s): %s",
                record.location_id, record_id, e,
            )

        self.dispatch(CommitSucceeded(record))
        logger.info(
            "Exchange %s stored as %s at location %s (%d replacement items, %.2f)",
            record_id,
            record.status.value,
            record.location_id,
            len(record.replacement),
            record.total_value,
        )
        return record
