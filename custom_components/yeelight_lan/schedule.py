"""Time-window schedule evaluation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from .models import ScheduleRule

_LOGGER = logging.getLogger(__name__)


class TriggerReason(StrEnum):
    """Why a profile-apply event was raised."""

    ACTIVATED = "activated"
    START_TIME = "start_time"


@dataclass(frozen=True)
class ScheduleEvent:
    """Request to apply the profile of a rule."""

    rule: ScheduleRule
    reason: TriggerReason

    @property
    def profile_id(self) -> str:
        """Return the profile to apply."""
        return self.rule.profile_id


ScheduleListener = Callable[[ScheduleEvent], None]


class ScheduleEngine:
    """Decide once per tick which rule is active and signal transitions.

    The engine keeps a pointer to the active rule. A tick that moves the
    pointer to a different rule raises one ACTIVATED event. Independently,
    every enabled rule whose start minute is the current minute raises a
    START_TIME event, so both can fire for the same rule in one tick.
    """

    def __init__(self, rules: Iterable[ScheduleRule] = ()) -> None:
        """Initialize the engine."""
        self._rules: list[ScheduleRule] = list(rules)
        self._active: ScheduleRule | None = None
        self._listeners: list[ScheduleListener] = []

    @property
    def rules(self) -> list[ScheduleRule]:
        """Return the rules in evaluation order."""
        return list(self._rules)

    @property
    def active(self) -> ScheduleRule | None:
        """Return the rule selected by the last evaluation."""
        return self._active

    def add_listener(self, listener: ScheduleListener) -> Callable[[], None]:
        """Subscribe to events; returns a callable that unsubscribes."""
        self._listeners.append(listener)

        def remove_listener() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove_listener

    def set_rules(self, rules: Iterable[ScheduleRule], now: datetime | None = None) -> None:
        """Replace the rules and re-evaluate the pointer without raising events."""
        self._rules = list(rules)
        self._active = self.active_rule(now or datetime.now())

    def get_rule(self, rule_id: str) -> ScheduleRule | None:
        """Return the rule with rule_id."""
        return next((rule for rule in self._rules if rule.id == rule_id), None)

    def enabled_rules(self) -> list[ScheduleRule]:
        """Return only enabled rules."""
        return [rule for rule in self._rules if rule.enabled]

    def active_rule(self, now: datetime) -> ScheduleRule | None:
        """Return the rule active at now.

        When enabled windows overlap the first rule in list order wins.
        """
        return next((rule for rule in self._rules if rule.is_active(now)), None)

    def tick(self, now: datetime | None = None) -> list[ScheduleEvent]:
        """Evaluate all rules at now and notify listeners of any events."""
        now = now or datetime.now()
        previous = self._active
        self._active = self.active_rule(now)

        events: list[ScheduleEvent] = []
        if self._active is not None and (previous is None or previous.id != self._active.id):
            _LOGGER.debug("Schedule %s became active", self._active.name)
            events.append(ScheduleEvent(self._active, TriggerReason.ACTIVATED))
        elif self._active is None and previous is not None:
            _LOGGER.debug("Schedule %s is no longer active", previous.name)

        for rule in self._rules:
            if rule.should_trigger(now):
                _LOGGER.debug("Schedule %s reached its start time", rule.name)
                events.append(ScheduleEvent(rule, TriggerReason.START_TIME))

        for event in events:
            for listener in list(self._listeners):
                listener(event)
        return events

    def next_trigger(self, rule: ScheduleRule, now: datetime | None = None) -> datetime | None:
        """Return the next start of rule strictly after now."""
        return rule.next_trigger(now or datetime.now())

    def next_schedule(self, now: datetime | None = None) -> tuple[ScheduleRule, datetime] | None:
        """Return the rule that starts soonest, with its start time."""
        now = now or datetime.now()
        upcoming = [
            (rule, trigger)
            for rule in self._rules
            if (trigger := rule.next_trigger(now)) is not None
        ]
        if not upcoming:
            return None
        return min(upcoming, key=lambda item: item[1])
