# /agrichat/conversation/machine.py

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from agrichat.models.inbound import EventKind
from agrichat.models.session import Flow

# The transition table. Flow modules register handlers with the decorators
# below; the engine only ever looks handlers up here, so every
# (state, event kind) pair can be tested on its own.

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None]]


class Machine:
    def __init__(self):
        self._steps: Dict[Tuple[Flow, EventKind], Handler] = {}
        self._choices: Dict[str, Handler] = {}
        self._choice_prefixes: List[Tuple[str, Handler]] = []
        self._prompts: Dict[Flow, Handler] = {}
        self._commands: Dict[str, Handler] = {}
        self._command_prefixes: List[Tuple[str, Handler]] = []
        self._finishers: Dict[str, Handler] = {}

    # ---------------- Registration ---------------- #

    def on(self, *flows: Flow, kind: EventKind = EventKind.TEXT):
        def decorator(func: Handler) -> Handler:
            for flow in flows:
                key = (flow, kind)
                if key in self._steps:
                    raise ValueError(f"Duplicate handler for {flow.value}/{kind.value}")
                self._steps[key] = func
            return func
        return decorator

    def choice(self, *choice_ids: str):
        def decorator(func: Handler) -> Handler:
            for choice_id in choice_ids:
                self._choices[choice_id] = func
            return func
        return decorator

    def choice_prefix(self, prefix: str):
        """Handlers registered by prefix receive the remainder of the id as `suffix`."""
        def decorator(func: Handler) -> Handler:
            self._choice_prefixes.append((prefix, func))
            self._choice_prefixes.sort(key=lambda item: len(item[0]), reverse=True)
            return func
        return decorator

    def prompt(self, *flows: Flow):
        def decorator(func: Handler) -> Handler:
            for flow in flows:
                self._prompts[flow] = func
            return func
        return decorator

    def command(self, *words: str, prefix: bool = False):
        def decorator(func: Handler) -> Handler:
            for word in words:
                if prefix:
                    self._command_prefixes.append((word, func))
                else:
                    self._commands[word] = func
            return func
        return decorator

    def finisher(self, name: str):
        def decorator(func: Handler) -> Handler:
            self._finishers[name] = func
            return func
        return decorator

    # ---------------- Lookup ---------------- #

    def step_handler(self, flow: Flow, kind: EventKind) -> Optional[Handler]:
        return self._steps.get((flow, kind))

    def choice_handler(self, choice_id: str) -> Tuple[Optional[Handler], Optional[str]]:
        """Exact ids win over prefixes; longer prefixes win over shorter ones."""
        if choice_id in self._choices:
            return self._choices[choice_id], None
        for prefix, func in self._choice_prefixes:
            if choice_id.startswith(prefix):
                return func, choice_id[len(prefix):]
        return None, None

    def prompt_handler(self, flow: Flow) -> Optional[Handler]:
        return self._prompts.get(flow)

    def command_handler(self, lower_text: str) -> Optional[Handler]:
        if lower_text in self._commands:
            return self._commands[lower_text]
        for word, func in self._command_prefixes:
            if lower_text.startswith(word):
                return func
        return None

    def finisher_for(self, name: str) -> Handler:
        return self._finishers[name]

    def expects(self, flow: Flow, kind: EventKind) -> bool:
        return (flow, kind) in self._steps


# Globally accessible instance
machine = Machine()
