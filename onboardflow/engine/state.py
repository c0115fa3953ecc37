"""
State Management for the Workflow Engine.

The state container is an ordered mapping of named fields plus an
append-only event log. Every field is declared as a channel with a merge
rule ("reducer"); steps return partial deltas that are merged into the
container using those rules. State is immutable - merging returns a new
container.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional
from dataclasses import dataclass
from enum import Enum
from copy import deepcopy

from pydantic import BaseModel, Field


# Delta key holding events to append to the log
EVENTS = "events"


class Reducer(str, Enum):
    """Merge rules for state fields."""
    REPLACE = "replace"      # Take the incoming value when the delta sets the key
    APPEND = "append"        # Concatenate lists
    MAX = "max"              # Keep the larger number
    INCREMENT = "increment"  # Add the incoming number to the existing one


@dataclass(frozen=True)
class Channel:
    """
    Declaration of a single state field.

    Attributes:
        name: Field name
        reducer: Merge rule applied when a delta sets this field
        default: Value for a freshly created thread
        private: Private fields are never exposed to external clients
        preempts: Input setting this field restarts a suspended thread at the
            graph's entry point instead of its suspended step
        description: Human-readable description
    """

    name: str
    reducer: Reducer = Reducer.REPLACE
    default: Any = None
    private: bool = False
    preempts: bool = False
    description: str = ""

    def initial(self) -> Any:
        return deepcopy(self.default)

    def merge(self, current: Any, incoming: Any) -> Any:
        if self.reducer == Reducer.REPLACE:
            return deepcopy(incoming)
        if self.reducer == Reducer.APPEND:
            if incoming is None:
                return current
            items = incoming if isinstance(incoming, list) else [incoming]
            return list(current or []) + deepcopy(items)
        if self.reducer == Reducer.MAX:
            if incoming is None:
                return current
            if current is None:
                return incoming
            return max(current, incoming)
        if self.reducer == Reducer.INCREMENT:
            if incoming is None:
                return current
            return (current or 0) + incoming
        raise ValueError(f"Unknown reducer: {self.reducer}")


class StateSchema:
    """
    The set of channels making up a workflow's state.

    Fields that are not declared merge with REPLACE semantics, so ad-hoc
    keys behave like "replace if set, else keep".
    """

    def __init__(self, channels: Iterable[Channel] = ()):
        self.channels: Dict[str, Channel] = {}
        for channel in channels:
            self.add(channel)

    def add(self, channel: Channel) -> "StateSchema":
        if channel.name == EVENTS:
            raise ValueError(f"'{EVENTS}' is reserved for the event log")
        if channel.name in self.channels:
            raise ValueError(f"Channel '{channel.name}' already declared")
        self.channels[channel.name] = channel
        return self

    def channel(self, name: str) -> Channel:
        return self.channels.get(name) or Channel(name=name)

    def initial_data(self) -> Dict[str, Any]:
        """Default field values for a new thread."""
        return {name: channel.initial() for name, channel in self.channels.items()}

    def is_private(self, name: str) -> bool:
        channel = self.channels.get(name)
        return bool(channel and channel.private)

    def preempting_fields(self, delta: Optional[Mapping[str, Any]]) -> List[str]:
        """Preempting fields that ``delta`` sets to a value."""
        if not delta:
            return []
        return [
            key for key, value in delta.items()
            if value is not None and key in self.channels and self.channels[key].preempts
        ]

    def public_view(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Project state data onto its public fields."""
        return {k: deepcopy(v) for k, v in data.items() if not self.is_private(k)}


class WorkflowState(BaseModel):
    """
    The shared state that flows through the workflow.

    Attributes:
        data: Named fields, merged per channel reducer
        events: Append-only event log, in step execution order
    """

    data: Dict[str, Any] = Field(default_factory=dict)
    events: List[Dict[str, Any]] = Field(default_factory=list)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the state data."""
        return self.data.get(key, default)

    def merge(self, delta: Optional[Mapping[str, Any]], schema: StateSchema) -> "WorkflowState":
        """
        Merge a partial update and return a new state.

        A key absent from the delta never touches the existing value; a key
        present with ``None`` is an explicit write for REPLACE channels.
        """
        if not delta:
            return self.model_copy(deep=True)

        new_data = deepcopy(self.data)
        new_events = deepcopy(self.events)

        for key, value in delta.items():
            if key == EVENTS:
                if value:
                    new_events.extend(deepcopy(list(value)))
                continue
            channel = schema.channel(key)
            new_data[key] = channel.merge(new_data.get(key), value)

        return WorkflowState(data=new_data, events=new_events)

    def to_dict(self) -> Dict[str, Any]:
        """Convert state to a plain dictionary."""
        return {"data": deepcopy(self.data), "events": deepcopy(self.events)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        """Create a WorkflowState from a dictionary."""
        if "data" in data:
            return cls(**data)
        return cls(data=data)

    @classmethod
    def initial(cls, schema: StateSchema) -> "WorkflowState":
        return cls(data=schema.initial_data())


def message_event(content: str, ui_only: bool = True, **extra: Any) -> Dict[str, Any]:
    """Build a user-facing message event for the event log."""
    event = {"type": "message", "content": content, "ui_only": ui_only}
    event.update(extra)
    return event
