# events.py
# Append-only structured event log for a generation run.
#
# Purely observational: the cycle writes here, nothing reads it back to make
# decisions. Each entry is mirrored to the terminal via display.py unless the
# log was created quiet.

from collections.abc import Callable, Iterator

from dataset_studio import display
from dataset_studio.models import LogMessage, LogType

# Signature shared by every component that emits events: (source, content, type).
LogFunction = Callable[[str, str, LogType], None]


class EventLog:
    def __init__(self, echo: bool = True) -> None:
        self._entries: list[LogMessage] = []
        self._echo = echo

    def add(self, source: str, content: str, type: LogType = LogType.INFO) -> LogMessage:
        entry = LogMessage(source=source, content=content, type=LogType(type))
        self._entries.append(entry)
        if self._echo:
            display.log_event(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def of_type(self, type: LogType) -> list[LogMessage]:
        return [entry for entry in self._entries if entry.type == type]

    @property
    def entries(self) -> list[LogMessage]:
        """Shallow copy in emission order."""
        return list(self._entries)

    def __iter__(self) -> Iterator[LogMessage]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self._entries)
