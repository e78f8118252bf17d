"""
Queue model for the player.

Pure, synchronous queue arithmetic: track ordering, shuffle with a restorable
original order, repeat modes and queue edits. No I/O; the session controller
owns the queue and turns its answers into device commands.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .song import Song

logger = logging.getLogger(__name__)

# Position above which "previous" restarts the current track (milliseconds)
DEFAULT_RESTART_THRESHOLD_MS = 3000


class RepeatMode(Enum):
    """Queue repeat modes."""

    OFF = "off"  # Stop after last track
    ALL = "all"  # Loop entire queue
    ONE = "one"  # Repeat current track

    def next(self) -> "RepeatMode":
        """The mode that follows this one in the off -> all -> one cycle."""
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class StepAction(Enum):
    """What the caller should do with a navigation result."""

    PLAY = "play"  # Load the song at the returned index
    REPLAY = "replay"  # Repeat-one: play the current song again
    RESTART = "restart"  # Seek the current song back to 0
    EXHAUSTED = "exhausted"  # End of queue, stop playback
    NONE = "none"  # Empty queue, nothing to do


@dataclass(frozen=True)
class QueueStep:
    """Result of advance/retreat."""

    action: StepAction
    index: Optional[int] = None
    song: Optional[Song] = None


NOTHING = QueueStep(StepAction.NONE)


@dataclass(frozen=True)
class QueueItem:
    """
    One entry in the queue.

    ``item_id`` is unique within the queue, so the same song queued twice
    is still two distinguishable entries.
    """

    item_id: int
    song: Song


@dataclass(frozen=True)
class QueueState:
    """Snapshot of queue state for reporting."""

    track_count: int
    current_index: Optional[int]
    current_item_id: Optional[int]
    shuffle_enabled: bool
    repeat_mode: RepeatMode


class SongQueue:
    """
    Ordered song queue with a current-position pointer.

    Keeps two views: the active order (what plays, possibly shuffled) and
    the original order, retained while shuffled so shuffle can be turned
    off without losing the pre-shuffle sequence.

    Invariant: ``current_index`` is a valid index, or None when empty.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        """Initialize empty queue."""
        self._items: list[QueueItem] = []
        self._original: list[QueueItem] = []
        self._current_index: Optional[int] = None

        self._shuffle_enabled: bool = False
        self._repeat_mode: RepeatMode = RepeatMode.OFF

        self._next_item_id: int = 1
        self._random = rng or random.Random()

    # =========================================================================
    # Queue Management
    # =========================================================================

    def set_queue(self, songs: list[Song], start_index: int = 0) -> Optional[Song]:
        """
        Replace the queue.

        Args:
            songs: New queue in original order
            start_index: Entry to make current, clamped to the queue

        Returns:
            The current song, or None if the queue is empty
        """
        items = [self._new_item(song) for song in songs]
        self._original = list(items)
        self._items = items

        if not items:
            self._current_index = None
            logger.info("Queue cleared (empty queue set)")
            return None

        self._current_index = max(0, min(start_index, len(items) - 1))
        if self._shuffle_enabled:
            self._shuffle_around_current()

        logger.info(f"Loaded queue: {len(items)} songs, current index {self._current_index}")
        return self.current_song

    def move_to(self, index: int) -> Optional[Song]:
        """Point the queue at ``index``. Returns the song there, None if invalid."""
        if not 0 <= index < len(self._items):
            logger.warning(f"Queue index {index} out of range ({len(self._items)} songs)")
            return None
        self._current_index = index
        return self._items[index].song

    def _new_item(self, song: Song) -> QueueItem:
        item = QueueItem(item_id=self._next_item_id, song=song)
        self._next_item_id += 1
        return item

    # =========================================================================
    # Navigation
    # =========================================================================

    def advance(self) -> QueueStep:
        """
        Work out the next entry respecting repeat mode.

        Does not move the pointer; callers commit with ``move_to``.
        """
        if self._current_index is None:
            return NOTHING

        current = self._current_index
        if self._repeat_mode == RepeatMode.ONE:
            return QueueStep(StepAction.REPLAY, current, self._items[current].song)

        next_index = current + 1
        if next_index >= len(self._items):
            if self._repeat_mode != RepeatMode.ALL:
                logger.info("End of queue reached")
                return QueueStep(StepAction.EXHAUSTED, current, self._items[current].song)
            next_index = 0
            logger.info("Queue wrapped to beginning (repeat all)")

        return QueueStep(StepAction.PLAY, next_index, self._items[next_index].song)

    def retreat(
        self,
        position_ms: int,
        restart_threshold_ms: int = DEFAULT_RESTART_THRESHOLD_MS,
    ) -> QueueStep:
        """
        Work out the previous entry.

        Past ``restart_threshold_ms`` into the track the answer is to restart
        it; otherwise the previous entry, wrapping from the first to the last.
        """
        if self._current_index is None:
            return NOTHING

        current = self._current_index
        if position_ms > restart_threshold_ms:
            return QueueStep(StepAction.RESTART, current, self._items[current].song)

        previous = current - 1 if current > 0 else len(self._items) - 1
        return QueueStep(StepAction.PLAY, previous, self._items[previous].song)

    # =========================================================================
    # Shuffle Mode
    # =========================================================================

    def shuffle_on(self) -> Optional[Song]:
        """
        Enable shuffle.

        Snapshots the original order, then puts the current entry first
        followed by a Fisher-Yates shuffle of every other entry.
        """
        if self._shuffle_enabled:
            return self.current_song

        self._shuffle_enabled = True
        if self._current_index is None:
            return None

        self._original = list(self._items)
        self._shuffle_around_current()
        logger.info("Shuffle enabled")
        return self.current_song

    def shuffle_off(self) -> Optional[Song]:
        """Disable shuffle, restoring the original order around the current entry."""
        if not self._shuffle_enabled:
            return self.current_song

        self._shuffle_enabled = False
        if self._current_index is None:
            self._original = []
            return None

        current_id = self._items[self._current_index].item_id
        self._items = list(self._original)
        self._current_index = next(
            (i for i, item in enumerate(self._items) if item.item_id == current_id),
            0,
        )
        logger.info(f"Shuffle disabled, current index {self._current_index}")
        return self.current_song

    def shuffle_upcoming(self) -> bool:
        """Shuffle only the entries after the current one."""
        if self._current_index is None:
            return False

        head = self._items[: self._current_index + 1]
        upcoming = self._items[self._current_index + 1 :]
        self._random.shuffle(upcoming)
        self._items = head + upcoming
        self._sync_original()
        return True

    def _shuffle_around_current(self) -> None:
        """Current entry first, the rest shuffled; pointer to 0."""
        assert self._current_index is not None
        current = self._items[self._current_index]
        rest = [item for i, item in enumerate(self._items) if i != self._current_index]
        self._random.shuffle(rest)
        self._items = [current] + rest
        self._current_index = 0

    def _sync_original(self) -> None:
        """Outside shuffle, the original order is the active order."""
        if not self._shuffle_enabled:
            self._original = list(self._items)

    def _original_position(self, item_id: int) -> Optional[int]:
        for i, item in enumerate(self._original):
            if item.item_id == item_id:
                return i
        return None

    # =========================================================================
    # Queue Edits
    # =========================================================================

    def insert_after_current(self, song: Song) -> Optional[int]:
        """
        Insert ``song`` right after the current entry (play next).

        Returns:
            Index of the new entry, or None if the queue is empty
        """
        if self._current_index is None:
            return None

        item = self._new_item(song)
        position = self._current_index + 1
        current_id = self._items[self._current_index].item_id
        self._items.insert(position, item)

        if self._shuffle_enabled:
            original_position = self._original_position(current_id)
            if original_position is None:
                self._original.append(item)
            else:
                self._original.insert(original_position + 1, item)
        else:
            self._sync_original()

        logger.debug(f"Inserted {song.id} at {position}")
        return position

    def append(self, song: Song) -> Optional[int]:
        """
        Add ``song`` to the end of the queue.

        Returns:
            Index of the new entry, or None if the queue is empty
        """
        if self._current_index is None:
            return None

        item = self._new_item(song)
        self._items.append(item)
        if self._shuffle_enabled:
            self._original.append(item)
        else:
            self._sync_original()

        logger.debug(f"Appended {song.id} at {len(self._items) - 1}")
        return len(self._items) - 1

    def remove_at(self, index: int) -> Optional[Song]:
        """
        Remove the entry at ``index``.

        The pointer keeps referring to the same entry; if the current entry
        itself is removed it moves onto the entry that followed it.
        """
        if not 0 <= index < len(self._items):
            return None

        removed = self._items.pop(index)
        if self._shuffle_enabled:
            self._original = [item for item in self._original if item.item_id != removed.item_id]
        else:
            self._sync_original()

        assert self._current_index is not None
        if not self._items:
            self._current_index = None
        elif index < self._current_index:
            self._current_index -= 1
        elif self._current_index >= len(self._items):
            self._current_index = len(self._items) - 1

        logger.debug(f"Removed {removed.song.id} from {index}, current index {self._current_index}")
        return removed.song

    def truncate_to_current(self) -> Optional[Song]:
        """Collapse the queue to just the current entry."""
        if self._current_index is None:
            return None

        current = self._items[self._current_index]
        self._items = [current]
        self._original = [current]
        self._current_index = 0
        logger.info("Queue cleared down to current song")
        return current.song

    # =========================================================================
    # Repeat Mode
    # =========================================================================

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat_mode

    @repeat_mode.setter
    def repeat_mode(self, mode: RepeatMode) -> None:
        self._repeat_mode = mode
        logger.info(f"Repeat mode: {mode.value}")

    def cycle_repeat(self) -> RepeatMode:
        """Advance repeat mode off -> all -> one -> off."""
        self.repeat_mode = self._repeat_mode.next()
        return self._repeat_mode

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def shuffle_enabled(self) -> bool:
        return self._shuffle_enabled

    @property
    def current_index(self) -> Optional[int]:
        return self._current_index

    @property
    def current_item(self) -> Optional[QueueItem]:
        if self._current_index is None:
            return None
        return self._items[self._current_index]

    @property
    def current_song(self) -> Optional[Song]:
        item = self.current_item
        return item.song if item else None

    @property
    def items(self) -> list[QueueItem]:
        """Entries in active order."""
        return list(self._items)

    @property
    def songs(self) -> list[Song]:
        """Songs in active order."""
        return [item.song for item in self._items]

    @property
    def original_songs(self) -> list[Song]:
        """Songs in original (pre-shuffle) order."""
        return [item.song for item in self._original]

    @property
    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)

    def get_state(self) -> QueueState:
        """Get current queue state snapshot."""
        current = self.current_item
        return QueueState(
            track_count=len(self._items),
            current_index=self._current_index,
            current_item_id=current.item_id if current else None,
            shuffle_enabled=self._shuffle_enabled,
            repeat_mode=self._repeat_mode,
        )
