"""Tests for queue management."""

import random

import pytest

from mavrixfy.playback.queue import (
    QueueItem,
    QueueStep,
    RepeatMode,
    SongQueue,
    StepAction,
)


def ids(songs) -> list[str]:
    return [song.id for song in songs]


class TestRepeatMode:
    """Tests for RepeatMode enum."""

    def test_cycle_order(self) -> None:
        """Test off -> all -> one -> off."""
        assert RepeatMode.OFF.next() == RepeatMode.ALL
        assert RepeatMode.ALL.next() == RepeatMode.ONE
        assert RepeatMode.ONE.next() == RepeatMode.OFF

    def test_values(self) -> None:
        assert RepeatMode("off") == RepeatMode.OFF
        assert RepeatMode("all") == RepeatMode.ALL
        assert RepeatMode("one") == RepeatMode.ONE


class TestQueueItem:
    """Tests for QueueItem."""

    def test_duplicate_songs_are_distinct_items(self, make_song) -> None:
        """Test the same song queued twice gets two item ids."""
        queue = SongQueue()
        song = make_song("a")
        queue.set_queue([song, song])
        items = queue.items
        assert items[0].song == items[1].song
        assert items[0].item_id != items[1].item_id

    def test_frozen(self, make_song) -> None:
        item = QueueItem(item_id=1, song=make_song("a"))
        with pytest.raises(AttributeError):
            item.item_id = 2  # type: ignore[misc]


class TestSetQueue:
    """Tests for replacing the queue."""

    @pytest.fixture
    def queue(self) -> SongQueue:
        return SongQueue(rng=random.Random(7))

    def test_set_queue(self, queue, songs) -> None:
        current = queue.set_queue(songs, 2)
        assert current == songs[2]
        assert queue.current_index == 2
        assert ids(queue.songs) == ["s1", "s2", "s3", "s4", "s5"]
        assert ids(queue.original_songs) == ids(queue.songs)

    def test_start_index_clamped(self, queue, songs) -> None:
        queue.set_queue(songs, 99)
        assert queue.current_index == 4
        queue.set_queue(songs, -3)
        assert queue.current_index == 0

    def test_empty_queue(self, queue) -> None:
        assert queue.set_queue([]) is None
        assert queue.current_index is None
        assert queue.current_song is None
        assert queue.is_empty

    def test_set_queue_while_shuffled(self, queue, songs) -> None:
        """Test a new queue is shuffled around its start song."""
        queue.shuffle_on()
        queue.set_queue(songs, 3)
        assert queue.current_index == 0
        assert queue.current_song == songs[3]
        assert sorted(ids(queue.songs)) == sorted(ids(songs))
        assert ids(queue.original_songs) == ids(songs)

    def test_move_to(self, queue, songs) -> None:
        queue.set_queue(songs)
        assert queue.move_to(3) == songs[3]
        assert queue.current_index == 3

    def test_move_to_out_of_range(self, queue, songs) -> None:
        queue.set_queue(songs, 1)
        assert queue.move_to(5) is None
        assert queue.move_to(-1) is None
        assert queue.current_index == 1


class TestAdvance:
    """Tests for advancing through the queue."""

    @pytest.fixture
    def queue(self, songs) -> SongQueue:
        queue = SongQueue()
        queue.set_queue(songs[:3])
        return queue

    def test_advance_plays_next(self, queue) -> None:
        step = queue.advance()
        assert step.action == StepAction.PLAY
        assert step.index == 1
        assert step.song.id == "s2"

    def test_advance_does_not_move_pointer(self, queue) -> None:
        queue.advance()
        assert queue.current_index == 0

    def test_exhausted_at_end_repeat_off(self, queue) -> None:
        queue.move_to(2)
        step = queue.advance()
        assert step.action == StepAction.EXHAUSTED
        assert step.index == 2

    def test_wraps_at_end_repeat_all(self, queue) -> None:
        queue.move_to(2)
        queue.repeat_mode = RepeatMode.ALL
        step = queue.advance()
        assert step.action == StepAction.PLAY
        assert step.index == 0
        assert step.song.id == "s1"

    def test_repeat_one_replays_current(self, queue) -> None:
        queue.move_to(1)
        queue.repeat_mode = RepeatMode.ONE
        step = queue.advance()
        assert step == QueueStep(StepAction.REPLAY, 1, queue.current_song)

    def test_empty_queue(self) -> None:
        assert SongQueue().advance().action == StepAction.NONE


class TestRetreat:
    """Tests for going back in the queue."""

    @pytest.fixture
    def queue(self, songs) -> SongQueue:
        queue = SongQueue()
        queue.set_queue(songs[:3], 1)
        return queue

    def test_restart_past_threshold(self, queue) -> None:
        step = queue.retreat(position_ms=3001, restart_threshold_ms=3000)
        assert step.action == StepAction.RESTART
        assert step.index == 1

    def test_previous_at_threshold(self, queue) -> None:
        """Test exactly at the threshold goes to the previous entry."""
        step = queue.retreat(position_ms=3000, restart_threshold_ms=3000)
        assert step.action == StepAction.PLAY
        assert step.index == 0

    def test_wraps_from_first_to_last(self, queue) -> None:
        queue.move_to(0)
        step = queue.retreat(position_ms=0)
        assert step.action == StepAction.PLAY
        assert step.index == 2
        assert step.song.id == "s3"

    def test_empty_queue(self) -> None:
        assert SongQueue().retreat(0).action == StepAction.NONE


class TestShuffle:
    """Tests for shuffle mode."""

    @pytest.fixture
    def queue(self, songs) -> SongQueue:
        queue = SongQueue(rng=random.Random(1234))
        queue.set_queue(songs, 2)
        return queue

    def test_shuffle_on_puts_current_first(self, queue, songs) -> None:
        current = queue.shuffle_on()
        assert current == songs[2]
        assert queue.shuffle_enabled is True
        assert queue.current_index == 0
        assert queue.songs[0] == songs[2]
        assert sorted(ids(queue.songs)) == sorted(ids(songs))

    def test_shuffle_keeps_original(self, queue, songs) -> None:
        queue.shuffle_on()
        assert ids(queue.original_songs) == ids(songs)

    def test_shuffle_off_restores_order(self, queue, songs) -> None:
        queue.shuffle_on()
        queue.move_to(3)
        playing = queue.current_song
        queue.shuffle_off()
        assert queue.shuffle_enabled is False
        assert ids(queue.songs) == ids(songs)
        assert queue.current_song == playing
        assert queue.current_index == ids(songs).index(playing.id)

    def test_shuffle_off_relocates_duplicate_by_item(self, make_song) -> None:
        """Test the exact entry is found again when a song appears twice."""
        a, b = make_song("a"), make_song("b")
        queue = SongQueue(rng=random.Random(3))
        queue.set_queue([a, b, a], 2)
        queue.shuffle_on()
        queue.shuffle_off()
        assert queue.current_index == 2

    def test_shuffle_on_twice_is_noop(self, queue) -> None:
        queue.shuffle_on()
        order = ids(queue.songs)
        queue.shuffle_on()
        assert ids(queue.songs) == order

    def test_shuffle_deterministic_with_seeded_rng(self, songs) -> None:
        q1 = SongQueue(rng=random.Random(99))
        q2 = SongQueue(rng=random.Random(99))
        q1.set_queue(songs)
        q2.set_queue(songs)
        q1.shuffle_on()
        q2.shuffle_on()
        assert ids(q1.songs) == ids(q2.songs)

    def test_shuffle_on_empty_queue(self) -> None:
        queue = SongQueue()
        assert queue.shuffle_on() is None
        assert queue.shuffle_enabled is True

    def test_shuffle_upcoming(self, queue, songs) -> None:
        assert queue.shuffle_upcoming() is True
        assert ids(queue.songs[:3]) == ["s1", "s2", "s3"]
        assert sorted(ids(queue.songs[3:])) == ["s4", "s5"]
        assert queue.current_index == 2
        assert ids(queue.original_songs) == ids(queue.songs)

    def test_shuffle_upcoming_empty(self) -> None:
        assert SongQueue().shuffle_upcoming() is False


class TestQueueEdits:
    """Tests for insert, append, remove and truncate."""

    @pytest.fixture
    def queue(self, songs) -> SongQueue:
        queue = SongQueue(rng=random.Random(5))
        queue.set_queue(songs[:3], 1)
        return queue

    def test_insert_after_current(self, queue, make_song) -> None:
        index = queue.insert_after_current(make_song("x"))
        assert index == 2
        assert ids(queue.songs) == ["s1", "s2", "x", "s3"]
        assert queue.current_index == 1
        assert queue.advance().song.id == "x"

    def test_append(self, queue, make_song) -> None:
        index = queue.append(make_song("x"))
        assert index == 3
        assert ids(queue.songs) == ["s1", "s2", "s3", "x"]
        assert ids(queue.original_songs) == ids(queue.songs)

    def test_edits_on_empty_queue_are_noops(self, make_song) -> None:
        queue = SongQueue()
        assert queue.insert_after_current(make_song("x")) is None
        assert queue.append(make_song("x")) is None
        assert queue.remove_at(0) is None
        assert queue.truncate_to_current() is None
        assert queue.is_empty

    def test_remove_before_current(self, queue) -> None:
        removed = queue.remove_at(0)
        assert removed.id == "s1"
        assert queue.current_index == 0
        assert queue.current_song.id == "s2"

    def test_remove_after_current(self, queue) -> None:
        queue.remove_at(2)
        assert queue.current_index == 1
        assert queue.current_song.id == "s2"

    def test_remove_current_moves_to_following(self, queue) -> None:
        queue.remove_at(1)
        assert queue.current_index == 1
        assert queue.current_song.id == "s3"

    def test_remove_current_last_entry(self, queue) -> None:
        queue.move_to(2)
        queue.remove_at(2)
        assert queue.current_index == 1

    def test_remove_only_entry(self, make_song) -> None:
        queue = SongQueue()
        queue.set_queue([make_song("a")])
        queue.remove_at(0)
        assert queue.current_index is None
        assert queue.is_empty

    def test_remove_out_of_range(self, queue) -> None:
        assert queue.remove_at(3) is None
        assert len(queue) == 3

    def test_truncate_to_current(self, queue) -> None:
        current = queue.truncate_to_current()
        assert current.id == "s2"
        assert ids(queue.songs) == ["s2"]
        assert ids(queue.original_songs) == ["s2"]
        assert queue.current_index == 0

    def test_edits_while_shuffled_update_original(self, queue, make_song) -> None:
        queue.shuffle_on()
        queue.insert_after_current(make_song("next"))
        queue.append(make_song("last"))
        original = ids(queue.original_songs)
        assert original.index("next") == original.index("s2") + 1
        assert original[-1] == "last"

        queue.remove_at(queue.current_index + 1)
        assert "next" not in ids(queue.original_songs)

        queue.shuffle_off()
        assert ids(queue.songs) == ["s1", "s2", "s3", "last"]


class TestRepeatAndState:
    """Tests for repeat cycling and state snapshots."""

    def test_cycle_repeat(self) -> None:
        queue = SongQueue()
        assert queue.repeat_mode == RepeatMode.OFF
        assert queue.cycle_repeat() == RepeatMode.ALL
        assert queue.cycle_repeat() == RepeatMode.ONE
        assert queue.cycle_repeat() == RepeatMode.OFF

    def test_get_state(self, songs) -> None:
        queue = SongQueue()
        queue.set_queue(songs, 1)
        queue.repeat_mode = RepeatMode.ALL
        state = queue.get_state()
        assert state.track_count == 5
        assert state.current_index == 1
        assert state.current_item_id == queue.items[1].item_id
        assert state.shuffle_enabled is False
        assert state.repeat_mode == RepeatMode.ALL

    def test_get_state_empty(self) -> None:
        state = SongQueue().get_state()
        assert state.track_count == 0
        assert state.current_index is None
        assert state.current_item_id is None


class TestQueueIntegrity:
    """Tests for the current entry across mixed edit sequences."""

    @pytest.mark.parametrize("seed", range(25))
    def test_current_entry_survives_edits(self, seed, songs, make_song) -> None:
        rng = random.Random(seed)
        queue = SongQueue(rng=random.Random(seed))
        queue.set_queue(songs, rng.randrange(len(songs)))
        extra = 0

        for _ in range(40):
            if queue.is_empty:
                queue.set_queue(songs, rng.randrange(len(songs)))
            before = queue.current_item
            assert before is not None
            removed_current = False

            op = rng.choice(["insert", "append", "remove", "shuffle", "upcoming"])
            if op == "insert":
                extra += 1
                queue.insert_after_current(make_song(f"x{extra}"))
            elif op == "append":
                extra += 1
                queue.append(make_song(f"x{extra}"))
            elif op == "remove":
                index = rng.randrange(len(queue))
                removed_current = index == queue.current_index
                queue.remove_at(index)
            elif op == "shuffle":
                if queue.shuffle_enabled:
                    queue.shuffle_off()
                else:
                    queue.shuffle_on()
            else:
                queue.shuffle_upcoming()

            if queue.is_empty:
                assert queue.current_index is None
                continue

            assert 0 <= queue.current_index < len(queue)
            if not removed_current:
                assert queue.current_item.item_id == before.item_id
            assert sorted(i.item_id for i in queue.items) == sorted(
                i.item_id for i in queue._original
            )
