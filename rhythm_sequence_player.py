# -*- coding: utf-8 -*-
########################
# rhythm_sequence_player.py
########################
# Purpose:
# - Owns the future rhythm sequence (FRS): a solved prefix and an unsolved suffix of rhythm codes.
# - Tracks the difficulty counter that sizes the next issued sequence.
# - Announces the unsolved suffix as audio cues through a polled playback state machine.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - Solved prefix length + unsolved suffix length always equals the stored sequence length.
# - Playback never blocks. Each maybe_play_sounds call emits at most one cue when it is due.
# - Issuing a new sequence cancels any in-flight playback.
# - Difficulty rises by one only when a sequence is finished with no mistake since it was issued.
#
########################
# Interfaces:
# Public exceptions:
# - SequenceConsistencyError(AssertionError)
#
# Public classes:
# - class RhythmSequencePlayer
#   - __init__(play_cue: Callable[[int], None], *, rhythm_cue_base: int = 160, max_sequence_length: int = 6,
#              playback_interval_seconds: float = 0.6, playback_lead_in_seconds: float = 0.25)
#   - set_sequence(codes: Sequence[int]) -> None
#   - has_solved_any() -> bool
#   - get_remaining_length() -> int
#   - solved_codes() -> list[int]
#   - remaining_codes() -> list[int]
#   - increment_one_rhythm_solved(code: int) -> None
#   - count_remaining_matches(fresh_codes: Sequence[int]) -> int
#   - truncate_remaining_length(length: int) -> None
#   - on_player_error() -> None
#   - get_next_sequence_length() -> int
#   - max_sequence_length() -> int
#   - shift_one(next_code: int) -> None
#   - begin_playing_sequence() -> None
#   - is_playing() -> bool
#   - maybe_play_sounds(now_seconds: float) -> Optional[int]
#   - maybe_animate_draw(now_seconds: float) -> maze_models.SequenceDisplay
#
# Inputs:
# - Code lists from MazeGrid.get_next_rhythm_codes, issued by PuzzleRoom.
# - Monotonic time in seconds from the frame loop.
#
# Outputs:
# - Cue requests via play_cue(rhythm_cue_base + code).
# - SequenceDisplay snapshots for the sequence bar renderer.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, List, Optional, Sequence

from maze_models import SequenceDisplay

logger = logging.getLogger(__name__)


class SequenceConsistencyError(AssertionError):
    pass


@dataclass
class PlaybackState:
    is_playing: bool = False
    index: int = 0
    next_due_seconds: Optional[float] = None
    last_cue_seconds: Optional[float] = None
    last_cue_index: Optional[int] = None


class RhythmSequencePlayer:
    def __init__(
        self,
        play_cue: Callable[[int], None],
        *,
        rhythm_cue_base: int = 160,
        max_sequence_length: int = 6,
        playback_interval_seconds: float = 0.6,
        playback_lead_in_seconds: float = 0.25,
    ) -> None:
        self._play_cue = play_cue
        self._rhythm_cue_base = int(rhythm_cue_base)
        self._max_sequence_length = max(1, int(max_sequence_length))
        self._playback_interval_seconds = max(0.01, float(playback_interval_seconds))
        self._playback_lead_in_seconds = max(0.0, float(playback_lead_in_seconds))

        self._codes: List[int] = []
        self._solved_count = 0
        self._next_sequence_length = 1
        self._has_error_since_issue = False
        self._playback = PlaybackState()

    # ------------------------------------------------------------------
    # Sequence state
    # ------------------------------------------------------------------

    def set_sequence(self, codes: Sequence[int]) -> None:
        self._codes = [int(code) for code in codes]
        self._solved_count = 0
        self._has_error_since_issue = False
        self._stop_playback()
        logger.info("Issued rhythm sequence of length %s (difficulty %s)", len(self._codes), self._next_sequence_length)

    def sequence_length(self) -> int:
        return len(self._codes)

    def has_solved_any(self) -> bool:
        return self._solved_count > 0

    def get_remaining_length(self) -> int:
        return len(self._codes) - self._solved_count

    def solved_codes(self) -> List[int]:
        return list(self._codes[: self._solved_count])

    def remaining_codes(self) -> List[int]:
        return list(self._codes[self._solved_count:])

    def increment_one_rhythm_solved(self, code: int) -> None:
        remaining = self.remaining_codes()
        if not remaining:
            raise SequenceConsistencyError(f"Rhythm {code} solved but the sequence has nothing left to solve")
        if remaining[0] != int(code):
            raise SequenceConsistencyError(f"Rhythm {code} solved but the sequence expected {remaining[0]}")

        self._solved_count += 1
        self._stop_playback()

        if self.get_remaining_length() == 0 and not self._has_error_since_issue:
            self._next_sequence_length = min(self._next_sequence_length + 1, self._max_sequence_length)

    def count_remaining_matches(self, fresh_codes: Sequence[int]) -> int:
        matches = 0
        for expected, fresh in zip(self.remaining_codes(), fresh_codes):
            if int(expected) != int(fresh):
                break
            matches += 1
        return matches

    def truncate_remaining_length(self, length: int) -> None:
        keep = max(0, min(int(length), self.get_remaining_length()))
        del self._codes[self._solved_count + keep:]
        if self._playback.is_playing and self._playback.index >= keep:
            self._stop_playback()

    def shift_one(self, next_code: int) -> None:
        """
        Penalty for replaying mid-sequence: the last solved rhythm is dropped and next_code becomes
        the new final unsolved rhythm. Total length is unchanged.
        """
        if self._solved_count <= 0:
            raise SequenceConsistencyError("shift_one requires at least one solved rhythm")
        del self._codes[self._solved_count - 1]
        self._solved_count -= 1
        self._codes.append(int(next_code))

    # ------------------------------------------------------------------
    # Difficulty
    # ------------------------------------------------------------------

    def on_player_error(self) -> None:
        self._has_error_since_issue = True
        self._next_sequence_length = 1

    def get_next_sequence_length(self) -> int:
        return int(self._next_sequence_length)

    def max_sequence_length(self) -> int:
        return int(self._max_sequence_length)

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def begin_playing_sequence(self) -> None:
        self._stop_playback()
        if self.get_remaining_length() == 0:
            return
        self._playback.is_playing = True

    def is_playing(self) -> bool:
        return bool(self._playback.is_playing)

    def maybe_play_sounds(self, now_seconds: float) -> Optional[int]:
        playback = self._playback
        if not playback.is_playing:
            return None

        now = float(now_seconds)
        if playback.next_due_seconds is None:
            playback.next_due_seconds = now + self._playback_lead_in_seconds
        if now < playback.next_due_seconds:
            return None

        remaining = self.remaining_codes()
        if playback.index >= len(remaining):
            playback.is_playing = False
            return None

        code = remaining[playback.index]
        self._play_cue(self._rhythm_cue_base + code)
        playback.last_cue_seconds = now
        playback.last_cue_index = playback.index
        playback.index += 1
        playback.next_due_seconds = now + self._playback_interval_seconds
        if playback.index >= len(remaining):
            playback.is_playing = False
        return code

    def maybe_animate_draw(self, now_seconds: float) -> SequenceDisplay:
        playback = self._playback
        highlight_alpha = 0.0
        playing_index: Optional[int] = None
        if playback.last_cue_seconds is not None and playback.last_cue_index is not None:
            elapsed = float(now_seconds) - float(playback.last_cue_seconds)
            highlight_alpha = max(0.0, 1.0 - elapsed / self._playback_interval_seconds)
            if highlight_alpha > 0.0:
                playing_index = int(playback.last_cue_index)

        return SequenceDisplay(
            solved_codes=self.solved_codes(),
            placeholder_count=self.get_remaining_length(),
            playing_index=playing_index,
            highlight_alpha=highlight_alpha,
        )

    def _stop_playback(self) -> None:
        self._playback = PlaybackState()


def _run_unit_tests() -> None:
    cues: List[int] = []
    player = RhythmSequencePlayer(cues.append, rhythm_cue_base=160, playback_interval_seconds=0.5, playback_lead_in_seconds=0.0)

    player.set_sequence([3])
    assert player.get_next_sequence_length() == 1
    player.increment_one_rhythm_solved(3)
    assert player.get_remaining_length() == 0
    assert player.get_next_sequence_length() == 2

    player.set_sequence([5, 4, 6])
    assert player.count_remaining_matches([5, 4, 8]) == 2
    assert player.count_remaining_matches([7, 4, 6]) == 0
    player.truncate_remaining_length(2)
    assert player.remaining_codes() == [5, 4]

    player.increment_one_rhythm_solved(5)
    assert player.has_solved_any()
    player.shift_one(7)
    assert player.solved_codes() == []
    assert player.remaining_codes() == [4, 7]

    try:
        player.increment_one_rhythm_solved(7)
    except SequenceConsistencyError:
        pass
    else:
        raise AssertionError("mismatched solve must raise")

    player.begin_playing_sequence()
    assert player.maybe_play_sounds(0.0) == 4
    assert player.maybe_play_sounds(0.2) is None
    assert player.maybe_play_sounds(0.5) == 7
    assert not player.is_playing()
    assert cues == [164, 167]

    player.on_player_error()
    player.increment_one_rhythm_solved(4)
    player.increment_one_rhythm_solved(7)
    assert player.get_next_sequence_length() == 1


if __name__ == "__main__":
    _run_unit_tests()
    print("rhythm_sequence_player.py: ok")
