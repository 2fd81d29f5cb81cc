# -*- coding: utf-8 -*-
########################
# puzzle_room.py
########################
# Purpose:
# - Rhythm maze room controller.
# - Reconciles the player's in-flight move against MazeGrid and RhythmSequencePlayer every frame.
# - Runs the difficulty rules, the replay penalty and the solved / exit transitions.
#
# Design notes:
# - No Qt usage. Pure gameplay logic; collaborators are injected (see RoomCollaborators).
# - The controller is the only owner of the grid, the sequence player and the tile map writes.
# - Moves are reported in tile map coordinates; the grid works in maze coordinates (room_tiles offset).
# - A mismatched rhythm aborts the move in the same frame it is detected.
# - After any grid call that can generate a path, rhythm tiles are copied back into the tile map
#   because path generation may recode cells beside the new path.
#
########################
# Interfaces:
# Public protocols:
# - AudioSink: play_cue(cue_id: int) -> None
# - TextSink: show_text(text: str) -> None, clear_text() -> None
# - ItemCollector: begin_collection(map_coords: list[Coord], collection_time_seconds: float) -> None,
#                  pick_up_at(map_coord: Coord) -> None
# - LevelTransition: begin_transition() -> None
#
# Public dataclasses:
# - RoomCollaborators(audio, text, items, transition)
#
# Public classes:
# - class PuzzleRoom
#   - __init__(config: AppConfig, collaborators: RoomCollaborators, *, grid: Optional[MazeGrid] = None,
#              rng: Optional[random.Random] = None, door: Optional[Coord] = None)
#   - activate() -> None / is_active() -> bool / is_solved() -> bool
#   - grid() -> MazeGrid / sequence_player() -> RhythmSequencePlayer / tile_map() -> TileMap
#   - start_map_coord() -> Coord / door_map_coord() -> Coord
#   - update(now_seconds: float, move: Optional[MoveState]) -> MoveOutcome
#   - process_move(move: MoveState) -> MoveOutcome
#   - request_playback() -> None
#   - sequence_display(now_seconds: float) -> SequenceDisplay
#
# Inputs:
# - MoveState per frame from the movement collaborator (source, destination, arrived).
# - Replay requests (space bar) and the frame time.
#
# Outputs:
# - MoveOutcome (ABORTED tells the movement collaborator to snap back to the source tile).
# - Tile map writes, cue requests, text messages, item and transition triggers.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import logging
import random
from typing import List, Optional, Protocol, runtime_checkable

from maze_config import AppConfig
from maze_grid import MazeGrid
from maze_models import CellKind, Coord, MoveOutcome, MoveState, SequenceDisplay, add_coords
from rhythm_sequence_player import RhythmSequencePlayer
import room_tiles

logger = logging.getLogger(__name__)


@runtime_checkable
class AudioSink(Protocol):
    def play_cue(self, cue_id: int) -> None: ...


@runtime_checkable
class TextSink(Protocol):
    def show_text(self, text: str) -> None: ...

    def clear_text(self) -> None: ...


@runtime_checkable
class ItemCollector(Protocol):
    def begin_collection(self, map_coords: List[Coord], collection_time_seconds: float) -> None: ...

    def pick_up_at(self, map_coord: Coord) -> None: ...


@runtime_checkable
class LevelTransition(Protocol):
    def begin_transition(self) -> None: ...


@dataclass(frozen=True)
class RoomCollaborators:
    audio: AudioSink
    text: TextSink
    items: ItemCollector
    transition: LevelTransition

    @classmethod
    def from_single(cls, collaborator: object) -> "RoomCollaborators":
        """Use one object that implements every collaborator protocol (room_signals.RoomSignals)."""
        return cls(
            audio=collaborator,  # type: ignore[arg-type]
            text=collaborator,  # type: ignore[arg-type]
            items=collaborator,  # type: ignore[arg-type]
            transition=collaborator,  # type: ignore[arg-type]
        )


class PuzzleRoom:
    def __init__(
        self,
        config: AppConfig,
        collaborators: RoomCollaborators,
        *,
        grid: Optional[MazeGrid] = None,
        rng: Optional[random.Random] = None,
        door: Optional[Coord] = None,
    ) -> None:
        self._config = config
        self._collaborators = collaborators
        self._rng = rng if rng is not None else random.Random(config.room.seed)

        if grid is None:
            maze = config.maze
            grid = MazeGrid(
                maze.width,
                maze.height,
                maze.start,
                maze.goal,
                maze.rhythm_codes,
                rng=self._rng,
                path_attempts=maze.path_attempts,
            )
        self._grid = grid

        self._start_map_coord = room_tiles.to_map_coord(self._grid.start())
        self._goal_map_coord = room_tiles.to_map_coord(self._grid.goal())
        self._door_map_coord: Coord = door if door is not None else add_coords(self._start_map_coord, (-1, 0))
        if self._grid.contains(room_tiles.to_maze_coord(self._door_map_coord)):
            raise ValueError(f"Lobby door {self._door_map_coord} must lie outside the maze")
        self._tile_map = room_tiles.build_room_tile_map(
            self._grid.width(),
            self._grid.height(),
            start=self._grid.start(),
            goal=self._grid.goal(),
            door=self._door_map_coord,
        )

        sequence = config.sequence
        self._sequence_player = RhythmSequencePlayer(
            collaborators.audio.play_cue,
            rhythm_cue_base=config.audio.rhythm_cue_base,
            max_sequence_length=sequence.max_sequence_length,
            playback_interval_seconds=sequence.playback_interval_seconds,
            playback_lead_in_seconds=sequence.playback_lead_in_seconds,
        )

        self._is_active = False
        self._has_initialized = False
        self._is_solved = False
        self._has_exited = False

        self._grid.generate_path(self._grid.start())
        self._sequence_player.set_sequence(self._grid.get_next_rhythm_codes(1))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def grid(self) -> MazeGrid:
        return self._grid

    def sequence_player(self) -> RhythmSequencePlayer:
        return self._sequence_player

    def tile_map(self) -> room_tiles.TileMap:
        return self._tile_map

    def start_map_coord(self) -> Coord:
        return self._start_map_coord

    def door_map_coord(self) -> Coord:
        return self._door_map_coord

    def is_active(self) -> bool:
        return self._is_active

    def is_solved(self) -> bool:
        return self._is_solved

    def activate(self) -> None:
        self._is_active = True

    # ------------------------------------------------------------------
    # Frame entry points
    # ------------------------------------------------------------------

    def update(self, now_seconds: float, move: Optional[MoveState] = None) -> MoveOutcome:
        if not self._is_active:
            return MoveOutcome.IDLE
        if not self._has_initialized:
            self._initial_setup()

        self._sequence_player.maybe_play_sounds(float(now_seconds))
        if move is None:
            return MoveOutcome.IDLE
        return self.process_move(move)

    def process_move(self, move: MoveState) -> MoveOutcome:
        if move.arrived:
            return self._on_arrived(move.destination)
        if move.is_idle():
            return MoveOutcome.IDLE
        if self._is_solved:
            return MoveOutcome.ALLOWED
        return self._validate_transition(move.source, move.destination)

    def request_playback(self) -> None:
        """Replay the unsolved rhythms. Replaying after progress may cost one solved rhythm."""
        if self._is_solved:
            return

        sequence_player = self._sequence_player
        penalty_probability = float(self._config.sequence.shift_penalty_probability)
        if sequence_player.has_solved_any() and self._rng.random() < penalty_probability:
            one_longer = sequence_player.get_remaining_length() + 1
            next_codes = self._grid.get_next_rhythm_codes(one_longer)
            if len(next_codes) == one_longer:
                sequence_player.shift_one(next_codes[-1])
                logger.debug("Replay penalty: sequence shifted by one, appended %s", next_codes[-1])

        sequence_player.begin_playing_sequence()

    def sequence_display(self, now_seconds: float) -> SequenceDisplay:
        return self._sequence_player.maybe_animate_draw(float(now_seconds))

    # ------------------------------------------------------------------
    # Movement reconciliation
    # ------------------------------------------------------------------

    def _validate_transition(self, source: Coord, destination: Coord) -> MoveOutcome:
        destination_maze = room_tiles.to_maze_coord(destination)
        if not self._grid.contains(destination_maze):
            return MoveOutcome.ALLOWED

        cell = self._grid.cell_at(destination_maze)
        if cell.kind == CellKind.WALL:
            return MoveOutcome.ABORTED
        if cell.kind != CellKind.RHYTHM or cell.code is None:
            return MoveOutcome.ALLOWED

        if self._grid.is_next_rhythm_code(cell.code):
            return MoveOutcome.ALLOWED

        self._handle_mistake(source, destination, int(cell.code))
        return MoveOutcome.ABORTED

    def _handle_mistake(self, source: Coord, destination: Coord, code: int) -> None:
        grid = self._grid
        destination_maze = room_tiles.to_maze_coord(destination)
        source_maze = room_tiles.to_maze_coord(source)
        if not grid.is_available(source_maze):
            source_maze = grid.player_coord()

        was_on_path = grid.is_square_on_future_path(destination_maze)
        walled = grid.mark_permanently_unavailable(destination_maze, anchor=source_maze)
        if walled:
            self._tile_map.set_tile(destination, room_tiles.wall_tile_for_code(code))

        self._sequence_player.on_player_error()
        if walled and was_on_path:
            grid.generate_path(source_maze)
            self._sync_rhythm_tiles()
            self._sequence_player.set_sequence(grid.get_next_rhythm_codes(1))

        logger.info(
            "Wrong rhythm %s at %s (walled=%s, on_path=%s)",
            code,
            destination_maze,
            walled,
            was_on_path,
        )
        self._collaborators.audio.play_cue(self._config.audio.error_cue)

    def _on_arrived(self, destination: Coord) -> MoveOutcome:
        grid = self._grid
        destination_maze = room_tiles.to_maze_coord(destination)
        outcome = MoveOutcome.ARRIVED

        if not self._is_solved and grid.contains(destination_maze) and grid.cell_at(destination_maze).kind == CellKind.RHYTHM:
            code = grid.rhythm_code_at(destination_maze)
            self._sequence_player.increment_one_rhythm_solved(code)
            grid.advance_player_to_coord(destination_maze)
            self._tile_map.set_tile(destination, room_tiles.CLEARED_TILE)
            self._sync_rhythm_tiles()
            self._reconcile_sequence()
            self._collaborators.audio.play_cue(self._config.audio.rhythm_cue_base + code)
        elif self._tile_map.contains(destination):
            self._collaborators.audio.play_cue(self._tile_map.tile_at(destination))

        if self._is_solved:
            self._collaborators.items.pick_up_at(destination)

        if not self._is_solved and destination_maze == grid.goal():
            self._on_goal_reached()
            outcome = MoveOutcome.SOLVED
        elif self._is_solved and tuple(destination) == tuple(self._door_map_coord):
            self._on_exit_reached()
            outcome = MoveOutcome.EXITED
        return outcome

    def _reconcile_sequence(self) -> None:
        sequence_player = self._sequence_player
        remaining_length = sequence_player.get_remaining_length()
        if remaining_length == 0:
            self._issue_next_sequence()
            return

        # advance_player_to_coord may have rerouted; keep only the still-valid expectation.
        fresh_codes = self._grid.get_next_rhythm_codes(remaining_length)
        matching_length = sequence_player.count_remaining_matches(fresh_codes)
        if matching_length == 0:
            logger.debug("Reroute invalidated the whole remaining sequence, reissuing")
            self._issue_next_sequence()
        else:
            sequence_player.truncate_remaining_length(matching_length)

    def _issue_next_sequence(self) -> None:
        next_length = self._sequence_player.get_next_sequence_length()
        self._sequence_player.set_sequence(self._grid.get_next_rhythm_codes(next_length))

    # ------------------------------------------------------------------
    # Room lifecycle
    # ------------------------------------------------------------------

    def _initial_setup(self) -> None:
        self._sync_rhythm_tiles()
        self._collaborators.text.clear_text()
        self._collaborators.audio.play_cue(self._config.audio.room_enter_cue)
        self._has_initialized = True

    def _on_goal_reached(self) -> None:
        self._sequence_player.set_sequence([])
        self._is_solved = True
        self._tile_map.set_tile(self._goal_map_coord, room_tiles.CLEARED_TILE)
        self._collaborators.audio.play_cue(self._config.audio.solved_cue)
        self._collaborators.text.show_text(self._config.room.solved_message)

        item_coords = [room_tiles.to_map_coord(coord) for coord, _code in self._grid.rhythm_cells()]
        self._collaborators.items.begin_collection(item_coords, float(self._config.room.collection_time_seconds))
        self._tile_map.set_tile(self._door_map_coord, room_tiles.LOBBY_DOOR_UNLOCKED_TILE)
        logger.info("Rhythm maze solved; %s rhythm tiles left to collect", len(item_coords))

    def _on_exit_reached(self) -> None:
        if self._has_exited:
            return
        self._has_exited = True
        self._is_active = False
        self._collaborators.transition.begin_transition()

    def _sync_rhythm_tiles(self) -> None:
        room_tiles.copy_rhythm_tiles(self._tile_map, self._grid.rhythm_cells())


@dataclass
class _RecordingCollaborator:
    cues: List[int]
    texts: List[str]
    collections: int = 0
    pickups: int = 0
    transitions: int = 0

    def play_cue(self, cue_id: int) -> None:
        self.cues.append(int(cue_id))

    def show_text(self, text: str) -> None:
        self.texts.append(str(text))

    def clear_text(self) -> None:
        self.texts.append("")

    def begin_collection(self, map_coords: List[Coord], collection_time_seconds: float) -> None:
        self.collections += 1

    def pick_up_at(self, map_coord: Coord) -> None:
        self.pickups += 1

    def begin_transition(self) -> None:
        self.transitions += 1


def _run_unit_tests() -> None:
    recorder = _RecordingCollaborator(cues=[], texts=[])
    grid = MazeGrid(
        5,
        1,
        (0, 0),
        (4, 0),
        [3, 4, 5],
        rng=random.Random(3),
        initial_codes={(1, 0): 3, (2, 0): 5, (3, 0): 4},
    )
    room = PuzzleRoom(AppConfig(), RoomCollaborators.from_single(recorder), grid=grid, rng=random.Random(3))
    room.activate()
    assert room.update(0.0) == MoveOutcome.IDLE
    assert recorder.cues == [144]
    assert room.sequence_player().remaining_codes() == [3]

    # Map coordinates are maze coordinates shifted by one.
    start = room.start_map_coord()
    assert start == (1, 1)
    assert room.process_move(MoveState(start, (2, 1))) == MoveOutcome.ALLOWED
    assert room.process_move(MoveState(start, (2, 1), arrived=True)) == MoveOutcome.ARRIVED
    assert room.tile_map().tile_at((2, 1)) == room_tiles.CLEARED_TILE
    assert room.sequence_player().remaining_codes() == [5, 4]

    assert room.process_move(MoveState((2, 1), (3, 1), arrived=True)) == MoveOutcome.ARRIVED
    assert room.process_move(MoveState((3, 1), (4, 1), arrived=True)) == MoveOutcome.ARRIVED
    assert room.process_move(MoveState((4, 1), (5, 1), arrived=True)) == MoveOutcome.SOLVED
    assert room.is_solved()
    assert recorder.collections == 1
    assert room.tile_map().tile_at(room.door_map_coord()) == room_tiles.LOBBY_DOOR_UNLOCKED_TILE

    assert room.process_move(MoveState((1, 1), room.door_map_coord(), arrived=True)) == MoveOutcome.EXITED
    assert recorder.transitions == 1
    assert not room.is_active()


if __name__ == "__main__":
    _run_unit_tests()
    print("puzzle_room.py: ok")
