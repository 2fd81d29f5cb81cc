# -*- coding: utf-8 -*-
########################
# maze_harness.py
########################
# Purpose:
# - Playable harness window for the rhythm maze room, for local testing and iteration.
# - Integrates PuzzleRoom + RoomSignals + GridWalker + MazeBoardWidget on a 16 ms frame timer.
# - Runs every pure-logic self test with --run-tests (no Qt needed).
#
# Design notes:
# - Qt is imported lazily so the pure tests run on machines without a display or PyQt6.
# - GridWalker is the movement collaborator: it owns the in-flight move and its timing.
#   The room only answers per frame; ABORTED snaps the walker back to its source tile.
# - Cues are shown as text; audio playback belongs to the host game.
#
########################
# Interfaces:
# Public dataclasses:
# - HarnessState(seed: Optional[int], last_outcome: str, last_cue: Optional[int], message: str)
#
# Public classes:
# - class GridWalker
#   - __init__(position: Coord, move_duration_seconds: float = 0.5)
#   - position() -> Coord / is_moving() -> bool
#   - set_move_duration_seconds(value: float) -> None
#   - request_move(delta: Coord, now_seconds: float, tile_map: TileMap) -> bool
#   - frame_state(now_seconds: float) -> Optional[MoveState]
#   - apply_outcome(outcome: MoveOutcome) -> None
# - class MazeHarnessWindow(PyQt6.QtWidgets.QMainWindow), created by create_harness_window()
#
# Public functions:
# - build_room(config: AppConfig, collaborators: RoomCollaborators, seed: Optional[int]) -> PuzzleRoom
# - build_argument_parser() -> argparse.ArgumentParser
# - main() -> int
#
# Inputs:
# - Arrow keys / WASD move, Space replays the rhythm sequence, R builds a fresh room.
#
# Outputs:
# - Painted room, sequence bar and status text.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import argparse
import logging
import random
from typing import Optional

from maze_config import AppConfig
from maze_models import Coord, MoveOutcome, MoveState, add_coords
from puzzle_room import PuzzleRoom, RoomCollaborators
import room_tiles

logger = logging.getLogger(__name__)


@dataclass
class HarnessState:
    seed: Optional[int] = None
    last_outcome: str = "idle"
    last_cue: Optional[int] = None
    message: str = ""


class GridWalker:
    """Tile-to-tile movement with a fixed travel time, reported to the room once per frame.

    Every move is reported in flight at least once and arrives only after the room
    has allowed it.
    """

    def __init__(self, position: Coord, move_duration_seconds: float = 0.5) -> None:
        self._source: Coord = (int(position[0]), int(position[1]))
        self._destination: Coord = self._source
        self._move_started_seconds = 0.0
        self._move_duration_seconds = max(0.0, float(move_duration_seconds))
        self._validated = True

    def position(self) -> Coord:
        return self._source

    def destination(self) -> Coord:
        return self._destination

    def is_moving(self) -> bool:
        return self._source != self._destination

    def set_move_duration_seconds(self, value: float) -> None:
        self._move_duration_seconds = max(0.0, float(value))

    def request_move(self, delta: Coord, now_seconds: float, tile_map: room_tiles.TileMap) -> bool:
        if self.is_moving():
            return False
        target = add_coords(self._source, delta)
        if not tile_map.contains(target):
            return False
        if tile_map.tile_at(target) in (room_tiles.FILLER_TILE, room_tiles.LOBBY_DOOR_LOCKED_TILE):
            return False
        self._destination = target
        self._move_started_seconds = float(now_seconds)
        self._validated = False
        return True

    def frame_state(self, now_seconds: float) -> Optional[MoveState]:
        if not self.is_moving():
            return None
        elapsed = float(now_seconds) - self._move_started_seconds
        if self._validated and elapsed >= self._move_duration_seconds:
            arrived = MoveState(self._source, self._destination, arrived=True)
            self._source = self._destination
            return arrived
        return MoveState(self._source, self._destination, arrived=False)

    def apply_outcome(self, outcome: MoveOutcome) -> None:
        if outcome == MoveOutcome.ABORTED:
            self._destination = self._source
        elif outcome == MoveOutcome.ALLOWED:
            self._validated = True


def build_room(config: AppConfig, collaborators: RoomCollaborators, seed: Optional[int]) -> PuzzleRoom:
    rng = random.Random(seed if seed is not None else config.room.seed)
    room = PuzzleRoom(config, collaborators, rng=rng)
    room.activate()
    return room


def _tile_color(tile_id: int):
    from PyQt6.QtGui import QColor

    rhythm_palette = {
        2: QColor(200, 200, 200),
        3: QColor(235, 110, 90),
        4: QColor(240, 180, 70),
        5: QColor(120, 200, 110),
        6: QColor(90, 170, 230),
        7: QColor(160, 120, 230),
        8: QColor(230, 120, 190),
        9: QColor(120, 220, 210),
        10: QColor(210, 210, 120),
        11: QColor(170, 170, 170),
    }
    if room_tiles.is_rhythm_tile(tile_id):
        return rhythm_palette[int(tile_id)]
    if room_tiles.is_wall_tile(tile_id):
        return rhythm_palette[int(tile_id) - room_tiles.WALL_TILE_BASE].darker(300)
    if tile_id == room_tiles.CLEARED_TILE:
        return QColor(245, 245, 240)
    if tile_id == room_tiles.GOAL_TILE:
        return QColor(255, 230, 90)
    if tile_id == room_tiles.LOBBY_DOOR_LOCKED_TILE:
        return QColor(110, 70, 40)
    if tile_id == room_tiles.LOBBY_DOOR_UNLOCKED_TILE:
        return QColor(90, 200, 90)
    if tile_id == room_tiles.UNPOPULATED_TILE:
        return QColor(60, 60, 70)
    return QColor(20, 20, 24)


def create_harness_window(config: AppConfig, seed: Optional[int] = None):
    import time

    from PyQt6.QtCore import QRectF, Qt, QTimer
    from PyQt6.QtGui import QBrush, QColor, QFont, QPainter, QPen
    from PyQt6.QtWidgets import QLabel, QMainWindow, QVBoxLayout, QWidget

    import room_signals

    tile_size = 48
    sequence_bar_height = 64

    class MazeBoardWidget(QWidget):
        def __init__(self, parent: Optional[QWidget] = None) -> None:
            super().__init__(parent)
            self._room: Optional[PuzzleRoom] = None
            self._walker: Optional[GridWalker] = None
            self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)

        def attach(self, room: PuzzleRoom, walker: GridWalker) -> None:
            self._room = room
            self._walker = walker
            tile_map = room.tile_map()
            self.setMinimumSize(tile_map.width() * tile_size, tile_map.height() * tile_size + sequence_bar_height)
            self.update()

        def paintEvent(self, event) -> None:  # type: ignore[override]
            painter = QPainter(self)
            painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
            painter.fillRect(self.rect(), QBrush(QColor(10, 10, 12)))

            if self._room is not None and self._walker is not None:
                self._paint_sequence_bar(painter)
                self._paint_tiles(painter)
                self._paint_player(painter)

            painter.end()

        def _paint_sequence_bar(self, painter: QPainter) -> None:
            assert self._room is not None
            display = self._room.sequence_display(time.monotonic())
            slot = tile_size - 8
            x_position = 8.0
            painter.setFont(QFont("Sans", 16, QFont.Weight.Bold))

            for code in display.solved_codes:
                painter.fillRect(QRectF(x_position, 12, slot, slot), _tile_color(room_tiles.wall_tile_for_code(code)))
                x_position += slot + 6

            for placeholder_index in range(display.placeholder_count):
                rect = QRectF(x_position, 12, slot, slot)
                highlighted = display.playing_index == placeholder_index and display.highlight_alpha > 0.0
                fill = QColor(255, 220, 120) if highlighted else QColor(70, 70, 80)
                if highlighted:
                    fill.setAlphaF(max(0.25, float(display.highlight_alpha)))
                painter.fillRect(rect, fill)
                painter.setPen(QPen(QColor(240, 240, 240)))
                painter.drawText(rect, Qt.AlignmentFlag.AlignCenter, "?")
                x_position += slot + 6

        def _paint_tiles(self, painter: QPainter) -> None:
            assert self._room is not None
            for row_index, row in enumerate(self._room.tile_map().rows()):
                for column_index, tile_id in enumerate(row):
                    rect = QRectF(
                        column_index * tile_size,
                        sequence_bar_height + row_index * tile_size,
                        tile_size - 1,
                        tile_size - 1,
                    )
                    painter.fillRect(rect, _tile_color(tile_id))

        def _paint_player(self, painter: QPainter) -> None:
            assert self._walker is not None
            x_index, y_index = self._walker.destination()
            center_x = x_index * tile_size + tile_size / 2
            center_y = sequence_bar_height + y_index * tile_size + tile_size / 2
            painter.save()
            painter.setPen(Qt.PenStyle.NoPen)
            painter.setBrush(QBrush(QColor(30, 30, 30)))
            painter.drawEllipse(QRectF(center_x - 12, center_y - 12, 24, 24))
            painter.restore()

    class MazeHarnessWindow(QMainWindow):
        def __init__(self) -> None:
            super().__init__()
            self.setWindowTitle("Rhythm Maze")
            self._state = HarnessState(seed=seed)

            self._signals = room_signals.RoomSignals(self)
            self._signals.cueRequested.connect(self._on_cue_requested)
            self._signals.textChanged.connect(self._on_text_changed)
            self._signals.transitionRequested.connect(self._on_transition_requested)

            root_widget = QWidget(self)
            layout = QVBoxLayout(root_widget)
            self._board = MazeBoardWidget(root_widget)
            self._status_label = QLabel(root_widget)
            layout.addWidget(self._board)
            layout.addWidget(self._status_label)
            self.setCentralWidget(root_widget)

            self._room: Optional[PuzzleRoom] = None
            self._walker: Optional[GridWalker] = None
            self._new_room()

            self._frame_timer = QTimer(self)
            self._frame_timer.setInterval(16)
            self._frame_timer.timeout.connect(self._on_frame)
            self._frame_timer.start()

        @property
        def state(self) -> HarnessState:
            return self._state

        def _new_room(self) -> None:
            self._room = build_room(config, RoomCollaborators.from_single(self._signals), self._state.seed)
            self._walker = GridWalker(self._room.start_map_coord(), move_duration_seconds=0.5)
            self._board.attach(self._room, self._walker)
            self._board.setFocus()
            self._state.last_outcome = "idle"
            self._update_status()

        def keyPressEvent(self, event) -> None:  # type: ignore[override]
            if self._room is None or self._walker is None or event.isAutoRepeat():
                super().keyPressEvent(event)
                return

            key_to_delta = {
                int(Qt.Key.Key_Left): (-1, 0),
                int(Qt.Key.Key_A): (-1, 0),
                int(Qt.Key.Key_Right): (1, 0),
                int(Qt.Key.Key_D): (1, 0),
                int(Qt.Key.Key_Up): (0, -1),
                int(Qt.Key.Key_W): (0, -1),
                int(Qt.Key.Key_Down): (0, 1),
                int(Qt.Key.Key_S): (0, 1),
            }
            key_code = int(event.key())
            if key_code in key_to_delta:
                self._walker.request_move(key_to_delta[key_code], time.monotonic(), self._room.tile_map())
                return
            if key_code == int(Qt.Key.Key_Space):
                self._room.request_playback()
                return
            if key_code == int(Qt.Key.Key_R):
                self._new_room()
                return
            super().keyPressEvent(event)

        def _on_frame(self) -> None:
            if self._room is None or self._walker is None:
                return
            now_seconds = time.monotonic()
            move = self._walker.frame_state(now_seconds)
            outcome = self._room.update(now_seconds, move)
            self._walker.apply_outcome(outcome)
            if self._room.is_solved():
                self._walker.set_move_duration_seconds(0.25)
            if outcome != MoveOutcome.IDLE:
                self._state.last_outcome = outcome.value
                self._update_status()
            self._board.update()

        def _on_cue_requested(self, cue_id: int) -> None:
            self._state.last_cue = int(cue_id)
            self._update_status()

        def _on_text_changed(self, text: str) -> None:
            self._state.message = str(text)
            self._update_status()

        def _on_transition_requested(self) -> None:
            self._state.message = "Leaving the rhythm maze."
            self._update_status()

        def _update_status(self) -> None:
            if self._room is None:
                return
            sequence_player = self._room.sequence_player()
            parts = [
                f"next length: {sequence_player.get_next_sequence_length()}",
                f"remaining: {sequence_player.get_remaining_length()}",
                f"last move: {self._state.last_outcome}",
                f"last cue: {self._state.last_cue if self._state.last_cue is not None else '-'}",
            ]
            if self._state.message:
                parts.append(self._state.message)
            self._status_label.setText("   ".join(parts))

    return MazeHarnessWindow()


def _run_chunk_tests() -> None:
    import maze_config
    import maze_grid
    import puzzle_room
    import rhythm_sequence_player

    maze_grid._run_unit_tests()
    rhythm_sequence_player._run_unit_tests()
    room_tiles._run_unit_tests()
    maze_config._run_unit_tests()
    puzzle_room._run_unit_tests()

    tile_map = room_tiles.build_room_tile_map(3, 1, start=(0, 0), goal=(2, 0), door=(0, 1))
    walker = GridWalker((1, 1), move_duration_seconds=0.5)
    assert walker.request_move((-1, 0), 0.0, tile_map) is False  # locked door
    assert walker.request_move((0, -1), 0.0, tile_map) is False  # border filler
    assert walker.request_move((1, 0), 0.0, tile_map) is True
    assert walker.request_move((1, 0), 0.1, tile_map) is False  # already moving

    in_flight = walker.frame_state(0.2)
    assert in_flight == MoveState((1, 1), (2, 1), arrived=False)
    walker.apply_outcome(MoveOutcome.ABORTED)
    assert not walker.is_moving()
    assert walker.frame_state(0.3) is None

    assert walker.request_move((1, 0), 1.0, tile_map) is True
    # A late first frame still reports the move in flight before it can arrive.
    assert walker.frame_state(5.0) == MoveState((1, 1), (2, 1), arrived=False)
    walker.apply_outcome(MoveOutcome.ALLOWED)
    arrived = walker.frame_state(5.0)
    assert arrived == MoveState((1, 1), (2, 1), arrived=True)
    assert walker.position() == (2, 1)


def _run_gui(seed: Optional[int]) -> int:
    import sys

    from PyQt6.QtWidgets import QApplication

    from maze_config import get_config

    config, config_path = get_config()
    logger.info("Using config %s", config_path if config_path is not None else "(defaults)")

    app = QApplication(sys.argv)
    window = create_harness_window(config, seed=seed)
    window.show()
    return int(app.exec())


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rhythm maze harness")
    parser.add_argument(
        "--run-tests",
        action="store_true",
        help="Run pure logic tests (no Qt).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for a repeatable room.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level, for example DEBUG or INFO.")
    return parser


def main() -> int:
    args = build_argument_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.run_tests:
        _run_chunk_tests()
        print("Chunk tests passed.")
        return 0
    return _run_gui(args.seed)


if __name__ == "__main__":
    raise SystemExit(main())
