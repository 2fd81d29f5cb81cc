from collections import deque
import json
import logging
import random

import pytest

from maze_config import AppConfig, load_config
from maze_grid import AlreadyUnavailable, InvalidCellKind, MazeGrid, Unsolvable
from maze_harness import GridWalker
from maze_models import CellKind, MoveOutcome, MoveState, neighbor_coords
from puzzle_room import PuzzleRoom, RoomCollaborators
from rhythm_sequence_player import RhythmSequencePlayer, SequenceConsistencyError
import room_tiles


class RecordingCollaborator:
    def __init__(self):
        self.cues = []
        self.texts = []
        self.collections = []
        self.pickups = []
        self.transitions = 0

    def play_cue(self, cue_id):
        self.cues.append(cue_id)

    def show_text(self, text):
        self.texts.append(text)

    def clear_text(self):
        self.texts.append("")

    def begin_collection(self, map_coords, collection_time_seconds):
        self.collections.append((list(map_coords), collection_time_seconds))

    def pick_up_at(self, map_coord):
        self.pickups.append(map_coord)

    def begin_transition(self):
        self.transitions += 1


def _goal_reachable(grid, origin):
    """Connectivity over non-wall cells, independent of the path engine."""
    if grid.cell_at(origin).kind == CellKind.WALL:
        return False
    seen = {origin}
    queue = deque([origin])
    while queue:
        current = queue.popleft()
        if current == grid.goal():
            return True
        for neighbor in neighbor_coords(current):
            if neighbor in seen or not grid.contains(neighbor):
                continue
            if grid.cell_at(neighbor).kind == CellKind.WALL:
                continue
            seen.add(neighbor)
            queue.append(neighbor)
    return False


def _assert_valid_path(grid, path, origin):
    assert path[0] == origin
    assert path[-1] == grid.goal()
    assert len(set(path)) == len(path)
    for first, second in zip(path, path[1:]):
        assert abs(first[0] - second[0]) + abs(first[1] - second[1]) == 1
    for step in path:
        assert grid.cell_at(step).kind != CellKind.WALL


def _make_room(grid, seed=0, recorder=None, config=None):
    recorder = recorder if recorder is not None else RecordingCollaborator()
    config = config if config is not None else AppConfig()
    room = PuzzleRoom(config, RoomCollaborators.from_single(recorder), grid=grid, rng=random.Random(seed))
    room.activate()
    room.update(0.0)
    return room, recorder


def _corridor_grid():
    return MazeGrid(
        5,
        1,
        (0, 0),
        (4, 0),
        [3, 4, 5],
        rng=random.Random(1),
        initial_codes={(1, 0): 3, (2, 0): 5, (3, 0): 4},
    )


def _step(room, source, destination):
    outcome = room.process_move(MoveState(source, destination))
    if outcome == MoveOutcome.ABORTED:
        return outcome, source
    return room.process_move(MoveState(source, destination, arrived=True)), destination


# ----------------------------------------------------------------------
# Grid model and path engine
# ----------------------------------------------------------------------


@pytest.mark.parametrize("seed", range(6))
def test_generated_path_is_simple_walk_to_goal(seed):
    grid = MazeGrid(12, 7, (0, 3), (11, 3), [3, 4, 5, 6, 7, 8], rng=random.Random(seed))
    path = grid.generate_path((0, 3))
    _assert_valid_path(grid, path, (0, 3))


def test_generated_path_snakes_instead_of_taking_shortest_route():
    grid = MazeGrid(12, 7, (0, 3), (11, 3), [3, 4, 5, 6, 7, 8], rng=random.Random(11))
    path = grid.generate_path((0, 3))
    assert len(path) > 12


def test_neighbor_codes_do_not_offer_the_next_path_code():
    grid = MazeGrid(8, 5, (0, 2), (7, 2), [3, 4, 5, 6, 7, 8], rng=random.Random(5))
    path = grid.generate_path((0, 2))
    on_path = set(path)
    for index in range(len(path) - 1):
        following = grid.cell_at(path[index + 1])
        if following.kind != CellKind.RHYTHM:
            continue
        for neighbor in neighbor_coords(path[index]):
            if neighbor in on_path or not grid.contains(neighbor):
                continue
            cell = grid.cell_at(neighbor)
            if cell.kind == CellKind.RHYTHM:
                assert cell.code != following.code


def test_rhythm_code_queries_and_errors():
    grid = _corridor_grid()
    grid.generate_path((0, 0))
    assert grid.get_next_rhythm_codes(2) == [3, 5]
    assert grid.get_next_rhythm_codes(99) == [3, 5, 4]
    assert grid.get_next_rhythm_codes(0) == []
    with pytest.raises(InvalidCellKind):
        grid.rhythm_code_at((0, 0))
    with pytest.raises(InvalidCellKind):
        grid.rhythm_code_at((4, 0))


def test_wall_keeps_code_and_cannot_be_walled_twice():
    grid = MazeGrid(4, 3, (0, 1), (3, 1), [3, 4], rng=random.Random(2))
    grid.generate_path((0, 1))
    code = grid.rhythm_code_at((2, 2))
    assert grid.mark_permanently_unavailable((2, 2)) is True
    assert grid.cell_at((2, 2)).kind == CellKind.WALL
    assert grid.rhythm_code_at((2, 2)) == code
    with pytest.raises(AlreadyUnavailable):
        grid.mark_permanently_unavailable((2, 2))
    assert grid.mark_permanently_unavailable((0, 1)) is False
    assert grid.mark_permanently_unavailable((3, 1)) is False


def test_wall_that_would_disconnect_goal_is_refused():
    grid = _corridor_grid()
    grid.generate_path((0, 0))
    assert grid.mark_permanently_unavailable((2, 0)) is False
    assert grid.cell_at((2, 0)).kind == CellKind.RHYTHM
    assert _goal_reachable(grid, (0, 0))


def test_walled_off_goal_raises_unsolvable_and_logs_error(caplog):
    grid = MazeGrid(3, 3, (0, 0), (2, 2), [3, 4], rng=random.Random(3))
    # Anchored at the goal itself, both walls pass the connectivity check and seal the goal in.
    assert grid.mark_permanently_unavailable((1, 2), anchor=(2, 2)) is True
    assert grid.mark_permanently_unavailable((2, 1), anchor=(2, 2)) is True
    assert not grid.is_goal_reachable((0, 0))

    with caplog.at_level(logging.ERROR, logger="maze_grid"):
        with pytest.raises(Unsolvable):
            grid.generate_path((0, 0))
    assert any(record.levelno == logging.ERROR for record in caplog.records)


def test_advance_off_path_reroutes_from_new_position():
    grid = MazeGrid(6, 4, (0, 0), (5, 3), [3, 4, 5, 6], rng=random.Random(9))
    path = grid.generate_path((0, 0))
    grid.advance_player_to_coord(path[1])
    assert grid.player_coord() == path[1]
    assert grid.cell_at(path[1]).kind == CellKind.CLEARED
    assert grid.future_path() == path[2:]

    # Stepping back onto the start leaves the path behind, so the grid reroutes from there.
    grid.advance_player_to_coord((0, 0))
    assert grid.player_coord() == (0, 0)
    _assert_valid_path(grid, grid.solution_path(), (0, 0))


# ----------------------------------------------------------------------
# Sequence player
# ----------------------------------------------------------------------


def test_sequence_length_is_conserved_across_operations():
    player = RhythmSequencePlayer(lambda cue: None)
    player.set_sequence([3, 4, 5, 6])
    total = player.sequence_length()

    def check():
        assert len(player.solved_codes()) + player.get_remaining_length() == total

    player.increment_one_rhythm_solved(3)
    check()
    player.increment_one_rhythm_solved(4)
    check()
    player.shift_one(8)
    check()
    assert player.solved_codes() == [3]
    assert player.remaining_codes() == [5, 6, 8]

    player.truncate_remaining_length(2)
    total -= 1
    check()
    assert player.remaining_codes() == [5, 6]


def test_reroute_truncation_keeps_common_prefix():
    player = RhythmSequencePlayer(lambda cue: None)
    player.set_sequence([3, 5, 7])
    assert player.count_remaining_matches([3, 5, 8]) == 2
    player.truncate_remaining_length(2)
    assert player.remaining_codes() == [3, 5]
    assert player.count_remaining_matches([4, 5]) == 0


def test_difficulty_rises_with_clean_completions_and_caps():
    player = RhythmSequencePlayer(lambda cue: None, max_sequence_length=6)
    for completions in range(1, 9):
        length = player.get_next_sequence_length()
        codes = [3] * length
        player.set_sequence(codes)
        for code in codes:
            player.increment_one_rhythm_solved(code)
        assert player.get_next_sequence_length() == min(1 + completions, player.max_sequence_length())


def test_mistake_resets_difficulty_and_blocks_increase():
    player = RhythmSequencePlayer(lambda cue: None)
    player.set_sequence([3])
    player.increment_one_rhythm_solved(3)
    player.set_sequence([4, 5])
    player.increment_one_rhythm_solved(4)
    player.on_player_error()
    assert player.get_next_sequence_length() == 1
    assert player.remaining_codes() == [5]
    player.increment_one_rhythm_solved(5)
    assert player.get_next_sequence_length() == 1


def test_forced_reissue_reuses_current_length_without_increment():
    # A zero-match reroute reissues at the counter's current value, the same call used after completions.
    player = RhythmSequencePlayer(lambda cue: None)
    for codes in ([3], [3, 4]):
        player.set_sequence(codes)
        for code in codes:
            player.increment_one_rhythm_solved(code)
    assert player.get_next_sequence_length() == 3
    player.set_sequence([5, 6, 7])
    player.increment_one_rhythm_solved(5)
    assert player.count_remaining_matches([8, 8]) == 0
    assert player.get_next_sequence_length() == 3


def test_sequence_consistency_faults_are_assertions():
    player = RhythmSequencePlayer(lambda cue: None)
    player.set_sequence([3])
    with pytest.raises(SequenceConsistencyError):
        player.increment_one_rhythm_solved(4)
    with pytest.raises(SequenceConsistencyError):
        player.shift_one(5)
    assert issubclass(SequenceConsistencyError, AssertionError)


def _drain_playback(player, start_seconds):
    announced = []
    now = start_seconds
    while player.is_playing():
        code = player.maybe_play_sounds(now)
        if code is not None:
            announced.append(code)
        now += 0.1
    return announced, now


def test_replay_announces_exactly_the_unsolved_suffix():
    cues = []
    player = RhythmSequencePlayer(cues.append, rhythm_cue_base=160, playback_interval_seconds=0.3)
    player.set_sequence([3, 4, 5])
    player.increment_one_rhythm_solved(3)

    now = 0.0
    for _ in range(3):
        player.begin_playing_sequence()
        announced, now = _drain_playback(player, now)
        assert announced == [4, 5]
        assert player.solved_codes() == [3]
        assert player.remaining_codes() == [4, 5]
    assert cues == [164, 165] * 3


def test_new_sequence_cancels_playback():
    player = RhythmSequencePlayer(lambda cue: None, playback_lead_in_seconds=0.0)
    player.set_sequence([3, 4])
    player.begin_playing_sequence()
    assert player.maybe_play_sounds(0.0) == 3
    player.set_sequence([6])
    assert not player.is_playing()
    assert player.maybe_play_sounds(10.0) is None


def test_animate_draw_snapshot_fades_highlight():
    player = RhythmSequencePlayer(lambda cue: None, playback_interval_seconds=0.5, playback_lead_in_seconds=0.0)
    player.set_sequence([3, 4])
    player.begin_playing_sequence()
    player.maybe_play_sounds(1.0)
    display = player.maybe_animate_draw(1.25)
    assert display.placeholder_count == 2
    assert display.playing_index == 0
    assert 0.0 < display.highlight_alpha < 1.0
    assert player.maybe_animate_draw(2.0).highlight_alpha == 0.0


# ----------------------------------------------------------------------
# Puzzle room scenarios
# ----------------------------------------------------------------------


def test_clean_solve_issues_longer_sequence():
    room, recorder = _make_room(_corridor_grid())
    assert room.sequence_player().remaining_codes() == [3]
    assert room.tile_map().tile_at((2, 1)) == 3

    outcome, position = _step(room, room.start_map_coord(), (2, 1))
    assert outcome == MoveOutcome.ARRIVED
    assert room.sequence_player().get_next_sequence_length() == 2
    assert room.sequence_player().remaining_codes() == [5, 4]
    assert room.tile_map().tile_at((2, 1)) == room_tiles.CLEARED_TILE
    assert recorder.cues[-1] == 163


def _off_path_room():
    grid = MazeGrid(
        4,
        2,
        (0, 0),
        (3, 0),
        [3, 4, 5, 7],
        rng=random.Random(4),
        initial_codes={(1, 0): 3, (2, 0): 5, (0, 1): 7, (1, 1): 4, (2, 1): 4, (3, 1): 4},
    )
    for coord in ((1, 1), (2, 1), (3, 1)):
        assert grid.mark_permanently_unavailable(coord) is True
    return _make_room(grid)


def test_mistake_off_path_walls_tile_and_keeps_sequence():
    room, recorder = _off_path_room()
    grid = room.grid()
    assert grid.solution_path() == ((0, 0), (1, 0), (2, 0), (3, 0))
    assert room.sequence_player().remaining_codes() == [3]

    start = room.start_map_coord()
    outcome = room.process_move(MoveState(start, (1, 2)))
    assert outcome == MoveOutcome.ABORTED
    assert grid.cell_at((0, 1)).kind == CellKind.WALL
    assert room.tile_map().tile_at((1, 2)) == room_tiles.wall_tile_for_code(7)
    assert room.sequence_player().remaining_codes() == [3]
    assert room.sequence_player().get_next_sequence_length() == 1
    assert recorder.cues[-1] == 135

    # Finishing the sequence after a mistake does not grant a longer one.
    outcome, _position = _step(room, start, (2, 1))
    assert outcome == MoveOutcome.ARRIVED
    assert room.sequence_player().remaining_codes() == [5]


def test_moving_into_existing_wall_is_aborted_quietly():
    room, recorder = _off_path_room()
    cue_count = len(recorder.cues)
    start = room.start_map_coord()
    assert room.process_move(MoveState(start, (2, 2))) == MoveOutcome.ABORTED
    assert len(recorder.cues) == cue_count


def _room_with_adjacent_future_cell():
    for seed in range(500):
        grid = MazeGrid(
            3,
            2,
            (0, 0),
            (2, 0),
            [3, 4, 5, 6],
            rng=random.Random(seed),
            initial_codes={(1, 0): 3, (0, 1): 4, (1, 1): 5, (2, 1): 6},
        )
        room, recorder = _make_room(grid, seed=seed)
        future = grid.future_path()
        if len(future) >= 3 and future[0] == (0, 1) and (1, 0) in future:
            return room, recorder
    pytest.fail("no seed produced a snaking path through (1, 0)")


def test_mistake_on_path_forces_reroute_and_length_one_sequence():
    room, recorder = _room_with_adjacent_future_cell()
    grid = room.grid()
    room.sequence_player().set_sequence(grid.get_next_rhythm_codes(3))
    assert room.sequence_player().sequence_length() == 3

    start = room.start_map_coord()
    outcome = room.process_move(MoveState(start, (2, 1)))
    assert outcome == MoveOutcome.ABORTED
    assert grid.cell_at((1, 0)).kind == CellKind.WALL
    assert recorder.cues[-1] == 135

    _assert_valid_path(grid, grid.solution_path(), (0, 0))
    assert (1, 0) not in grid.solution_path()
    sequence_player = room.sequence_player()
    assert sequence_player.sequence_length() == 1
    assert not sequence_player.has_solved_any()
    assert sequence_player.remaining_codes() == grid.get_next_rhythm_codes(1)
    assert sequence_player.get_next_sequence_length() == 1


def _room_after_off_path_arrival(wanted_matches):
    """Walk the path until an off-path neighbour carries the next code, then step onto it."""
    for seed in range(400):
        grid = MazeGrid(6, 5, (0, 0), (5, 4), [3, 4], rng=random.Random(seed))
        room, _recorder = _make_room(grid, seed=seed)
        sequence_player = room.sequence_player()
        position = room.start_map_coord()
        while len(grid.future_path()) >= 4:
            future = grid.future_path()
            next_code = grid.get_next_rhythm_codes(1)[0]
            detours = [
                coord
                for coord in neighbor_coords(grid.player_coord())
                if grid.contains(coord)
                and coord not in future
                and grid.cell_at(coord).kind == CellKind.RHYTHM
                and grid.cell_at(coord).code == next_code
            ]
            if not detours:
                _outcome, position = _step(room, position, room_tiles.to_map_coord(future[0]))
                continue

            sequence_player.set_sequence(grid.get_next_rhythm_codes(3))
            expected = sequence_player.remaining_codes()[1:]
            length_before = sequence_player.get_next_sequence_length()
            outcome, position = _step(room, position, room_tiles.to_map_coord(detours[0]))
            assert outcome == MoveOutcome.ARRIVED
            assert grid.solution_path()[0] == detours[0]

            fresh = grid.get_next_rhythm_codes(len(expected))
            matches = 0
            for kept, new in zip(expected, fresh):
                if kept != new:
                    break
                matches += 1
            if matches == wanted_matches:
                return room, expected, next_code, length_before
            break
    pytest.fail(f"no seed rerouted with {wanted_matches} matching rhythms")


def test_correct_rhythm_off_path_truncates_to_common_prefix():
    room, expected, solved_code, _length_before = _room_after_off_path_arrival(1)
    sequence_player = room.sequence_player()
    assert sequence_player.solved_codes() == [solved_code]
    assert sequence_player.remaining_codes() == expected[:1]
    assert sequence_player.remaining_codes() == room.grid().get_next_rhythm_codes(1)


def test_correct_rhythm_off_path_reissues_when_nothing_matches():
    room, _expected, _solved_code, length_before = _room_after_off_path_arrival(0)
    sequence_player = room.sequence_player()
    assert not sequence_player.has_solved_any()
    assert sequence_player.get_next_sequence_length() == length_before
    assert sequence_player.remaining_codes() == room.grid().get_next_rhythm_codes(length_before)


def test_stalled_frame_still_validates_move_before_arrival():
    room, recorder = _off_path_room()
    walker = GridWalker(room.start_map_coord(), move_duration_seconds=0.5)

    # Wrong rhythm below the start, first frame long after the move would have finished.
    assert walker.request_move((0, 1), 0.0, room.tile_map()) is True
    move = walker.frame_state(1.0)
    assert move == MoveState((1, 1), (1, 2), arrived=False)
    outcome = room.update(1.0, move)
    assert outcome == MoveOutcome.ABORTED
    walker.apply_outcome(outcome)
    assert walker.position() == (1, 1)
    assert walker.frame_state(1.1) is None
    assert recorder.cues[-1] == 135

    # Right rhythm: one in-flight frame, then arrival on the next.
    assert walker.request_move((1, 0), 2.0, room.tile_map()) is True
    move = walker.frame_state(9.0)
    assert not move.arrived
    outcome = room.update(9.0, move)
    assert outcome == MoveOutcome.ALLOWED
    walker.apply_outcome(outcome)
    move = walker.frame_state(9.0)
    assert move == MoveState((1, 1), (2, 1), arrived=True)
    assert room.update(9.0, move) == MoveOutcome.ARRIVED
    assert room.sequence_player().remaining_codes() == [5]


def test_default_door_must_lie_outside_the_maze():
    grid = MazeGrid(4, 2, (1, 0), (3, 0), [3, 4], rng=random.Random(0))
    with pytest.raises(ValueError):
        PuzzleRoom(AppConfig(), RoomCollaborators.from_single(RecordingCollaborator()), grid=grid)


def test_goal_and_exit_notify_collaborators_once():
    room, recorder = _make_room(_corridor_grid())
    position = room.start_map_coord()
    for destination in ((2, 1), (3, 1), (4, 1), (5, 1)):
        outcome, position = _step(room, position, destination)
    assert outcome == MoveOutcome.SOLVED
    assert room.is_solved()
    assert room.sequence_player().sequence_length() == 0
    assert len(recorder.collections) == 1
    assert recorder.texts[-1] == "Quickly collect your rhythms and leave!"
    assert room.tile_map().tile_at(room.door_map_coord()) == room_tiles.LOBBY_DOOR_UNLOCKED_TILE

    room.request_playback()
    assert not room.sequence_player().is_playing()

    for destination in ((4, 1), (3, 1), (2, 1), (1, 1)):
        outcome, position = _step(room, position, destination)
        assert outcome == MoveOutcome.ARRIVED
    assert len(recorder.pickups) == 4

    outcome, position = _step(room, position, room.door_map_coord())
    assert outcome == MoveOutcome.EXITED
    assert recorder.transitions == 1
    assert not room.is_active()
    assert room.update(1.0, MoveState(position, position, arrived=True)) == MoveOutcome.IDLE
    assert recorder.transitions == 1
    assert len(recorder.collections) == 1


def test_replay_penalty_shifts_one_solved_rhythm():
    grid = MazeGrid(
        6,
        1,
        (0, 0),
        (5, 0),
        [3, 4, 5, 6],
        rng=random.Random(1),
        initial_codes={(1, 0): 3, (2, 0): 4, (3, 0): 5, (4, 0): 6},
    )
    config = AppConfig.model_validate({"sequence": {"shift_penalty_probability": 1.0}})
    room, _recorder = _make_room(grid, config=config)
    position = room.start_map_coord()
    _outcome, position = _step(room, position, (2, 1))
    sequence_player = room.sequence_player()
    assert sequence_player.remaining_codes() == [4, 5]

    _outcome, position = _step(room, position, (3, 1))
    assert sequence_player.solved_codes() == [4]
    room.request_playback()
    assert sequence_player.solved_codes() == []
    assert sequence_player.remaining_codes() == [5, 6]
    assert sequence_player.is_playing()


@pytest.mark.parametrize("seed", range(12))
def test_random_play_keeps_goal_reachable(seed):
    rng = random.Random(1000 + seed)
    recorder = RecordingCollaborator()
    config = AppConfig()
    room = PuzzleRoom(config, RoomCollaborators.from_single(recorder), rng=random.Random(seed))
    room.activate()
    room.update(0.0)
    grid = room.grid()
    tile_map = room.tile_map()
    position = room.start_map_coord()

    for step_index in range(400):
        if room.is_solved():
            break
        if step_index % 25 == 0:
            room.request_playback()

        candidates = [
            coord
            for coord in neighbor_coords(position)
            if tile_map.contains(coord)
            and tile_map.tile_at(coord) not in (room_tiles.FILLER_TILE, room_tiles.LOBBY_DOOR_LOCKED_TILE)
        ]
        _outcome, position = _step(room, position, rng.choice(candidates))

        maze_position = room_tiles.to_maze_coord(position)
        assert _goal_reachable(grid, maze_position)
        sequence_player = room.sequence_player()
        remaining = sequence_player.get_remaining_length()
        assert sequence_player.remaining_codes() == grid.get_next_rhythm_codes(remaining)
        assert 1 <= sequence_player.get_next_sequence_length() <= sequence_player.max_sequence_length()

    for coord, code in grid.rhythm_cells():
        assert tile_map.tile_at(room_tiles.to_map_coord(coord)) == code


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------


def test_load_config_reads_file_and_environment(tmp_path, monkeypatch):
    config_path = tmp_path / "rhythm_maze_config.json"
    config_path.write_text(json.dumps({"maze": {"width": 8, "goal": [7, 3]}}), encoding="utf-8")
    monkeypatch.setenv("RHYTHM_MAZE_SEED", "42")
    config, resolved = load_config(config_path)
    assert resolved == config_path
    assert config.maze.width == 8
    assert config.room.seed == 42


def test_load_config_rejects_invalid_files(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(broken)

    invalid = tmp_path / "invalid.json"
    invalid.write_text(json.dumps({"maze": {"rhythm_codes": [1, 3]}}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(invalid)

    inner_start = tmp_path / "inner_start.json"
    inner_start.write_text(json.dumps({"maze": {"start": [2, 3]}}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(inner_start)


def test_room_signals_emit_for_each_collaborator_call():
    pytest.importorskip("PyQt6.QtCore")
    import room_signals

    signals = room_signals.RoomSignals()
    cues = []
    transitions = []
    signals.cueRequested.connect(cues.append)
    signals.transitionRequested.connect(lambda: transitions.append(True))

    collaborators = RoomCollaborators.from_single(signals)
    collaborators.audio.play_cue(135)
    collaborators.transition.begin_transition()
    assert cues == [135]
    assert transitions == [True]
