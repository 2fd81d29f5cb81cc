# -*- coding: utf-8 -*-
########################
# room_tiles.py
########################
# Purpose:
# - Tile identifier contract between the rhythm maze core and the external renderer.
# - Owns the bordered room tile map and the offset between tile map space and maze grid space.
#
# Design notes:
# - No Qt usage. The renderer only reads identifiers; the core decides which identifier sits where.
# - Identifier partition:
#   - 0            background / filler
#   - 1            cleared walkable tile
#   - 2..11        rhythm tile, identifier == rhythm code
#   - 120 + code   wall tile that keeps the rhythm it showed before the mistake
#   - 50 / 56      lobby door unlocked / locked
#   - 64           maze interior not yet populated
#   - 66           goal tile
# - The maze grid sits inside a one tile border, so maze = tile map coordinate + (-1, -1).
#
########################
# Interfaces:
# Public constants:
# - FILLER_TILE, CLEARED_TILE, RHYTHM_TILE_MIN, RHYTHM_TILE_MAX, WALL_TILE_BASE, UNPOPULATED_TILE,
#   GOAL_TILE, LOBBY_DOOR_LOCKED_TILE, LOBBY_DOOR_UNLOCKED_TILE, MAZE_OFFSET
#
# Public functions:
# - rhythm_tile_for_code(code: int) -> int
# - wall_tile_for_code(code: int) -> int
# - is_rhythm_tile(tile_id: int) -> bool
# - is_wall_tile(tile_id: int) -> bool
# - to_maze_coord(map_coord) -> Coord
# - to_map_coord(maze_coord) -> Coord
# - build_room_tile_map(maze_width: int, maze_height: int, *, start: Coord, goal: Coord, door: Coord) -> TileMap
# - copy_rhythm_tiles(tile_map: TileMap, rhythm_cells: Iterable[tuple[Coord, int]]) -> None
#
# Public classes:
# - class TileMap
#   - width() / height()
#   - contains(map_coord) -> bool
#   - tile_at(map_coord) -> int
#   - set_tile(map_coord, tile_id: int) -> None
#   - rows() -> list[list[int]]
#
# Inputs:
# - Maze geometry and rhythm cells from MazeGrid.
#
# Outputs:
# - A shared mutable TileMap read by the renderer (maze_harness.MazeBoardWidget).
#
########################

from __future__ import annotations

from typing import Iterable, List, Tuple

from maze_models import Coord, add_coords

FILLER_TILE = 0
CLEARED_TILE = 1
RHYTHM_TILE_MIN = 2
RHYTHM_TILE_MAX = 11
LOBBY_DOOR_UNLOCKED_TILE = 50
LOBBY_DOOR_LOCKED_TILE = 56
UNPOPULATED_TILE = 64
GOAL_TILE = 66
WALL_TILE_BASE = 120

MAZE_OFFSET: Coord = (-1, -1)


def rhythm_tile_for_code(code: int) -> int:
    tile_id = int(code)
    if not RHYTHM_TILE_MIN <= tile_id <= RHYTHM_TILE_MAX:
        raise ValueError(f"Rhythm code {code} is outside the rhythm tile range")
    return tile_id


def wall_tile_for_code(code: int) -> int:
    return WALL_TILE_BASE + rhythm_tile_for_code(code)


def is_rhythm_tile(tile_id: int) -> bool:
    return RHYTHM_TILE_MIN <= int(tile_id) <= RHYTHM_TILE_MAX


def is_wall_tile(tile_id: int) -> bool:
    return WALL_TILE_BASE + RHYTHM_TILE_MIN <= int(tile_id) <= WALL_TILE_BASE + RHYTHM_TILE_MAX


def to_maze_coord(map_coord: Coord) -> Coord:
    return add_coords(map_coord, MAZE_OFFSET)


def to_map_coord(maze_coord: Coord) -> Coord:
    return add_coords(maze_coord, (-MAZE_OFFSET[0], -MAZE_OFFSET[1]))


class TileMap:
    def __init__(self, width: int, height: int, fill: int = FILLER_TILE) -> None:
        self._width = int(width)
        self._height = int(height)
        self._tiles: List[int] = [int(fill)] * (self._width * self._height)

    def width(self) -> int:
        return self._width

    def height(self) -> int:
        return self._height

    def contains(self, map_coord: Coord) -> bool:
        return 0 <= int(map_coord[0]) < self._width and 0 <= int(map_coord[1]) < self._height

    def _index(self, map_coord: Coord) -> int:
        if not self.contains(map_coord):
            raise IndexError(f"Tile coordinate {tuple(map_coord)} out of bounds")
        return int(map_coord[1]) * self._width + int(map_coord[0])

    def tile_at(self, map_coord: Coord) -> int:
        return self._tiles[self._index(map_coord)]

    def set_tile(self, map_coord: Coord, tile_id: int) -> None:
        self._tiles[self._index(map_coord)] = int(tile_id)

    def rows(self) -> List[List[int]]:
        return [list(self._tiles[row * self._width:(row + 1) * self._width]) for row in range(self._height)]


def build_room_tile_map(maze_width: int, maze_height: int, *, start: Coord, goal: Coord, door: Coord) -> TileMap:
    """Bordered room map: filler border, unpopulated interior, cleared start, goal tile and a locked door."""
    tile_map = TileMap(int(maze_width) + 2, int(maze_height) + 2)
    for y in range(int(maze_height)):
        for x in range(int(maze_width)):
            tile_map.set_tile(to_map_coord((x, y)), UNPOPULATED_TILE)
    tile_map.set_tile(to_map_coord(start), CLEARED_TILE)
    tile_map.set_tile(to_map_coord(goal), GOAL_TILE)
    tile_map.set_tile(door, LOBBY_DOOR_LOCKED_TILE)
    return tile_map


def copy_rhythm_tiles(tile_map: TileMap, rhythm_cells: Iterable[Tuple[Coord, int]]) -> None:
    for maze_coord, code in rhythm_cells:
        tile_map.set_tile(to_map_coord(maze_coord), rhythm_tile_for_code(code))


def _run_unit_tests() -> None:
    tile_map = build_room_tile_map(12, 7, start=(0, 3), goal=(11, 3), door=(0, 4))
    assert (tile_map.width(), tile_map.height()) == (14, 9)
    assert tile_map.tile_at((1, 4)) == CLEARED_TILE
    assert tile_map.tile_at((12, 4)) == GOAL_TILE
    assert tile_map.tile_at((0, 4)) == LOBBY_DOOR_LOCKED_TILE
    assert tile_map.tile_at((0, 0)) == FILLER_TILE
    assert tile_map.tile_at((5, 5)) == UNPOPULATED_TILE

    assert to_maze_coord((1, 4)) == (0, 3)
    assert to_map_coord((11, 3)) == (12, 4)

    copy_rhythm_tiles(tile_map, [((2, 2), 7)])
    assert tile_map.tile_at((3, 3)) == 7
    assert is_rhythm_tile(tile_map.tile_at((3, 3)))
    assert wall_tile_for_code(7) == 127
    assert is_wall_tile(127)
    assert not is_rhythm_tile(UNPOPULATED_TILE)


if __name__ == "__main__":
    _run_unit_tests()
    print("room_tiles.py: ok")
