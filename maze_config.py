"""
maze_config.py

Typed configuration loading and validation for the rhythm maze room.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included, so no file means the stock room)
- Support environment variable overrides
- No other I/O beyond reading the config file (no directory creation)

Config file location
- If RHYTHM_MAZE_CONFIG_PATH is set, that file is used.
- Otherwise these paths are searched in order and the first one that exists is used:
  1) ./rhythm_maze_config.json (current working directory)
  2) <user config dir>/RhythmMaze/RhythmMaze/rhythm_maze_config.json
- If none exists the defaults below are used.

Example config file (rhythm_maze_config.json)
{
  "maze": {
    "width": 12,
    "height": 7,
    "start": [0, 3],
    "goal": [11, 3],
    "rhythm_codes": [3, 4, 5, 6, 7, 8],
    "path_attempts": 8
  },
  "sequence": {
    "max_sequence_length": 6,
    "playback_interval_seconds": 0.6,
    "shift_penalty_probability": 0.5
  },
  "room": {
    "seed": 1234
  }
}
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

import room_tiles


class MazeConfig(BaseModel):
    width: int = Field(default=12, ge=2, le=64, description="Maze grid width in cells.")
    height: int = Field(default=7, ge=1, le=64, description="Maze grid height in cells.")
    start: Tuple[int, int] = Field(default=(0, 3), description="Player start cell in maze coordinates.")
    goal: Tuple[int, int] = Field(default=(11, 3), description="Goal cell in maze coordinates.")
    rhythm_codes: List[int] = Field(default_factory=lambda: [3, 4, 5, 6, 7, 8], description="Rhythm alphabet.")
    path_attempts: int = Field(default=8, ge=1, le=64, description="Randomized searches per path; longest wins.")

    @field_validator("rhythm_codes")
    @classmethod
    def validate_rhythm_codes(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("rhythm_codes must not be empty")
        if len(set(value)) != len(value):
            raise ValueError("rhythm_codes must be distinct")
        for code in value:
            if not room_tiles.is_rhythm_tile(code):
                raise ValueError(
                    f"rhythm code {code} must be within {room_tiles.RHYTHM_TILE_MIN}..{room_tiles.RHYTHM_TILE_MAX}"
                )
        return list(value)

    @model_validator(mode="after")
    def validate_geometry(self) -> "MazeConfig":
        for name, coord in (("start", self.start), ("goal", self.goal)):
            if not (0 <= coord[0] < self.width and 0 <= coord[1] < self.height):
                raise ValueError(f"{name} {coord} lies outside the {self.width}x{self.height} grid")
        if tuple(self.start) == tuple(self.goal):
            raise ValueError("start and goal must be different cells")
        if self.start[0] != 0:
            raise ValueError(f"start {self.start} must lie on the left edge, beside the lobby door")
        return self


class SequenceConfig(BaseModel):
    max_sequence_length: int = Field(default=6, ge=1, le=32, description="Cap for the difficulty counter.")
    playback_interval_seconds: float = Field(default=0.6, gt=0.0, description="Gap between announced rhythms.")
    playback_lead_in_seconds: float = Field(default=0.25, ge=0.0, description="Delay before the first cue.")
    shift_penalty_probability: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Chance that replaying mid-sequence un-solves one rhythm.",
    )


class AudioCueConfig(BaseModel):
    rhythm_cue_base: int = Field(default=160, ge=0, description="Cue id = rhythm_cue_base + rhythm code.")
    error_cue: int = Field(default=135, ge=0)
    solved_cue: int = Field(default=95, ge=0)
    room_enter_cue: int = Field(default=144, ge=0)


class RoomConfig(BaseModel):
    collection_time_seconds: float = Field(default=20.0, ge=0.0, description="Item collection window after solving.")
    solved_message: str = Field(default="Quickly collect your rhythms and leave!")
    seed: Optional[int] = Field(default=None, description="Seed for repeatable rooms. Unset means random.")

    @field_validator("solved_message")
    @classmethod
    def normalize_message(cls, value: str) -> str:
        return (value or "").strip()


class AppConfig(BaseModel):
    maze: MazeConfig = Field(default_factory=MazeConfig)
    sequence: SequenceConfig = Field(default_factory=SequenceConfig)
    audio: AudioCueConfig = Field(default_factory=AudioCueConfig)
    room: RoomConfig = Field(default_factory=RoomConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("RhythmMaze", "RhythmMaze"))
    return [
        Path.cwd() / "rhythm_maze_config.json",
        config_directory / "rhythm_maze_config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("RHYTHM_MAZE_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path

    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exception:
        raise OSError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ValueError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - RHYTHM_MAZE_SEED
    - RHYTHM_MAZE_MAX_SEQUENCE_LENGTH
    - RHYTHM_MAZE_SHIFT_PENALTY_PROBABILITY
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            return section
        section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    sequence_section = ensure_nested(updated_config, "sequence")
    room_section = ensure_nested(updated_config, "room")

    def override_int(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = int(value_text)
        except ValueError:
            return

    def override_float(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = float(value_text)
        except ValueError:
            return

    override_int("RHYTHM_MAZE_SEED", room_section, "seed")
    override_int("RHYTHM_MAZE_MAX_SEQUENCE_LENGTH", sequence_section, "max_sequence_length")
    override_float("RHYTHM_MAZE_SHIFT_PENALTY_PROBABILITY", sequence_section, "shift_penalty_probability")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict: Dict[str, Any] = _read_json_file_utf8(resolved_path) if resolved_path is not None else {}
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        source_text = str(resolved_path) if resolved_path is not None else "(defaults)"
        raise ValueError(f"Config validation failed for {source_text}:\n{exception}") from exception

    return config, resolved_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[AppConfig, Optional[Path]]:
    return load_config()


def _run_unit_tests() -> None:
    config = AppConfig()
    assert config.maze.width == 12
    assert config.maze.goal == (11, 3)
    assert config.sequence.max_sequence_length == 6

    try:
        AppConfig.model_validate({"maze": {"rhythm_codes": [3, 3]}})
    except ValidationError:
        pass
    else:
        raise AssertionError("duplicate rhythm codes must fail validation")

    try:
        AppConfig.model_validate({"maze": {"width": 4, "goal": [11, 3]}})
    except ValidationError:
        pass
    else:
        raise AssertionError("goal outside the grid must fail validation")

    try:
        AppConfig.model_validate({"maze": {"start": [2, 3]}})
    except ValidationError:
        pass
    else:
        raise AssertionError("start away from the left edge must fail validation")


def main() -> int:
    try:
        config, resolved_path = load_config()
    except Exception as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path) if resolved_path is not None else None,
        "config": config.model_dump(mode="json"),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
