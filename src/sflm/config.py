"""Settings for SFLM.

This module loads the tunables used by the path analyzer:
- Primary source: a YAML file passed explicitly or named by `SFLM_CONFIG`.
- Fallback: built-in defaults matching the authoring tool.
- Validation: Pydantic models enforce value constraints.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from sflm.model import QuestionType

CONFIG_ENV_VAR = "SFLM_CONFIG"
logger = logging.getLogger(__name__)

# Completion-time cost of one question, in points, keyed by type tag.
DEFAULT_QUESTION_POINTS: Dict[str, int] = {
    QuestionType.RADIO.value: 1,
    QuestionType.CHECKBOX.value: 1,
    QuestionType.DROP_DOWN_LIST.value: 1,
    QuestionType.IMAGE_SELECTOR.value: 1,
    QuestionType.TEXT_ENTRY.value: 2,
    QuestionType.NUMERIC_ANSWER.value: 2,
    QuestionType.EMAIL_ADDRESS_ANSWER.value: 2,
    QuestionType.RESPONDENT_PHONE.value: 2,
    QuestionType.DATE_TIME_ANSWER.value: 2,
    QuestionType.SLIDER.value: 2,
    QuestionType.STAR_RATING.value: 2,
    QuestionType.NET_PROMOTER.value: 2,
    QuestionType.NUMERIC_RANKING.value: 2,
    QuestionType.DRAG_AND_DROP_RANKING.value: 2,
    QuestionType.CARD_SORT.value: 2,
    QuestionType.CHOICE_GRID.value: 3,
    QuestionType.HYBRID_GRID.value: 3,
    QuestionType.FILE_UPLOAD.value: 3,
    QuestionType.SIGNATURE.value: 3,
}


class Settings(BaseModel):
    points_per_minute: float = Field(default=8, gt=0)
    auto_advance_factor: float = Field(default=0.62, gt=0, le=1)
    question_points: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_QUESTION_POINTS))
    default_points: int = Field(default=1, ge=0)

    @field_validator("question_points")
    @classmethod
    def types_must_be_known(cls, v: Dict[str, int]) -> Dict[str, int]:
        known = {t.value for t in QuestionType}
        unknown = sorted(set(v) - known)
        if unknown:
            raise ValueError(f"question_points has unknown question types: {unknown}")
        if any(points < 0 for points in v.values()):
            raise ValueError("question_points values must be non-negative")
        # Types missing from the file keep their default cost
        return {**DEFAULT_QUESTION_POINTS, **v}

    def points_for(self, question_type: QuestionType) -> int:
        return self.question_points.get(question_type.value, self.default_points)


def _read_yaml_file(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.error("Failed to read settings file %s: %s", path, e)
        raise
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings with validation.

    Precedence (highest first):
    1) The explicit `path` argument
    2) The file named by the SFLM_CONFIG environment variable
    3) Built-in defaults
    """
    source = path or os.environ.get(CONFIG_ENV_VAR)
    if not source:
        return Settings()

    data = _read_yaml_file(Path(source))
    try:
        settings = Settings(**data)
    except ValidationError as e:
        logger.error("Invalid settings in %s: %s", source, e)
        raise
    logger.debug("Loaded settings from %s", source)
    return settings
