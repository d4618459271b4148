"""
Configuration system for the reconstruction engine.

Every empirically tuned heuristic constant is a named dataclass field kept
beside the processor that uses it; this module aggregates those option
sections into one ReconstructionConfig so alternate calibration profiles
(per script, tighter or looser spacing) can be supplied without touching the
pipeline code. Dict round-tripping keeps compatibility with JSON request
bodies.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Optional, Type, TypeVar
import logging

from processors.boundary_classifier import (
    CALIBRATION_PROFILES,
    DEFAULT_PROFILE,
    BoundaryRuleOptions,
    CalibrationProfile,
    get_calibration_profile,
)
from processors.document_statistics import StatisticsOptions
from processors.line_model import LineModelOptions
from processors.structure_detectors import DetectorOptions
from processors.text_grouping import GroupingOptions
from utils.validation import ConfigValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _filter_known_keys(cls: Type[T], config: Dict[str, Any]) -> Dict[str, Any]:
    """Keep keys that name a dataclass field; warn about the rest."""
    valid_keys = {f.name for f in fields(cls)}
    filtered = {}
    for key, value in (config or {}).items():
        if key in valid_keys:
            filtered[key] = value
        else:
            logger.warning(f"Unknown config key '{key}' for {cls.__name__} will be ignored")
    return filtered


@dataclass
class ReconstructionConfig:
    """
    Central configuration for page reconstruction.

    Example:
        >>> config = ReconstructionConfig.default().with_profile("latin-tight")
        >>> layout = PageReconstructor(config).reconstruct(page)
    """

    profile: str = DEFAULT_PROFILE
    statistics: StatisticsOptions = field(default_factory=StatisticsOptions)
    line_model: LineModelOptions = field(default_factory=LineModelOptions)
    boundary: BoundaryRuleOptions = field(default_factory=BoundaryRuleOptions)
    grouping: GroupingOptions = field(default_factory=GroupingOptions)
    detectors: DetectorOptions = field(default_factory=DetectorOptions)

    # Multi-page execution
    max_workers: int = 4

    # Logging
    log_level: str = "INFO"

    _SECTIONS = {
        'statistics': StatisticsOptions,
        'line_model': LineModelOptions,
        'boundary': BoundaryRuleOptions,
        'grouping': GroupingOptions,
        'detectors': DetectorOptions,
    }

    @property
    def calibration(self) -> CalibrationProfile:
        return get_calibration_profile(self.profile)

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if all values are valid, False otherwise
        """
        if self.max_workers < 1:
            logger.error("max_workers must be at least 1")
            return False

        if self.profile not in CALIBRATION_PROFILES:
            logger.error(f"Unknown calibration profile '{self.profile}'")
            return False

        return all(getattr(self, name).validate() for name in self._SECTIONS)

    def validate_or_raise(self) -> 'ReconstructionConfig':
        if not self.validate():
            raise ConfigValidationError(f"Invalid reconstruction configuration: {self!r}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Useful for serialization, logging, and debugging.
        """
        data = {
            'profile': self.profile,
            'max_workers': self.max_workers,
            'log_level': self.log_level,
        }
        for name in self._SECTIONS:
            section = asdict(getattr(self, name))
            data[name] = {k: list(v) if isinstance(v, tuple) else v for k, v in section.items()}
        return data

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ReconstructionConfig':
        """
        Create ReconstructionConfig from dictionary.

        Nested sections are plain dicts. Unknown keys are ignored with a
        warning at every level.
        """
        filtered = _filter_known_keys(cls, config)
        for name, section_cls in cls._SECTIONS.items():
            if name in filtered and isinstance(filtered[name], dict):
                section = _filter_known_keys(section_cls, filtered[name])
                if 'connector_words' in section:
                    section['connector_words'] = tuple(section['connector_words'])
                filtered[name] = section_cls(**section)
        return cls(**filtered)

    @classmethod
    def default(cls) -> 'ReconstructionConfig':
        """Create configuration with default values."""
        return cls()

    def with_profile(self, name: Optional[str]) -> 'ReconstructionConfig':
        """Copy of this configuration using another calibration profile."""
        return replace(self, profile=get_calibration_profile(name).name)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"ReconstructionConfig("
            f"profile={self.profile}, "
            f"workers={self.max_workers}, "
            f"log_level={self.log_level})"
        )
